from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

class CourseModule(BaseModel):
    title: str = ""
    duration: float = 0  # minutes

class CourseContent(BaseModel):
    modules: List[CourseModule] = []
    videoUrl: Optional[str] = None

class Course(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty_level: Optional[str] = None
    content: Optional[CourseContent] = None
    teacher_id: Optional[str] = None
    created_at: Optional[datetime] = None
    progress: float = 0
    completed: bool = False
    completed_lessons: int = 0
    total_lessons: int = 0

class CourseCreate(BaseModel):
    title: str
    description: Optional[str] = None
    category: str
    difficulty_level: str = "beginner"
    content: CourseContent = CourseContent()

class StudentProgress(BaseModel):
    id: Optional[str] = None
    student_id: str
    course_id: str
    progress_percentage: float = 0
    completed: bool = False
    points_earned: int = 0
    last_accessed: Optional[datetime] = None

class ProgressUpdate(BaseModel):
    progress_percentage: float = Field(
        ..., allow_inf_nan=False, description="Completion percentage, clamped to 0-100"
    )
