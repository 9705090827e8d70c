from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum

class Question(BaseModel):
    id: int
    question: str
    options: List[str]
    correct: int
    points: int = 1  # stored but not used for scoring
    explanation: Optional[str] = None

class Quiz(BaseModel):
    id: str
    title: str
    course_id: Optional[str] = None
    questions: List[Question] = []
    total_points: int = 0
    time_limit: int = 10  # minutes
    created_at: Optional[datetime] = None

class QuizAttempt(BaseModel):
    id: Optional[str] = None
    quiz_id: str
    student_id: str
    score: int
    answers: Dict[int, int] = {}
    completed_at: Optional[datetime] = None

class QuizOverview(BaseModel):
    quizzes: List[Quiz] = []
    attempts: List[QuizAttempt] = []

class AttemptSubmission(BaseModel):
    answers: Dict[int, int] = {}
    score: int = Field(..., ge=0)

class AnswerSelection(BaseModel):
    question_id: int
    option_index: int = Field(..., ge=0)

class QuizStatus(str, Enum):
    LISTING = "listing"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"

class QuestionReview(BaseModel):
    question_id: int
    question: str
    selected_index: Optional[int] = None
    selected_option: Optional[str] = None
    correct_index: int
    correct_option: str
    is_correct: bool
    explanation: Optional[str] = None

class QuizResult(BaseModel):
    score: int
    total_questions: int
    percentage: int
    verdict: str
    timed_out: bool = False
    review: List[QuestionReview] = []

class QuizRunState(BaseModel):
    run_id: str
    quiz_id: str
    title: str
    status: QuizStatus
    current_index: int
    total_questions: int
    current_question: Optional[Question] = None
    answers: Dict[int, int] = {}
    time_left: int
    time_left_display: str
    result: Optional[QuizResult] = None
