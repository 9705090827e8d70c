from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class Badge(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    icon: Optional[str] = None
    description: Optional[str] = None
    points_required: Optional[int] = None
    earned: bool = False
    earned_at: Optional[datetime] = None

class StudentBadge(BaseModel):
    id: Optional[str] = None
    student_id: str
    badge_id: str
    earned_at: Optional[datetime] = None

class BadgeOverview(BaseModel):
    badges: List[Badge] = []
    earned_badges: List[Badge] = []
