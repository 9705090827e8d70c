from pydantic import BaseModel
from typing import Optional
from datetime import date
from enum import Enum

class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"

class Profile(BaseModel):
    id: str
    user_id: str
    full_name: Optional[str] = None
    role: Role = Role.STUDENT
    avatar_url: Optional[str] = None
    total_points: int = 0
    streak: int = 0
    last_activity_date: Optional[date] = None

class StreakUpdate(BaseModel):
    streak: int
    last_activity_date: date
    previous_streak: int
    streak_broken: bool
