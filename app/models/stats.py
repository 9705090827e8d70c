from pydantic import BaseModel
from typing import Optional, List
from enum import Enum

class ModuleStatus(str, Enum):
    COMPLETED = "completed"
    IN_PROGRESS = "in-progress"
    LOCKED = "locked"

class RewardType(str, Enum):
    BADGE = "badge"
    STREAK = "streak"
    QUIZ = "quiz"
    LEVEL = "level"
    COURSE = "course"

class StudentStats(BaseModel):
    total_points: int = 0
    level: int = 1
    next_level_points: int = 200
    streak: int = 0
    longest_streak: int = 0
    can_claim_streak_bonus: bool = False
    weekly_goal: int = 300
    weekly_progress: int = 0
    monthly_rank: int = 1
    total_students: int = 0
    completed_courses: int = 0
    completed_quizzes: int = 0
    earned_badges: int = 0

class ModuleProgress(BaseModel):
    name: str
    progress: float
    points: int
    status: ModuleStatus

class RecentReward(BaseModel):
    type: RewardType
    name: str
    earned: str  # "Today", "3 days ago"...
    points: int

class StudentDashboard(BaseModel):
    stats: StudentStats
    modules: List[ModuleProgress] = []
    recent_rewards: List[RecentReward] = []

class LeaderboardEntry(BaseModel):
    id: str
    user_id: str
    full_name: str
    avatar_url: Optional[str] = None
    total_points: int
    streak: int
    badges_count: int
    rank: int
    is_current_user: bool = False

class Leaderboard(BaseModel):
    entries: List[LeaderboardEntry] = []
    current_user: Optional[LeaderboardEntry] = None
