from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # Database
    supabase_url: str
    supabase_key: str

    # App
    app_name: str = "LearnLab"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Gamification
    leaderboard_limit: int = 50
    level_band_points: int = 200
    weekly_goal_points: int = 300
    streak_bonus_days: int = 7
    streak_bonus_points_per_day: int = 5

    # Quizzes
    default_quiz_time_limit: int = 10  # minutes
    quiz_result_retention_seconds: float = 300

    # Labs
    beaker_capacity: int = 250
    beakers_per_bench: int = 3
    max_lab_benches: int = 500

    class Config:
        env_file = ".env"

settings = Settings()
