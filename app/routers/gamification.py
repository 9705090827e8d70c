from fastapi import APIRouter, Depends
from typing import Optional

from app.core.database import DataService, get_database
from app.core.security import Session, get_session, require_session
from app.models.profile import StreakUpdate
from app.models.stats import Leaderboard, StudentDashboard
from app.services.stats_service import StatsService

router = APIRouter()


def get_stats_service(db: DataService = Depends(get_database)) -> StatsService:
    return StatsService(db)


@router.get("/stats", response_model=StudentDashboard)
async def get_student_stats(
    session: Session = Depends(require_session),
    stats_service: StatsService = Depends(get_stats_service),
):
    """Points, level, rank, module progress and recent rewards for the caller"""
    return await stats_service.fetch_student_stats(session)


@router.get("/leaderboard", response_model=Leaderboard)
async def get_leaderboard(
    session: Optional[Session] = Depends(get_session),
    stats_service: StatsService = Depends(get_stats_service),
):
    """Top students by points"""
    return await stats_service.fetch_leaderboard(session)


@router.post("/streak", response_model=StreakUpdate)
async def record_activity(
    session: Session = Depends(require_session),
    stats_service: StatsService = Depends(get_stats_service),
):
    """Tick the daily streak for today's activity"""
    return await stats_service.update_streak(session)
