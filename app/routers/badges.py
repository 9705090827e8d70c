from fastapi import APIRouter, Depends
from typing import Optional

from app.core.database import DataService, get_database
from app.core.security import Session, get_session, require_session
from app.models.badge import BadgeOverview, StudentBadge
from app.services.badge_service import BadgeService

router = APIRouter()


def get_badge_service(db: DataService = Depends(get_database)) -> BadgeService:
    return BadgeService(db)


@router.get("", response_model=BadgeOverview)
async def list_badges(
    session: Optional[Session] = Depends(get_session),
    badge_service: BadgeService = Depends(get_badge_service),
):
    """Badge catalog with earned status for the caller"""
    return await badge_service.fetch_badges(session)


@router.post("/{badge_id}/award", response_model=StudentBadge)
async def award_badge(
    badge_id: str,
    session: Session = Depends(require_session),
    badge_service: BadgeService = Depends(get_badge_service),
):
    """Award a badge to the caller; repeat awards return the original record"""
    return await badge_service.award_badge(session, badge_id)
