import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from app.core.database import DataService, no_rows
from app.core.errors import DataServiceError
from app.core.security import Session
from app.models.badge import Badge, BadgeOverview, StudentBadge

logger = logging.getLogger(__name__)


class BadgeService:
    def __init__(self, db: DataService):
        self.db = db

    async def fetch_badges(self, session: Optional[Session]) -> BadgeOverview:
        """Badge catalog (cheapest first) overlaid with the caller's awards."""
        catalog_task = self.db.query("badges", order_by="points_required")
        if session is not None:
            earned_task = self.db.query(
                "student_badges",
                columns="badge_id, earned_at",
                filters={"student_id": session.user_id},
            )
        else:
            earned_task = no_rows()

        catalog, earned_rows = await asyncio.gather(
            catalog_task, earned_task, return_exceptions=True
        )
        if isinstance(catalog, Exception):
            logger.error("Error fetching badges: %s", catalog)
            return BadgeOverview()
        if isinstance(earned_rows, Exception):
            logger.warning("Error fetching earned badges: %s", earned_rows)
            earned_rows = []

        # first award wins if the table ever holds duplicates
        earned_at = {}
        for row in earned_rows:
            earned_at.setdefault(row["badge_id"], row.get("earned_at"))

        badges = [
            Badge(
                **{k: v for k, v in row.items() if k not in ("earned", "earned_at")},
                earned=row["id"] in earned_at,
                earned_at=earned_at.get(row["id"]),
            )
            for row in catalog
        ]
        return BadgeOverview(
            badges=badges,
            earned_badges=[badge for badge in badges if badge.earned],
        )

    async def award_badge(self, session: Session, badge_id: str) -> StudentBadge:
        """Award a badge once; awarding an earned badge returns the existing row."""
        key = {"student_id": session.user_id, "badge_id": badge_id}
        try:
            existing = await self.db.query("student_badges", filters=key, limit=1)
            if existing:
                logger.info("Badge %s already earned by %s", badge_id, session.user_id)
                return StudentBadge(**existing[0])

            row = await self.db.insert(
                "student_badges",
                {**key, "earned_at": datetime.now(timezone.utc).isoformat()},
            )
        except DataServiceError:
            logger.exception("Error awarding badge %s", badge_id)
            raise

        logger.info("Awarded badge %s to %s", badge_id, session.user_id)
        return StudentBadge(**{**key, **row})