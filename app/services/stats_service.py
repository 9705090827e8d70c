import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from app.core.config import settings
from app.core.database import DataService
from app.core.errors import DataServiceError, NotFoundError
from app.core.security import Session
from app.models.profile import Profile, Role, StreakUpdate
from app.models.stats import (
    Leaderboard, LeaderboardEntry, ModuleProgress, ModuleStatus, RecentReward,
    RewardType, StudentDashboard, StudentStats,
)
from app.services import gamification

logger = logging.getLogger(__name__)


def rank_profiles(
    profiles: List[Profile], badge_counts: Dict[str, int], current_user_id: Optional[str] = None
) -> List[LeaderboardEntry]:
    """Rank profiles by points, highest first.

    Equal points are ordered by user id so the same data always produces the
    same ranks; rank is the 1-based position after sorting.
    """
    ordered = sorted(
        profiles,
        key=lambda p: (-p.total_points, p.user_id),
    )
    return [
        LeaderboardEntry(
            id=profile.id,
            user_id=profile.user_id,
            full_name=profile.full_name or "Student",
            avatar_url=profile.avatar_url,
            total_points=profile.total_points,
            streak=profile.streak,
            badges_count=badge_counts.get(profile.user_id, 0),
            rank=rank,
            is_current_user=current_user_id is not None and profile.user_id == current_user_id,
        )
        for rank, profile in enumerate(ordered, 1)
    ]


def count_badges(rows: List[Dict]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for row in rows:
        student_id = row.get("student_id")
        if student_id:
            counts[student_id] = counts.get(student_id, 0) + 1
    return counts


def module_status(progress: Dict) -> ModuleStatus:
    if progress.get("completed"):
        return ModuleStatus.COMPLETED
    if gamification.stored_progress(progress.get("progress_percentage")) > 0:
        return ModuleStatus.IN_PROGRESS
    return ModuleStatus.LOCKED


class StatsService:
    def __init__(self, db: DataService):
        self.db = db

    async def fetch_leaderboard(self, session: Optional[Session]) -> Leaderboard:
        profiles_task = self.db.query(
            "profiles",
            columns="id, user_id, full_name, avatar_url, total_points, streak, role",
            filters={"role": Role.STUDENT.value},
            order_by="total_points",
            desc=True,
            then_by="user_id",
            limit=settings.leaderboard_limit,
        )
        badges_task = self.db.query("student_badges", columns="student_id")
        profiles, badge_rows = await asyncio.gather(
            profiles_task, badges_task, return_exceptions=True
        )

        if isinstance(profiles, Exception):
            logger.error("Error fetching leaderboard: %s", profiles)
            return Leaderboard()
        if isinstance(badge_rows, Exception):
            logger.warning("Error fetching badge counts: %s", badge_rows)
            badge_rows = []

        entries = rank_profiles(
            [_to_profile(row) for row in profiles], count_badges(badge_rows), session.user_id if session else None
        )
        current = next((entry for entry in entries if entry.is_current_user), None)
        return Leaderboard(entries=entries, current_user=current)

    async def fetch_student_stats(
        self, session: Session, now: Optional[datetime] = None
    ) -> StudentDashboard:
        """Points, level, rank and reward summary for the signed-in student."""
        now = now or datetime.now(timezone.utc)
        student = {"student_id": session.user_id}

        results = await asyncio.gather(
            self.db.query("profiles", columns="total_points, streak",
                          filters={"user_id": session.user_id}, limit=1),
            self.db.query("student_progress", filters=student),
            self.db.query("student_badges", filters=student, order_by="earned_at", desc=True),
            self.db.query("badges", columns="id, name, points_required"),
            self.db.query("courses", columns="id, title"),
            self.db.query("quiz_attempts", columns="id", filters=student),
            self.db.count("profiles", filters={"role": Role.STUDENT.value}),
            return_exceptions=True,
        )
        names = ["profile", "progress", "earned badges", "badges", "courses",
                 "quiz attempts", "student count"]
        defaults = [[], [], [], [], [], [], 0]
        values = []
        for name, result, default in zip(names, results, defaults):
            if isinstance(result, Exception):
                logger.error("Error fetching %s for stats: %s", name, result)
                result = default
            values.append(result)
        profile_rows, progress, earned, catalog, courses, attempts, total_students = values

        profile = profile_rows[0] if profile_rows else {}
        total_points = profile.get("total_points") or 0
        streak = profile.get("streak") or 0

        try:
            higher_ranked = await self.db.count(
                "profiles",
                filters={"role": Role.STUDENT.value},
                greater_than={"total_points": total_points},
            )
        except DataServiceError as exc:
            logger.error("Error fetching rank: %s", exc)
            higher_ranked = 0

        week_ago = now - timedelta(days=7)
        weekly_progress = sum(
            row.get("points_earned") or 0
            for row in progress
            if _after(gamification.parse_timestamp(row.get("last_accessed")), week_ago)
        )

        stats = StudentStats(
            total_points=total_points,
            level=gamification.calculate_level(total_points),
            next_level_points=gamification.next_level_points(total_points),
            streak=streak,
            longest_streak=streak,  # no separate record is kept
            can_claim_streak_bonus=gamification.can_claim_streak_bonus(streak),
            weekly_goal=settings.weekly_goal_points,
            weekly_progress=weekly_progress,
            monthly_rank=higher_ranked + 1,
            total_students=total_students,
            completed_courses=sum(1 for row in progress if row.get("completed")),
            completed_quizzes=len(attempts),
            earned_badges=len(earned),
        )

        titles = {row["id"]: row.get("title") for row in courses}
        modules = [
            ModuleProgress(
                name=titles.get(row.get("course_id")) or "Course",
                progress=gamification.stored_progress(row.get("progress_percentage")),
                points=row.get("points_earned") or 0,
                status=module_status(row),
            )
            for row in progress
        ]

        badge_info = {row["id"]: row for row in catalog}
        rewards = []
        for row in earned[:3]:
            badge = badge_info.get(row.get("badge_id"), {})
            rewards.append(RecentReward(
                type=RewardType.BADGE,
                name=badge.get("name") or "Badge",
                earned=gamification.format_time_ago(
                    gamification.parse_timestamp(row.get("earned_at")), now
                ),
                points=badge.get("points_required") or 0,
            ))
        if streak > 0:
            rewards.append(RecentReward(
                type=RewardType.STREAK,
                name=f"{streak}-Day Streak Bonus",
                earned="Today",
                points=gamification.streak_bonus_points(streak),
            ))

        return StudentDashboard(stats=stats, modules=modules, recent_rewards=rewards[:4])

    async def update_streak(self, session: Session, today: Optional[date] = None) -> StreakUpdate:
        """Record activity for today and advance the streak."""
        today = today or datetime.now(timezone.utc).date()
        rows = await self.db.query(
            "profiles",
            columns="streak, last_activity_date",
            filters={"user_id": session.user_id},
            limit=1,
        )
        if not rows:
            raise NotFoundError("profiles", session.user_id)

        current = rows[0].get("streak") or 0
        last_activity = gamification.parse_date(rows[0].get("last_activity_date"))
        new_streak = gamification.next_streak(current, last_activity, today)

        try:
            await self.db.update(
                "profiles",
                {"user_id": session.user_id},
                {"streak": new_streak, "last_activity_date": today.isoformat()},
            )
        except DataServiceError:
            logger.exception("Error updating streak for %s", session.user_id)
            raise

        return StreakUpdate(
            streak=new_streak,
            last_activity_date=today,
            previous_streak=current,
            streak_broken=new_streak < current,
        )


def _to_profile(row: Dict) -> Profile:
    # null counters come back as None from the table
    return Profile(**{
        **row,
        "total_points": row.get("total_points") or 0,
        "streak": row.get("streak") or 0,
    })


def _after(moment: Optional[datetime], threshold: datetime) -> bool:
    if moment is None:
        return False
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment > threshold
