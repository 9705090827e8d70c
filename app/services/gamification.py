"""Point, level and streak rules shared by the aggregators."""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from app.core.config import settings


def clamp_progress(progress_percentage: Optional[float]) -> float:
    """Clamp a completion percentage to 0-100; missing counts as 0."""
    if progress_percentage is None:
        return 0
    if not math.isfinite(progress_percentage):
        raise ValueError(f"Progress must be a finite number, got {progress_percentage}")
    return max(0, min(100, progress_percentage))


def stored_progress(progress_percentage) -> float:
    """Progress read back from a row; anything unusable counts as 0."""
    try:
        return clamp_progress(progress_percentage)
    except (TypeError, ValueError):
        return 0


def is_completed(progress_percentage: float) -> bool:
    return progress_percentage >= 100


def points_for_progress(progress_percentage: float) -> int:
    """10 points for every full 10% of progress."""
    return int(math.floor(progress_percentage / 10)) * 10


def completed_lessons(progress_percentage: float, total_lessons: int) -> int:
    # round half up, the way the dashboard counts lessons
    return int(math.floor(progress_percentage / 100 * total_lessons + 0.5))


def calculate_level(total_points: int, band: Optional[int] = None) -> int:
    band = band or settings.level_band_points
    return max(total_points, 0) // band + 1


def next_level_points(total_points: int, band: Optional[int] = None) -> int:
    band = band or settings.level_band_points
    return calculate_level(total_points, band) * band


def can_claim_streak_bonus(streak: int) -> bool:
    return streak >= settings.streak_bonus_days


def streak_bonus_points(streak: int) -> int:
    return streak * settings.streak_bonus_points_per_day


def next_streak(current_streak: int, last_activity: Optional[date], today: date) -> int:
    """Advance the consecutive-day counter for activity on ``today``.

    Activity the day after the last one extends the streak, activity on the
    same day keeps it, anything else starts over at 1.
    """
    if last_activity is None:
        return 1
    if last_activity == today:
        return current_streak
    if last_activity == today - timedelta(days=1):
        return current_streak + 1
    return 1


def format_time_ago(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    if moment is None:
        return "Today"
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    days = (now - moment).days
    if days <= 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        return f"{days // 7} weeks ago"
    return f"{days // 30} months ago"


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp from a row; bad or missing values give None."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_date(value) -> Optional[date]:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None
