import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.core.database import DataService, no_rows
from app.core.errors import DataServiceError
from app.core.security import Session
from app.models.course import Course, CourseContent, CourseCreate, StudentProgress
from app.services import gamification

logger = logging.getLogger(__name__)

_DERIVED = {"content", "progress", "completed", "completed_lessons", "total_lessons"}


class CourseService:
    def __init__(self, db: DataService):
        self.db = db

    async def fetch_courses(self, session: Optional[Session]) -> List[Course]:
        """Every course, newest first, merged with the caller's progress rows.

        Anonymous callers see zero progress everywhere.
        """
        courses_task = self.db.query("courses", order_by="created_at", desc=True)
        if session is not None:
            progress_task = self.db.query(
                "student_progress", filters={"student_id": session.user_id}
            )
        else:
            progress_task = no_rows()

        course_rows, progress_rows = await asyncio.gather(
            courses_task, progress_task, return_exceptions=True
        )

        if isinstance(course_rows, Exception):
            logger.error("Error fetching courses: %s", course_rows)
            return []
        if isinstance(progress_rows, Exception):
            logger.warning("Error fetching student progress: %s", progress_rows)
            progress_rows = []

        progress_by_course = {row.get("course_id"): row for row in progress_rows}
        courses = []
        for row in course_rows:
            try:
                courses.append(self._merge(row, progress_by_course.get(row.get("id"))))
            except ValidationError as exc:
                logger.warning("Skipping malformed course %s: %s", row.get("id"), exc)
        return courses

    def _merge(self, row: Dict, progress: Optional[Dict]) -> Course:
        raw_content = row.get("content") or {}
        modules = raw_content.get("modules") if isinstance(raw_content, dict) else None
        total_lessons = len(modules) if isinstance(modules, list) else 0
        try:
            content = CourseContent.model_validate(raw_content)
        except ValidationError as exc:
            logger.warning("Unreadable content on course %s: %s", row.get("id"), exc)
            content = None
        percentage = gamification.stored_progress(
            progress.get("progress_percentage") if progress else None
        )

        return Course(
            **{k: v for k, v in row.items() if k in Course.model_fields and k not in _DERIVED},
            content=content,
            progress=percentage,
            completed=gamification.is_completed(percentage),
            completed_lessons=gamification.completed_lessons(percentage, total_lessons),
            total_lessons=total_lessons,
        )

    async def update_progress(
        self, session: Session, course_id: str, progress_percentage: float
    ) -> StudentProgress:
        """Upsert the caller's progress row for a course and return it."""
        percentage = gamification.clamp_progress(progress_percentage)
        patch = {
            "progress_percentage": percentage,
            "completed": gamification.is_completed(percentage),
            "points_earned": gamification.points_for_progress(percentage),
            "last_accessed": datetime.now(timezone.utc).isoformat(),
        }
        key = {"student_id": session.user_id, "course_id": course_id}

        try:
            existing = await self.db.query(
                "student_progress", columns="id, points_earned", filters=key, limit=1
            )
            if existing:
                row = await self.db.update(
                    "student_progress", {"id": existing[0]["id"]}, patch
                )
                row = row or {"id": existing[0]["id"], **key, **patch}
            else:
                row = await self.db.insert("student_progress", {**key, **patch})
        except DataServiceError:
            logger.exception("Error updating progress for course %s", course_id)
            raise

        logger.info(
            "Progress for %s on %s set to %s%%", session.user_id, course_id, percentage
        )
        return StudentProgress(**{**key, **patch, **row})

    async def mark_course_complete(self, session: Session, course_id: str) -> StudentProgress:
        return await self.update_progress(session, course_id, 100)

    async def create_course(self, session: Session, course: CourseCreate) -> Course:
        """Publish a new course owned by the calling teacher."""
        new_course = {
            "title": course.title,
            "description": course.description,
            "category": course.category,
            "difficulty_level": course.difficulty_level,
            "content": course.content.model_dump(),
            "teacher_id": session.user_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            row = await self.db.insert("courses", new_course)
        except DataServiceError:
            logger.exception("Error creating course %r", course.title)
            raise
        return self._merge(row, None)