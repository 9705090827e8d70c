from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional

from app.core.database import DataService, get_database
from app.core.security import Session, get_session, require_session
from app.models.course import Course, CourseCreate, ProgressUpdate
from app.services.course_service import CourseService

router = APIRouter()


def get_course_service(db: DataService = Depends(get_database)) -> CourseService:
    return CourseService(db)


@router.get("", response_model=List[Course])
async def list_courses(
    session: Optional[Session] = Depends(get_session),
    course_service: CourseService = Depends(get_course_service),
):
    """All courses with the caller's progress (zero for anonymous callers)"""
    return await course_service.fetch_courses(session)


@router.post("", response_model=Course, status_code=status.HTTP_201_CREATED)
async def create_course(
    course: CourseCreate,
    session: Session = Depends(require_session),
    course_service: CourseService = Depends(get_course_service),
):
    """Publish a new course (teachers only)"""
    if not session.is_teacher:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only teachers can create courses",
        )
    return await course_service.create_course(session, course)


@router.put("/{course_id}/progress", response_model=List[Course])
async def update_progress(
    course_id: str,
    update: ProgressUpdate,
    session: Session = Depends(require_session),
    course_service: CourseService = Depends(get_course_service),
):
    """Record progress on a course and return the refreshed course list"""
    await course_service.update_progress(session, course_id, update.progress_percentage)
    return await course_service.fetch_courses(session)


@router.post("/{course_id}/complete", response_model=List[Course])
async def complete_course(
    course_id: str,
    session: Session = Depends(require_session),
    course_service: CourseService = Depends(get_course_service),
):
    """Mark a course as 100% complete"""
    await course_service.mark_course_complete(session, course_id)
    return await course_service.fetch_courses(session)
