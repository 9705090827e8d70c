from fastapi import APIRouter, Depends, status
from typing import Optional

from app.core.database import DataService, get_database
from app.core.security import Session, get_session, require_session
from app.models.quiz import (
    AnswerSelection, AttemptSubmission, QuizAttempt, QuizOverview, QuizRunState,
)
from app.services.quiz_service import QuizRun, QuizRunRegistry, QuizService, quiz_runs

router = APIRouter()


def get_quiz_service(db: DataService = Depends(get_database)) -> QuizService:
    return QuizService(db)


def get_quiz_runs() -> QuizRunRegistry:
    return quiz_runs


@router.get("", response_model=QuizOverview)
async def list_quizzes(
    session: Optional[Session] = Depends(get_session),
    quiz_service: QuizService = Depends(get_quiz_service),
):
    """All quizzes plus the caller's previous attempts"""
    return await quiz_service.fetch_quizzes(session)


@router.post("/{quiz_id}/attempts", response_model=QuizAttempt, status_code=status.HTTP_201_CREATED)
async def submit_attempt(
    quiz_id: str,
    submission: AttemptSubmission,
    session: Session = Depends(require_session),
    quiz_service: QuizService = Depends(get_quiz_service),
):
    """Store a completed attempt scored elsewhere"""
    return await quiz_service.submit_quiz_attempt(
        session, quiz_id, submission.answers, submission.score
    )


@router.post("/{quiz_id}/runs", response_model=QuizRunState, status_code=status.HTTP_201_CREATED)
async def start_run(
    quiz_id: str,
    session: Optional[Session] = Depends(get_session),
    quiz_service: QuizService = Depends(get_quiz_service),
    runs: QuizRunRegistry = Depends(get_quiz_runs),
):
    """Start a timed run; anonymous runs are scored but never saved"""
    quiz = await quiz_service.get_quiz(quiz_id)

    save_attempt = None
    if session is not None:
        async def save_attempt(quiz_id, answers, score):
            return await quiz_service.submit_quiz_attempt(session, quiz_id, answers, score)

    run = runs.add(QuizRun(
        quiz,
        save_attempt=save_attempt,
        owner_id=session.user_id if session else None,
    ))
    run.start()
    return run.state()


@router.get("/runs/{run_id}", response_model=QuizRunState)
async def get_run(
    run_id: str,
    session: Optional[Session] = Depends(get_session),
    runs: QuizRunRegistry = Depends(get_quiz_runs),
):
    return runs.get(run_id, session).state()


@router.put("/runs/{run_id}/answers", response_model=QuizRunState)
async def select_answer(
    run_id: str,
    selection: AnswerSelection,
    session: Optional[Session] = Depends(get_session),
    runs: QuizRunRegistry = Depends(get_quiz_runs),
):
    """Choose an option; choosing again replaces the earlier answer"""
    run = runs.get(run_id, session)
    run.select_answer(selection.question_id, selection.option_index)
    return run.state()


@router.post("/runs/{run_id}/next", response_model=QuizRunState)
async def next_question(
    run_id: str,
    session: Optional[Session] = Depends(get_session),
    runs: QuizRunRegistry = Depends(get_quiz_runs),
):
    run = runs.get(run_id, session)
    run.next()
    return run.state()


@router.post("/runs/{run_id}/previous", response_model=QuizRunState)
async def previous_question(
    run_id: str,
    session: Optional[Session] = Depends(get_session),
    runs: QuizRunRegistry = Depends(get_quiz_runs),
):
    run = runs.get(run_id, session)
    run.previous()
    return run.state()


@router.post("/runs/{run_id}/submit", response_model=QuizRunState)
async def submit_run(
    run_id: str,
    session: Optional[Session] = Depends(get_session),
    runs: QuizRunRegistry = Depends(get_quiz_runs),
):
    """Score the run and reveal the per-question review"""
    run = runs.get(run_id, session)
    run.submit()
    return run.state()


@router.delete("/runs/{run_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_run(
    run_id: str,
    session: Optional[Session] = Depends(get_session),
    runs: QuizRunRegistry = Depends(get_quiz_runs),
):
    """Leave a run; stops its countdown"""
    runs.close(run_id, session)
