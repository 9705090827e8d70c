"""Quiz catalog, attempt persistence and the timed quiz run."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from app.core.config import settings
from app.core.database import DataService, no_rows
from app.core.errors import DataServiceError, NotFoundError
from app.core.security import Session
from app.models.quiz import (
    Question, Quiz, QuizAttempt, QuizOverview, QuizResult, QuizRunState,
    QuizStatus, QuestionReview,
)

logger = logging.getLogger(__name__)

SaveAttempt = Callable[[str, Dict[int, int], int], Awaitable[object]]


class QuizStateError(Exception):
    """An action that the quiz run does not allow in its current state."""


def score_answers(questions: List[Question], answers: Dict[int, int]) -> int:
    """One point per correctly answered question, whatever its weight."""
    return sum(1 for question in questions if answers.get(question.id) == question.correct)


def verdict_for(percentage: int) -> str:
    if percentage >= 80:
        return "Excellent!"
    if percentage >= 60:
        return "Good Job!"
    return "Keep Learning!"


def format_time(seconds: int) -> str:
    seconds = max(seconds, 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


def build_result(
    questions: List[Question], answers: Dict[int, int], timed_out: bool = False
) -> QuizResult:
    review = []
    for question in questions:
        selected = answers.get(question.id)
        selected_option = None
        if selected is not None and 0 <= selected < len(question.options):
            selected_option = question.options[selected]
        review.append(QuestionReview(
            question_id=question.id,
            question=question.question,
            selected_index=selected,
            selected_option=selected_option,
            correct_index=question.correct,
            correct_option=question.options[question.correct]
            if 0 <= question.correct < len(question.options) else "",
            is_correct=selected == question.correct,
            explanation=question.explanation,
        ))

    score = score_answers(questions, answers)
    percentage = round(score / len(questions) * 100) if questions else 0
    return QuizResult(
        score=score,
        total_questions=len(questions),
        percentage=percentage,
        verdict=verdict_for(percentage),
        timed_out=timed_out,
        review=review,
    )


def _parse_question(raw) -> Optional[Question]:
    if not isinstance(raw, dict):
        return None
    options = raw.get("options")
    try:
        return Question(**{
            **raw,
            "options": [str(option) for option in options] if isinstance(options, list) else [],
        })
    except ValidationError as exc:
        logger.warning("Dropping unreadable question %r: %s", raw.get("id"), exc)
        return None


def _parse_quiz(row: Dict) -> Quiz:
    raw_questions = row.get("questions")
    if not isinstance(raw_questions, list):
        raw_questions = []
    questions = [q for q in map(_parse_question, raw_questions) if q is not None]
    return Quiz(**{
        **row,
        "questions": questions,
        "total_points": row.get("total_points") or 0,
        "time_limit": row.get("time_limit") or settings.default_quiz_time_limit,
    })


def _parse_attempt(row: Dict) -> QuizAttempt:
    return QuizAttempt(**{**row, "answers": row.get("answers") or {}})


def _parse_rows(parse, rows: List[Dict], kind: str) -> list:
    """Parse rows one by one, leaving out the ones that do not fit the model."""
    parsed = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except ValidationError as exc:
            logger.warning("Skipping malformed %s %s: %s", kind, row.get("id"), exc)
    return parsed


class QuizService:
    def __init__(self, db: DataService):
        self.db = db

    async def fetch_quizzes(self, session: Optional[Session]) -> QuizOverview:
        """All quizzes, newest first, plus the caller's past attempts."""
        quizzes_task = self.db.query("quizzes", order_by="created_at", desc=True)
        if session is not None:
            attempts_task = self.db.query(
                "quiz_attempts", filters={"student_id": session.user_id}
            )
        else:
            attempts_task = no_rows()

        quiz_rows, attempt_rows = await asyncio.gather(
            quizzes_task, attempts_task, return_exceptions=True
        )
        if isinstance(quiz_rows, Exception):
            logger.error("Error fetching quizzes: %s", quiz_rows)
            return QuizOverview()
        if isinstance(attempt_rows, Exception):
            logger.warning("Error fetching quiz attempts: %s", attempt_rows)
            attempt_rows = []

        return QuizOverview(
            quizzes=_parse_rows(_parse_quiz, quiz_rows, "quiz"),
            attempts=_parse_rows(_parse_attempt, attempt_rows, "quiz attempt"),
        )

    async def get_quiz(self, quiz_id: str) -> Quiz:
        rows = await self.db.query("quizzes", filters={"id": quiz_id}, limit=1)
        if not rows:
            raise NotFoundError("quizzes", quiz_id)
        try:
            return _parse_quiz(rows[0])
        except ValidationError as exc:
            logger.error("Quiz %s cannot be run: %s", quiz_id, exc)
            raise NotFoundError("quizzes", quiz_id) from exc

    async def submit_quiz_attempt(
        self, session: Session, quiz_id: str, answers: Dict[int, int], score: int
    ) -> QuizAttempt:
        """Store one immutable attempt. Repeat attempts are kept side by side."""
        attempt = {
            "quiz_id": quiz_id,
            "student_id": session.user_id,
            # json object keys are strings on the wire
            "answers": {str(k): v for k, v in answers.items()},
            "score": score,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            row = await self.db.insert("quiz_attempts", attempt)
        except DataServiceError:
            logger.exception("Error submitting quiz attempt for %s", quiz_id)
            raise
        return QuizAttempt(**{**attempt, **row})


class QuizRun:
    """One learner's timed pass through a quiz.

    listing -> in_progress -> submitted. The countdown ticks once per
    ``tick_seconds`` only while in progress and is cancelled on submit,
    on timeout and on close.
    """

    def __init__(
        self,
        quiz: Quiz,
        save_attempt: Optional[SaveAttempt] = None,
        owner_id: Optional[str] = None,
        tick_seconds: float = 1.0,
    ):
        self.run_id = str(uuid.uuid4())
        self.quiz = quiz
        self.owner_id = owner_id
        self.status = QuizStatus.LISTING
        self.current_index = 0
        self.answers: Dict[int, int] = {}
        self.time_left = quiz.time_limit * 60
        self.result: Optional[QuizResult] = None
        self.finished = asyncio.Event()
        self._save_attempt = save_attempt
        self._tick_seconds = tick_seconds
        self._timer: Optional[asyncio.Task] = None
        self._save_task: Optional[asyncio.Task] = None

    @property
    def questions(self) -> List[Question]:
        return self.quiz.questions

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        if self.status == QuizStatus.IN_PROGRESS:
            raise QuizStateError("Quiz already in progress")
        self._cancel_timer()
        self.status = QuizStatus.IN_PROGRESS
        self.current_index = 0
        self.answers = {}
        self.result = None
        self.finished.clear()
        self.time_left = self.quiz.time_limit * 60
        self._timer = asyncio.get_running_loop().create_task(self._countdown())
        logger.info("Quiz run %s started for %s (%ss)", self.run_id, self.quiz.id, self.time_left)

    def select_answer(self, question_id: int, option_index: int) -> None:
        self._require_in_progress()
        question = next((q for q in self.questions if q.id == question_id), None)
        if question is None:
            raise QuizStateError(f"Question {question_id} is not part of this quiz")
        if not 0 <= option_index < len(question.options):
            raise QuizStateError(f"Option {option_index} does not exist")
        self.answers[question_id] = option_index

    def next(self) -> None:
        self._require_in_progress()
        self.current_index = min(self.current_index + 1, max(len(self.questions) - 1, 0))

    def previous(self) -> None:
        self._require_in_progress()
        self.current_index = max(0, self.current_index - 1)

    def submit(self) -> QuizResult:
        self._require_in_progress()
        if self.questions and self.current_index != len(self.questions) - 1:
            raise QuizStateError("Submit is only available on the final question")
        return self._complete(timed_out=False)

    def close(self) -> None:
        """Stop the countdown without submitting."""
        self._cancel_timer()

    def state(self) -> QuizRunState:
        current = None
        if self.status == QuizStatus.IN_PROGRESS and self.questions:
            current = self.questions[self.current_index]
        return QuizRunState(
            run_id=self.run_id,
            quiz_id=self.quiz.id,
            title=self.quiz.title,
            status=self.status,
            current_index=self.current_index,
            total_questions=len(self.questions),
            current_question=current,
            answers=self.answers,
            time_left=self.time_left,
            time_left_display=format_time(self.time_left),
            result=self.result,
        )

    async def _countdown(self) -> None:
        while self.status == QuizStatus.IN_PROGRESS and self.time_left > 0:
            await asyncio.sleep(self._tick_seconds)
            self.time_left -= 1
        if self.status == QuizStatus.IN_PROGRESS:
            logger.info("Quiz run %s timed out", self.run_id)
            self._complete(timed_out=True)

    def _complete(self, timed_out: bool) -> QuizResult:
        self._cancel_timer()
        self.status = QuizStatus.SUBMITTED
        self.result = build_result(self.questions, self.answers, timed_out=timed_out)
        if self._save_attempt is not None:
            self._save_task = asyncio.get_running_loop().create_task(
                self._save(dict(self.answers), self.result.score)
            )
        self.finished.set()
        return self.result

    async def _save(self, answers: Dict[int, int], score: int) -> None:
        try:
            await self._save_attempt(self.quiz.id, answers, score)
        except Exception:
            logger.exception("Could not save attempt for quiz run %s", self.run_id)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if self._timer is not current:
                self._timer.cancel()
        self._timer = None

    def _require_in_progress(self) -> None:
        if self.status != QuizStatus.IN_PROGRESS:
            raise QuizStateError(f"Quiz run is {self.status.value}")


class QuizRunRegistry:
    """In-process quiz runs keyed by run id.

    A finished run stays readable for ``retention_seconds`` so the client can
    fetch its result, then it is dropped. Unfinished runs end on their own
    when the countdown runs out.
    """

    def __init__(self, retention_seconds: Optional[float] = None):
        if retention_seconds is None:
            retention_seconds = settings.quiz_result_retention_seconds
        self.retention_seconds = retention_seconds
        self._runs: Dict[str, QuizRun] = {}
        self._expiry: Dict[str, asyncio.Task] = {}

    def add(self, run: QuizRun) -> QuizRun:
        self._runs[run.run_id] = run
        self._expiry[run.run_id] = asyncio.get_running_loop().create_task(self._expire(run))
        return run

    def get(self, run_id: str, session: Optional[Session] = None) -> QuizRun:
        run = self._runs.get(run_id)
        owner = session.user_id if session else None
        if run is None or run.owner_id != owner:
            raise NotFoundError("quiz_runs", run_id)
        return run

    def close(self, run_id: str, session: Optional[Session] = None) -> None:
        self.get(run_id, session)
        self._drop(run_id)

    def close_all(self) -> None:
        for run_id in list(self._runs):
            self._drop(run_id)

    async def _expire(self, run: QuizRun) -> None:
        # a restarted run clears ``finished`` and gets a new window
        while True:
            await run.finished.wait()
            await asyncio.sleep(self.retention_seconds)
            if run.finished.is_set():
                break
        logger.debug("Quiz run %s expired", run.run_id)
        self._expiry.pop(run.run_id, None)
        self._drop(run.run_id)

    def _drop(self, run_id: str) -> None:
        run = self._runs.pop(run_id, None)
        if run is not None:
            run.close()
        expiry = self._expiry.pop(run_id, None)
        if expiry is not None:
            expiry.cancel()

    def __len__(self) -> int:
        return len(self._runs)


quiz_runs = QuizRunRegistry()
