import asyncio

import pytest

from app.core.errors import DataServiceError, NotFoundError
from app.models.quiz import Question, Quiz, QuizStatus
from app.services.quiz_service import (
    QuizRun, QuizRunRegistry, QuizService, QuizStateError, build_result,
    format_time, score_answers,
)

pytestmark = pytest.mark.anyio


def make_quiz(time_limit=5):
    return Quiz(
        id="q1",
        title="Acids and Bases Check",
        time_limit=time_limit,
        questions=[
            Question(id=1, question="Acid + base?", options=["Salt and water", "Only salt"], correct=0, points=10),
            Question(id=2, question="Universal solvent?", options=["Oil", "Water"], correct=1, points=50),
            Question(id=3, question="pH of water?", options=["6", "7", "8"], correct=1, points=1),
        ],
    )


class RecordingSaver:
    def __init__(self, fail=False):
        self.saved = []
        self.fail = fail
        self.done = asyncio.Event()

    async def __call__(self, quiz_id, answers, score):
        self.done.set()
        if self.fail:
            raise DataServiceError("insert", "quiz_attempts")
        self.saved.append((quiz_id, answers, score))


def test_score_counts_questions_not_points():
    quiz = make_quiz()
    assert score_answers(quiz.questions, {1: 0, 2: 1, 3: 1}) == 3
    assert score_answers(quiz.questions, {2: 1}) == 1
    assert score_answers(quiz.questions, {}) == 0
    assert score_answers(quiz.questions, {1: 1, 2: 0, 3: 1}) == 1


def test_result_review_reveals_correct_options():
    quiz = make_quiz()
    result = build_result(quiz.questions, {1: 0, 2: 0})

    assert result.score == 1
    assert result.percentage == 33
    assert result.verdict == "Keep Learning!"
    assert result.review[0].is_correct is True
    assert result.review[1].selected_option == "Oil"
    assert result.review[1].correct_option == "Water"
    assert result.review[2].selected_option is None
    assert result.review[2].is_correct is False


def test_format_time():
    assert format_time(300) == "5:00"
    assert format_time(61) == "1:01"
    assert format_time(-3) == "0:00"


async def test_fetch_quizzes_defaults_missing_fields(db, student_session):
    overview = await QuizService(db).fetch_quizzes(student_session)

    assert [quiz.id for quiz in overview.quizzes] == ["q1", "q2"]
    draft = overview.quizzes[1]
    assert draft.questions == []
    assert draft.time_limit == 10
    assert overview.attempts[0].answers == {1: 0, 2: 2, 3: 3}


async def test_fetch_quizzes_read_failure(db, student_session):
    db.fail("query", "quizzes")

    overview = await QuizService(db).fetch_quizzes(student_session)
    assert overview.quizzes == []
    assert overview.attempts == []


async def test_get_quiz_missing(db):
    with pytest.raises(NotFoundError):
        await QuizService(db).get_quiz("nope")


async def test_attempts_are_never_merged(db, student_session):
    service = QuizService(db)
    await service.submit_quiz_attempt(student_session, "q1", {1: 0}, 1)
    await service.submit_quiz_attempt(student_session, "q1", {1: 0}, 1)

    overview = await service.fetch_quizzes(student_session)
    assert len([a for a in overview.attempts if a.quiz_id == "q1"]) == 3
    assert db.tables["quiz_attempts"][-1]["answers"] == {"1": 0}


async def test_run_lifecycle_with_manual_submit():
    saver = RecordingSaver()
    run = QuizRun(make_quiz(), save_attempt=saver, owner_id="student-1")
    assert run.status == QuizStatus.LISTING

    run.start()
    assert run.status == QuizStatus.IN_PROGRESS
    assert run.time_left == 300
    assert run.timer_running

    run.select_answer(1, 1)
    run.select_answer(1, 0)  # last write wins
    run.next()
    run.select_answer(2, 1)
    run.previous()
    assert run.current_index == 0
    assert run.answers == {1: 0, 2: 1}

    with pytest.raises(QuizStateError):
        run.submit()  # not on the final question yet

    run.next()
    run.next()
    run.next()
    assert run.current_index == 2

    result = run.submit()
    assert result.score == 2
    assert result.timed_out is False
    assert run.status == QuizStatus.SUBMITTED
    assert not run.timer_running

    await asyncio.wait_for(saver.done.wait(), 1)
    await asyncio.sleep(0)
    assert saver.saved == [("q1", {1: 0, 2: 1}, 2)]

    with pytest.raises(QuizStateError):
        run.select_answer(3, 1)


async def test_timeout_uses_the_same_scoring_path():
    saver = RecordingSaver()
    run = QuizRun(make_quiz(time_limit=1), save_attempt=saver, tick_seconds=0.001)
    run.start()
    run.select_answer(2, 1)
    run.select_answer(3, 0)

    await asyncio.wait_for(run.finished.wait(), 5)

    assert run.status == QuizStatus.SUBMITTED
    assert run.time_left == 0
    assert run.result.timed_out is True
    assert run.result.score == score_answers(run.questions, {2: 1, 3: 0}) == 1
    await asyncio.wait_for(saver.done.wait(), 1)
    await asyncio.sleep(0)
    assert saver.saved[0][2] == 1


async def test_close_cancels_countdown():
    run = QuizRun(make_quiz(), tick_seconds=0.001)
    run.start()
    timer = run._timer

    run.close()
    await asyncio.sleep(0.01)

    assert timer.cancelled()
    assert run.status == QuizStatus.IN_PROGRESS
    assert run.time_left > 0


async def test_failed_save_does_not_break_results():
    saver = RecordingSaver(fail=True)
    run = QuizRun(make_quiz(), save_attempt=saver)
    run.start()
    for _ in range(2):
        run.next()

    result = run.submit()
    await asyncio.wait_for(saver.done.wait(), 1)
    await asyncio.sleep(0)

    assert result.score == 0
    assert run.state().result.score == 0


async def test_restart_resets_answers():
    run = QuizRun(make_quiz(), tick_seconds=0.001)
    run.start()
    run.select_answer(1, 0)
    for _ in range(2):
        run.next()
    run.submit()

    run.start()
    assert run.answers == {}
    assert run.current_index == 0
    assert run.result is None
    run.close()


async def test_registry_scopes_runs_to_owner(student_session):
    registry = QuizRunRegistry()
    run = registry.add(QuizRun(make_quiz(), owner_id="student-1"))
    run.start()

    assert registry.get(run.run_id, student_session) is run
    with pytest.raises(NotFoundError):
        registry.get(run.run_id, None)

    registry.close(run.run_id, student_session)
    assert len(registry) == 0
    assert not run.timer_running


async def wait_until(condition, attempts=500):
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0.01)


async def test_malformed_quiz_rows_are_defaulted_or_skipped(db, student_session):
    db.tables["quizzes"] += [
        {"id": "q3", "title": "Loose ends", "created_at": "2023-12-01T09:00:00+00:00",
         "questions": [
             {"id": 1, "question": "Pick one", "options": None, "correct": 0},
             {"id": 2, "question": "Atomic number of carbon?", "options": [6, 12], "correct": 0},
             {"question": "No id here"},
             "not a question",
         ]},
        {"id": "q4", "created_at": "2023-11-01T09:00:00+00:00", "questions": "[]"},
    ]
    db.tables["quiz_attempts"].append(
        {"id": "qa2", "quiz_id": "q1", "student_id": "student-1", "score": None}
    )

    overview = await QuizService(db).fetch_quizzes(student_session)

    assert [quiz.id for quiz in overview.quizzes] == ["q1", "q2", "q3"]
    loose = overview.quizzes[2]
    assert [q.id for q in loose.questions] == [1, 2]
    assert loose.questions[0].options == []
    assert loose.questions[1].options == ["6", "12"]
    assert [a.id for a in overview.attempts] == ["qa1"]


async def test_unreadable_quiz_cannot_be_started(db):
    db.tables["quizzes"].append({"id": "q4", "questions": []})

    with pytest.raises(NotFoundError):
        await QuizService(db).get_quiz("q4")


async def test_submitted_run_leaves_the_registry():
    registry = QuizRunRegistry(retention_seconds=0)
    finished = registry.add(QuizRun(make_quiz()))
    running = registry.add(QuizRun(make_quiz()))
    finished.start()
    running.start()
    for _ in range(2):
        finished.next()

    finished.submit()
    await wait_until(lambda: len(registry) == 1)

    assert len(registry) == 1
    assert registry.get(running.run_id) is running
    with pytest.raises(NotFoundError):
        registry.get(finished.run_id)
    registry.close_all()


async def test_timed_out_run_leaves_the_registry():
    registry = QuizRunRegistry(retention_seconds=0)
    run = registry.add(QuizRun(make_quiz(time_limit=1), tick_seconds=0.001))
    run.start()

    await asyncio.wait_for(run.finished.wait(), 5)
    await wait_until(lambda: len(registry) == 0)

    assert len(registry) == 0
    assert run.result.timed_out is True


async def test_result_stays_readable_during_retention():
    registry = QuizRunRegistry(retention_seconds=60)
    run = registry.add(QuizRun(make_quiz()))
    run.start()
    for _ in range(2):
        run.next()
    run.submit()
    await asyncio.sleep(0.01)

    assert registry.get(run.run_id).state().result is not None
    registry.close_all()
    assert len(registry) == 0
