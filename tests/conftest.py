import copy
import os
import uuid

import pytest

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")

from app.core.errors import DataServiceError
from app.core.security import Session


class FakeDataService:
    """In-memory stand-in for the Supabase-backed DataService."""

    def __init__(self, tables=None):
        self.tables = copy.deepcopy(tables or {})
        self.failing = set()
        self.calls = []

    def fail(self, operation, table):
        self.failing.add((operation, table))

    def _record(self, operation, table):
        self.calls.append((operation, table))
        if (operation, table) in self.failing:
            raise DataServiceError(operation, table, RuntimeError("connection reset"))

    def _matching(self, table, filters):
        return [
            row for row in self.tables.get(table, [])
            if all(row.get(column) == value for column, value in (filters or {}).items())
        ]

    async def query(self, table, columns="*", filters=None, order_by=None, desc=False, limit=None,
                    then_by=None):
        self._record("query", table)
        rows = self._matching(table, filters)
        if then_by:
            rows = sorted(rows, key=lambda row: str(row.get(then_by) or ""))
        if order_by:
            rows = sorted(
                rows,
                key=lambda row: (row.get(order_by) is not None, row.get(order_by) or 0),
                reverse=desc,
            )
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table, row):
        self._record("insert", table)
        stored = {"id": str(uuid.uuid4()), **copy.deepcopy(row)}
        self.tables.setdefault(table, []).append(stored)
        return copy.deepcopy(stored)

    async def update(self, table, filters, patch):
        self._record("update", table)
        rows = self._matching(table, filters)
        for row in rows:
            row.update(copy.deepcopy(patch))
        return copy.deepcopy(rows[0]) if rows else None

    async def count(self, table, filters=None, greater_than=None):
        self._record("count", table)
        return sum(
            1 for row in self._matching(table, filters)
            if all((row.get(column) or 0) > value for column, value in (greater_than or {}).items())
        )


SEED = {
    "profiles": [
        {"id": "p1", "user_id": "student-1", "full_name": "Ada Lovelace", "role": "student",
         "total_points": 250, "streak": 8, "last_activity_date": "2024-06-09"},
        {"id": "p2", "user_id": "student-2", "full_name": "Ben Okafor", "role": "student",
         "total_points": 400, "streak": 3, "last_activity_date": "2024-06-01"},
        {"id": "p3", "user_id": "student-3", "full_name": None, "role": "student",
         "total_points": 100, "streak": 0, "last_activity_date": None},
        {"id": "p4", "user_id": "teacher-1", "full_name": "Grace Hopper", "role": "teacher",
         "total_points": 999, "streak": 0, "last_activity_date": None},
    ],
    "courses": [
        {"id": "c1", "title": "Acids and Bases", "description": "pH and neutralisation",
         "category": "Chemistry", "difficulty_level": "beginner", "teacher_id": "teacher-1",
         "created_at": "2024-01-02T09:00:00+00:00",
         "content": {"modules": [{"title": "pH scale", "duration": 15},
                                 {"title": "Indicators", "duration": 20},
                                 {"title": "Neutralisation", "duration": 25},
                                 {"title": "Titration", "duration": 30}]}},
        {"id": "c2", "title": "Organic Reactions", "description": None,
         "category": "Chemistry", "difficulty_level": "advanced", "teacher_id": "teacher-1",
         "created_at": "2024-01-01T09:00:00+00:00", "content": None},
    ],
    "student_progress": [
        {"id": "sp1", "student_id": "student-1", "course_id": "c1", "progress_percentage": 50,
         "completed": False, "points_earned": 50, "last_accessed": "2024-06-08T10:00:00+00:00"},
        {"id": "sp2", "student_id": "student-2", "course_id": "c1", "progress_percentage": 100,
         "completed": True, "points_earned": 100, "last_accessed": "2024-05-01T10:00:00+00:00"},
    ],
    "badges": [
        {"id": "b2", "name": "Week Warrior", "category": "streak", "icon": "🔥",
         "description": "Maintain a 7-day streak", "points_required": 100},
        {"id": "b1", "name": "First Steps", "category": "learning", "icon": "🎯",
         "description": "Complete your first lesson", "points_required": 50},
        {"id": "b3", "name": "Lab Expert", "category": "lab", "icon": "🧪",
         "description": "Complete 10 virtual experiments", "points_required": 200},
    ],
    "student_badges": [
        {"id": "sb1", "student_id": "student-1", "badge_id": "b1", "earned_at": "2024-06-08T10:00:00+00:00"},
        {"id": "sb2", "student_id": "student-2", "badge_id": "b1", "earned_at": "2024-05-01T10:00:00+00:00"},
        {"id": "sb3", "student_id": "student-2", "badge_id": "b2", "earned_at": "2024-05-20T10:00:00+00:00"},
    ],
    "quizzes": [
        {"id": "q1", "title": "Acids and Bases Check", "course_id": "c1", "total_points": 30,
         "time_limit": 5, "created_at": "2024-02-01T09:00:00+00:00",
         "questions": [
             {"id": 1, "question": "What happens when acid and base react together?",
              "options": ["Salt and water", "Only salt", "Only water", "No reaction"],
              "correct": 0, "points": 10,
              "explanation": "They neutralise each other forming salt and water."},
             {"id": 2, "question": "Which is the universal solvent?",
              "options": ["Alcohol", "Oil", "Water", "Vinegar"], "correct": 2, "points": 10},
             {"id": 3, "question": "What is the pH of pure water?",
              "options": ["6", "7", "8", "9"], "correct": 1, "points": 10},
         ]},
        {"id": "q2", "title": "Draft quiz", "course_id": None, "total_points": None,
         "time_limit": None, "created_at": "2024-01-01T09:00:00+00:00", "questions": None},
    ],
    "quiz_attempts": [
        {"id": "qa1", "quiz_id": "q1", "student_id": "student-1", "score": 2,
         "answers": {"1": 0, "2": 2, "3": 3}, "completed_at": "2024-06-01T10:00:00+00:00"},
    ],
}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db():
    return FakeDataService(SEED)


@pytest.fixture
def student_session():
    return Session(user_id="student-1", attributes={"role": "student"})


@pytest.fixture
def teacher_session():
    return Session(user_id="teacher-1", attributes={"role": "teacher"})
