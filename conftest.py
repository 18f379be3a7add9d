"""Shared fixtures: fake time, small question banks, scripted result stores."""
import random

import pytest

from cbt.clock import SessionClock
from cbt.engine import SessionController
from cbt.errors import ResultPersistenceFailure
from cbt.models import ExamDefinition, Question, QuestionBank
from cbt.result_store import InMemoryResultStore


class FakeTime:
    """Monotonic and wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    def __init__(self, fake_time: FakeTime = None):
        self.calls = []
        self.fake_time = fake_time

    def __call__(self, seconds: float):
        self.calls.append(seconds)
        if self.fake_time is not None:
            self.fake_time.advance(seconds)


class FlakyResultStore(InMemoryResultStore):
    """Fails the first `failures` appends, then behaves like the in-memory store."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    def append(self, result):
        if self.failures > 0:
            self.failures -= 1
            self.append_calls += 1
            raise ResultPersistenceFailure("store unavailable")
        super().append(result)


def make_questions(n: int = 4, n_options: int = 4):
    """Question i has its correct answer at canonical index i % n_options."""
    return [
        Question(
            id=f"q{i}",
            text=f"Question {i}?",
            options=tuple(f"q{i}-opt{j}" for j in range(n_options)),
            correct_option_index=i % n_options,
        )
        for i in range(n)
    ]


def make_exam(questions, count=None, duration_seconds=60, **kwargs):
    return ExamDefinition(
        id="exam-1",
        title="Sample Exam",
        duration_seconds=duration_seconds,
        question_ids=tuple(q.id for q in questions),
        presented_question_count=len(questions) if count is None else count,
        **kwargs,
    )


def presented_position_of_correct(controller, position):
    """Presented option position holding the canonical correct answer at `position`."""
    entry = controller.presentation[position]
    question = controller.bank[entry.original_question_id]
    return entry.option_order.presented_position(question.correct_option_index)


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def questions():
    return make_questions()


@pytest.fixture
def bank(questions):
    return QuestionBank(questions)


@pytest.fixture
def exam(questions):
    return make_exam(questions)


@pytest.fixture
def store():
    return InMemoryResultStore()


@pytest.fixture
def make_controller(fake_time):
    """Factory for controllers wired to fake time and a seeded RNG."""

    def _make(result_store, seed=7, **kwargs):
        sleep = kwargs.pop("sleep", RecordingSleep(fake_time))
        return SessionController(
            result_store,
            "candidate-001",
            rng=random.Random(seed),
            clock=SessionClock(time_source=fake_time),
            wall_clock=fake_time,
            sleep=sleep,
            **kwargs,
        )

    return _make


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the postgrest query builder for db.py and cbt/database.py."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.filters = []
        self.payload = None
        self.on_conflict = "id"
        self.ignore_duplicates = False
        self._range = None
        self._limit = None

    def select(self, *columns, **kwargs):
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, *args, **kwargs):
        return self

    def limit(self, n):
        self._limit = n
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def upsert(self, rows, on_conflict="id", ignore_duplicates=False):
        self.op = "upsert"
        self.payload = rows if isinstance(rows, list) else [rows]
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, changes):
        self.op = "update"
        self.payload = changes
        return self

    def delete(self):
        self.op = "delete"
        return self

    def _matches(self, row):
        return all(row.get(c) == v for c, v in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        if self.db.fail_next > 0:
            self.db.fail_next -= 1
            raise ConnectionError("network down")
        rows = self.db.tables.setdefault(self.table, [])
        if self.op == "select":
            found = [dict(r) for r in rows if self._matches(r)]
            if self._range is not None:
                found = found[self._range[0]:self._range[1] + 1]
            if self._limit is not None:
                found = found[:self._limit]
            return FakeResponse(found)
        if self.op == "upsert":
            for new in self.payload:
                existing = next((r for r in rows if r.get(self.on_conflict) == new[self.on_conflict]), None)
                if existing is None:
                    rows.append(dict(new))
                elif not self.ignore_duplicates:
                    existing.update(new)
            return FakeResponse([dict(r) for r in self.payload])
        if self.op == "update":
            changed = [r for r in rows if self._matches(r)]
            for r in changed:
                r.update(self.payload)
            return FakeResponse([dict(r) for r in changed])
        if self.op == "delete":
            self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResponse([])
        raise AssertionError(f"unexpected op {self.op}")


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.fail_next = 0
        self.calls = []

    def table(self, name):
        return FakeQuery(self, name)


def exam_rows(questions, exam_id="exam-1", duration_seconds=60, count=None):
    """(exam row, question rows) in table shape."""
    exam_row = {
        "id": exam_id,
        "title": "Sample Exam",
        "duration_seconds": duration_seconds,
        "question_ids": [q.id for q in questions],
        "presented_question_count": len(questions) if count is None else count,
        "shuffle_questions": True,
        "shuffle_options": True,
    }
    question_rows = [
        {
            "id": q.id,
            "exam_id": exam_id,
            "text": q.text,
            "options": list(q.options),
            "correct_option_index": q.correct_option_index,
            "explanation": "",
        }
        for q in questions
    ]
    return exam_row, question_rows


@pytest.fixture
def supabase(questions):
    exam_row, question_rows = exam_rows(questions)
    return FakeSupabase({"exams": [exam_row], "questions": question_rows, "results": []})
