"""Shared test fixtures for arena-audit tests."""

import asyncio
import os
import sys

import pytest

# Ensure backend is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

from arena_audit.db.audit_store import AuditStore
from arena_audit.errors import PersistenceError, RescoreError
from arena_audit.models import audit, submission  # noqa: F401  (table metadata)
from arena_audit.models.submission import SubmissionContext, SubmissionRef
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine


def _make_ref(
    submission_id: str = "s1",
    category: str = "fullstack-dev",
    difficulty: str = "easy",
    original_score: float = 80.0,
    task_id: str | None = None,
    context: SubmissionContext | None = None,
    **kwargs,
) -> SubmissionRef:
    return SubmissionRef(
        submission_id=submission_id,
        task_id=task_id or submission_id,
        user_id=f"user-{submission_id}",
        category=category,
        difficulty=difficulty,
        original_score=original_score,
        task_title=kwargs.pop("task_title", f"Task {submission_id}"),
        proof=kwargs.pop("proof", "def solve():\n    return 42\n"),
        context=context,
        **kwargs,
    )


class FakeSubmissionStore:
    """In-memory submission store keyed by category."""

    def __init__(self, pools: dict | None = None, error: Exception | None = None):
        self.pools = pools or {}
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def list_scored_submissions(self, category: str, limit: int) -> list[SubmissionRef]:
        self.calls.append((category, limit))
        if self.error is not None:
            raise self.error
        return list(self.pools.get(category, []))[:limit]


class FakeOracle:
    """Scores keyed by task_id. An exception value is raised; a missing key uses ``default``."""

    def __init__(self, scores: dict | None = None, default=None, delay: float = 0.0):
        self.scores = scores or {}
        self.default = default
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def rescore_submission(self, task_metadata: dict, proof: str) -> float:
        task_id = task_metadata["task_id"]
        self.calls.append(task_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            value = self.scores.get(task_id, self.default)
            if isinstance(value, BaseException):
                raise value
            if value is None:
                raise RescoreError(f"no score configured for {task_id}")
            return value
        finally:
            self.in_flight -= 1


class FlakyAuditStore(AuditStore):
    """AuditStore that fails selected writes."""

    def __init__(self, db_engine, fail_results: set[str] | None = None,
                 fail_create: bool = False, fail_updates: int = 0):
        super().__init__(db_engine)
        self.fail_results = fail_results or set()
        self.fail_create = fail_create
        self.fail_updates = fail_updates

    def create_run(self, run):
        if self.fail_create:
            raise PersistenceError("database is locked")
        super().create_run(run)

    def append_result(self, result):
        if result.submission_id in self.fail_results:
            raise PersistenceError(f"disk I/O error writing {result.submission_id}")
        return super().append_result(result)

    def update_run_status(self, run_id, final_state):
        if self.fail_updates > 0:
            self.fail_updates -= 1
            raise PersistenceError("database is locked")
        super().update_run_status(run_id, final_state)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def audit_store(engine):
    return AuditStore(engine)


@pytest.fixture
def make_ref():
    return _make_ref


@pytest.fixture
def fake_store():
    return FakeSubmissionStore


@pytest.fixture
def fake_oracle():
    return FakeOracle


@pytest.fixture
def flaky_store(engine):
    def _factory(**kwargs):
        return FlakyAuditStore(engine, **kwargs)
    return _factory
