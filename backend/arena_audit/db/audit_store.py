"""AuditStore — durable, retry-safe persistence for audit runs and results.

Every write is idempotent on identity:
- create_run: a second call with the same run id is a no-op
- append_result: results are keyed by "{run_id}:{submission_id}"
- update_run_status: writes absolute values, never increments; repeating
  an identical terminal update is a no-op, and a terminal run can never
  be moved to a different terminal state

Storage: SQLite (audit_run, audit_result tables) via SQLModel.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from arena_audit.errors import IllegalRunTransitionError, PersistenceError
from arena_audit.models.audit import AuditResult, AuditRun

logger = logging.getLogger(__name__)


class AuditStore:
    """Reads and writes AuditRun / AuditResult rows.

    Usage:
        store = AuditStore(engine)
        store.create_run(run)
        store.append_result(result)
        store.update_run_status(run.id, run)
    """

    def __init__(self, db_engine: Engine | None = None) -> None:
        if db_engine is None:
            from arena_audit.db.database import engine as default_engine

            db_engine = default_engine
        self.engine = db_engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    # === Writes ===

    def create_run(self, run: AuditRun) -> None:
        """Insert a new run. No-op if a run with this id already exists."""
        with self._session() as session:
            if session.get(AuditRun, run.id) is not None:
                logger.debug("Run %s already exists, skipping create", run.id)
                return
            session.merge(run)
            session.commit()

    def append_result(self, result: AuditResult) -> bool:
        """Insert a result. Returns False if it was already stored."""
        with self._session() as session:
            if session.get(AuditResult, result.id) is not None:
                logger.debug("Result %s already stored, skipping", result.id)
                return False
            session.merge(result)
            session.commit()
            return True

    def update_run_status(self, run_id: str, final_state: AuditRun) -> None:
        """Persist the run's counters and status as absolute values.

        Raises:
            IllegalRunTransitionError: If the stored run is already terminal
                with a different status.
            PersistenceError: If the run does not exist or the write fails.
        """
        if final_state.id != run_id:
            raise PersistenceError(f"Run id mismatch: {run_id} != {final_state.id}")

        with self._session() as session:
            stored = session.get(AuditRun, run_id)
            if stored is None:
                raise PersistenceError(f"Audit run {run_id} not found")
            if stored.is_terminal:
                if stored.status == final_state.status:
                    logger.debug("Run %s already %s, skipping update", run_id, stored.status)
                    return
                raise IllegalRunTransitionError(stored.status, final_state.status)
            session.merge(final_state)
            session.commit()

    # === Reads ===

    def get_run(self, run_id: str) -> AuditRun | None:
        with self._session() as session:
            run = session.get(AuditRun, run_id)
            if run is not None:
                session.expunge(run)
            return run

    def list_results(self, run_id: str) -> list[AuditResult]:
        """All results for a run, oldest first."""
        with self._session() as session:
            results = session.exec(
                select(AuditResult)
                .where(AuditResult.audit_run_id == run_id)
                .order_by(AuditResult.timestamp)
            ).all()
            for r in results:
                session.expunge(r)
            return list(results)

    def list_recent_runs(self, limit: int = 10) -> list[AuditRun]:
        """Most recent runs first."""
        with self._session() as session:
            runs = session.exec(
                select(AuditRun).order_by(AuditRun.started_at.desc()).limit(limit)
            ).all()
            for run in runs:
                session.expunge(run)
            return list(runs)
