"""SQL-backed submission store — lists already-scored submissions by category."""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from arena_audit.models.submission import ScoredSubmission, SubmissionRef

logger = logging.getLogger(__name__)


class SqlSubmissionStore:
    """Reads the platform's scored_submission table.

    Returns fewer than ``limit`` rows when there is not enough data; an
    empty category is not an error.
    """

    def __init__(self, db_engine: Engine | None = None) -> None:
        if db_engine is None:
            from arena_audit.db.database import engine as default_engine

            db_engine = default_engine
        self.engine = db_engine

    async def list_scored_submissions(self, category: str, limit: int) -> list[SubmissionRef]:
        """Most recently scored submissions in a category, newest first."""
        with Session(self.engine) as session:
            rows = session.exec(
                select(ScoredSubmission)
                .where(ScoredSubmission.category == category)
                .where(ScoredSubmission.status == "scored")
                .where(ScoredSubmission.score.isnot(None))
                .order_by(ScoredSubmission.scored_at.desc())
                .limit(limit)
            ).all()
            refs = [row.to_ref() for row in rows]

        logger.debug("Submission store: %d scored rows for %s (limit %d)", len(refs), category, limit)
        return refs
