"""Rescorer Adapter — wraps the scoring oracle and isolates per-submission failures.

An oracle error, a timeout, or a non-finite score never reaches the run.
The adapter returns a degraded outcome instead: the submission's original
score with ``ok=False``. What the run does with a degraded outcome is the
aggregator's rescore-failure policy.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass

from arena_audit.audit.interfaces import ScoringOracle
from arena_audit.models.submission import SubmissionRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RescoreOutcome:
    score: float
    ok: bool
    error: str | None = None


class RescorerAdapter:
    """Calls the oracle with an individual timeout per submission."""

    def __init__(self, oracle: ScoringOracle, timeout_seconds: float = 30.0) -> None:
        self.oracle = oracle
        self.timeout_seconds = timeout_seconds

    async def rescore(self, submission: SubmissionRef) -> RescoreOutcome:
        try:
            score = await asyncio.wait_for(
                self.oracle.rescore_submission(submission.task_metadata(), submission.proof),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Rescore timed out after %.1fs for submission %s",
                self.timeout_seconds, submission.submission_id,
            )
            return self._degraded(submission, f"timeout after {self.timeout_seconds:g}s")
        except Exception as e:
            logger.warning("Rescore failed for submission %s: %s", submission.submission_id, e)
            return self._degraded(submission, str(e) or type(e).__name__)

        try:
            value = float(score)
        except (TypeError, ValueError):
            value = math.nan
        if not math.isfinite(value):
            logger.warning(
                "Oracle returned unusable score %r for submission %s",
                score, submission.submission_id,
            )
            return self._degraded(submission, f"unusable score {score!r}")

        return RescoreOutcome(score=value, ok=True)

    @staticmethod
    def _degraded(submission: SubmissionRef, error: str) -> RescoreOutcome:
        # Substituting the original score makes the deviation read as 0
        return RescoreOutcome(score=submission.original_score, ok=False, error=error)
