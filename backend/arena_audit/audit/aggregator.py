"""Run Aggregator — audit run state machine and result accumulation.

Owns one AuditRun for its lifetime:

    start()   → persists a RUNNING run with zeroed counts
    process() → rescore → classify → persist → count, per submission,
                with bounded concurrency; per-item failures are logged
                and skipped, never raised
    finish()  → RUNNING → COMPLETED with final counts and average deviation
    fail()    → RUNNING → FAILED (counts zeroed, or kept on shutdown)

Completed and failed are terminal; any further transition raises
IllegalRunTransitionError.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

from arena_audit.audit.interfaces import AuditPersistence
from arena_audit.audit.rescorer import RescorerAdapter
from arena_audit.config import RescoreFailurePolicy
from arena_audit.engines.deviation.classification_models import ClassificationResult
from arena_audit.engines.deviation.classifier import DeviationClassifier
from arena_audit.errors import IllegalRunTransitionError
from arena_audit.models.audit import AuditResult, AuditRun, empty_bands, new_run_id, result_id
from arena_audit.models.submission import SubmissionRef

logger = logging.getLogger(__name__)

# === State Transition Table ===
# Key: (from_status, to_status) → guard description
# Absent pair → illegal transition

LEGAL_RUN_TRANSITIONS: dict[tuple[str, str], str] = {
    ("running", "completed"): "All sampled submissions processed and final counts persisted",
    ("running", "failed"): "Run-level error or shutdown outside the per-item loop",
}

_BAND_LIMITS = (("within5", 5), ("within10", 10), ("within15", 15))


class RunAggregator:
    """Processes a sample against the rescorer and classifier for one run.

    Usage:
        aggregator = RunAggregator(store, rescorer, DeviationClassifier(), concurrency=4)
        aggregator.start()
        await aggregator.process(report.submissions)
        run = aggregator.finish()
    """

    def __init__(
        self,
        persistence: AuditPersistence,
        rescorer: RescorerAdapter,
        classifier: DeviationClassifier,
        concurrency: int = 4,
        failure_policy: RescoreFailurePolicy = "fallback_original",
        trigger: str = "manual",
        run_id: str | None = None,
    ) -> None:
        self.persistence = persistence
        self.rescorer = rescorer
        self.classifier = classifier
        self.concurrency = max(1, concurrency)
        self.failure_policy = failure_policy
        self.trigger = trigger
        self._run_id = run_id
        self.run: AuditRun | None = None
        self.results: list[AuditResult] = []

        self._lock = asyncio.Lock()
        self._shutdown = asyncio.Event()
        self._deviation_sum = 0.0
        self._bands = empty_bands()
        self._breakdown: dict[str, dict] = {}
        self._started = 0.0

    # === Lifecycle ===

    def start(self) -> AuditRun:
        """Create and persist a RUNNING run with all counts zero.

        The in-memory run exists even if the persistence write raises, so
        the caller can still fail it.
        """
        if self.run is not None:
            raise IllegalRunTransitionError(self.run.status, "running")

        self._started = time.monotonic()
        self.run = AuditRun(id=self._run_id or new_run_id(), trigger=self.trigger)
        self.persistence.create_run(self.run)
        logger.info("Initialized audit run %s (trigger: %s)", self.run.id, self.trigger)
        return self.run

    async def process(self, sample: list[SubmissionRef]) -> None:
        """Process every sampled submission independently.

        Never raises for per-item failures. Stops picking up new items once
        a shutdown is requested; items already in flight finish or time out.
        """
        run = self._require_running()
        run.sample_size += len(sample)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_one(submission: SubmissionRef) -> None:
            async with semaphore:
                if self._shutdown.is_set():
                    return
                await self._process_one(submission)

        await asyncio.gather(*[run_one(s) for s in sample])

        if self._shutdown.is_set():
            logger.warning(
                "Run %s interrupted: %d/%d submissions processed",
                run.id, run.total_processed, len(sample),
            )

    def finish(self) -> AuditRun:
        """Compute final metrics, persist them, and mark the run COMPLETED.

        If the final write fails, the run stays RUNNING in memory and the
        error propagates so the caller can fail it.
        """
        run = self._require_running()
        self._check_transition(run.status, "completed")
        self._apply_final_metrics(run)
        run.status = "completed"
        try:
            self.persistence.update_run_status(run.id, run)
        except Exception:
            run.status = "running"
            run.completed_at = None
            raise

        logger.info(
            "Audit run %s completed: %d processed (none=%d minor=%d major=%d critical=%d), "
            "avg deviation %.2f, %d failed items, %d rescore failures",
            run.id, run.total_processed, run.none_count, run.minor_count,
            run.major_count, run.critical_count, run.average_deviation,
            run.failed_item_count, run.rescore_failure_count,
        )
        return run

    def fail(self, error_message: str, preserve_counts: bool = False) -> AuditRun:
        """Mark the run FAILED and try to persist it.

        Counts are zeroed unless ``preserve_counts`` (shutdown path). A
        persistence error here is logged, not raised.
        """
        if self.run is None:
            self._started = self._started or time.monotonic()
            self.run = AuditRun(id=self._run_id or new_run_id(), trigger=self.trigger)
        run = self.run
        self._check_transition(run.status, "failed")

        if preserve_counts:
            self._apply_final_metrics(run)
        else:
            self._zero_counts(run)
            self._stamp_completion(run)
        run.status = "failed"
        run.error_message = error_message

        try:
            self.persistence.update_run_status(run.id, run)
        except Exception as e:
            logger.error("Failed to persist failed status for run %s: %s", run.id, e, exc_info=True)

        logger.error("Audit run %s failed: %s", run.id, error_message)
        return run

    def request_shutdown(self) -> None:
        """Stop dispatching new items; in-flight items finish or time out."""
        if not self._shutdown.is_set():
            logger.warning("Shutdown requested for audit run %s", self.run.id if self.run else "-")
            self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    # === Per-item processing ===

    async def _process_one(self, submission: SubmissionRef) -> None:
        run = self.run
        try:
            outcome = await self.rescorer.rescore(submission)
            if not outcome.ok:
                async with self._lock:
                    run.rescore_failure_count += 1
                if self.failure_policy == "inconclusive":
                    async with self._lock:
                        run.inconclusive_count += 1
                    logger.info(
                        "Submission %s marked inconclusive (%s)",
                        submission.submission_id, outcome.error,
                    )
                    return

            classification = self.classifier.classify(
                submission.original_score,
                outcome.score,
                submission.category,
                submission.difficulty,
                submission.context,
            )
            result = self._build_result(submission, outcome.score, outcome.ok, classification)
            stored = self.persistence.append_result(result)
        except Exception as e:
            logger.error(
                "Failed to process submission %s: %s", submission.submission_id, e, exc_info=True,
            )
            async with self._lock:
                run.failed_item_count += 1
            return

        if stored is False:
            logger.warning("Submission %s already recorded in run %s", submission.submission_id, run.id)
            return

        await self._record(result)
        logger.debug(
            "Processed submission %s: %.1f → %.1f (deviation %.1f, %s)",
            submission.submission_id, result.original_score, result.new_score,
            result.deviation, result.severity,
        )

    def _build_result(
        self,
        submission: SubmissionRef,
        new_score: float,
        rescore_ok: bool,
        classification: ClassificationResult,
    ) -> AuditResult:
        return AuditResult(
            id=result_id(self.run.id, submission.submission_id),
            audit_run_id=self.run.id,
            submission_id=submission.submission_id,
            task_id=submission.task_id,
            user_id=submission.user_id,
            category=submission.category,
            difficulty=submission.difficulty,
            original_score=submission.original_score,
            new_score=new_score,
            deviation=classification.magnitude,
            severity=classification.severity,
            critical_issue=classification.critical_issue,
            confidence=classification.confidence,
            suggested_action=classification.suggested_action,
            risk_factors=classification.risk_factors,
            rescore_ok=rescore_ok,
        )

    async def _record(self, result: AuditResult) -> None:
        async with self._lock:
            run = self.run
            attr = f"{result.severity}_count"
            setattr(run, attr, getattr(run, attr) + 1)
            run.total_processed += 1
            if result.critical_issue:
                run.critical_issues_count += 1

            self._deviation_sum += result.deviation
            for band, limit in _BAND_LIMITS:
                if result.deviation <= limit:
                    self._bands[band] += 1
            if result.deviation > 15:
                self._bands["over15"] += 1

            bucket = self._breakdown.setdefault(
                result.category, {"count": 0, "total_deviation": 0.0, "avg_deviation": 0.0}
            )
            bucket["count"] += 1
            bucket["total_deviation"] += result.deviation
            bucket["avg_deviation"] = bucket["total_deviation"] / bucket["count"]

            self.results.append(result)

    # === Helpers ===

    def _require_running(self) -> AuditRun:
        if self.run is None:
            raise IllegalRunTransitionError("none", "running")
        if self.run.status != "running":
            raise IllegalRunTransitionError(self.run.status, "running")
        return self.run

    @staticmethod
    def _check_transition(from_status: str, to_status: str) -> None:
        if (from_status, to_status) not in LEGAL_RUN_TRANSITIONS:
            raise IllegalRunTransitionError(from_status, to_status)

    def _apply_final_metrics(self, run: AuditRun) -> None:
        run.average_deviation = (
            self._deviation_sum / run.total_processed if run.total_processed else 0.0
        )
        run.deviation_bands = dict(self._bands)
        run.category_breakdown = {k: dict(v) for k, v in self._breakdown.items()}
        self._stamp_completion(run)

    def _stamp_completion(self, run: AuditRun) -> None:
        run.completed_at = datetime.now(timezone.utc)
        run.duration_ms = int((time.monotonic() - self._started) * 1000) if self._started else 0

    @staticmethod
    def _zero_counts(run: AuditRun) -> None:
        run.none_count = run.minor_count = run.major_count = run.critical_count = 0
        run.total_processed = 0
        run.average_deviation = 0.0
        run.critical_issues_count = 0
        run.deviation_bands = empty_bands()
        run.category_breakdown = {}
