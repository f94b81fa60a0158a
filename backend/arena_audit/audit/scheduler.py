"""Audit Scheduler — periodic scoring-drift audits in a background task.

Runs the pipeline with trigger="scheduled" every ``interval_hours``.
Single-process asyncio loop; a run that raises unexpectedly backs off
for 5 minutes before the next attempt.
"""

from __future__ import annotations

import asyncio
import logging

from arena_audit.audit.pipeline import DriftAuditPipeline

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 300


class AuditScheduler:
    """Usage:
        scheduler = AuditScheduler(pipeline, interval_hours=24.0, enabled=True)
        await scheduler.start()
        # ... process runs ...
        scheduler.stop()
    """

    def __init__(
        self,
        pipeline: DriftAuditPipeline,
        interval_hours: float = 24.0,
        enabled: bool = True,
        run_immediately: bool = False,
    ) -> None:
        self._pipeline = pipeline
        self._interval_seconds = interval_hours * 3600
        self._enabled = enabled
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None
        self._running = False
        self._runs_completed = 0
        self._runs_failed = 0
        self._last_run_id: str | None = None
        self._last_status: str | None = None
        self._in_run = False

    async def start(self) -> None:
        """Start the scheduler as a background task."""
        if not self._enabled:
            logger.info("Audit scheduler disabled")
            return
        if self._running:
            logger.warning("Audit scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Audit scheduler started (interval: %.1f hours)",
            self._interval_seconds / 3600,
        )

    def stop(self) -> None:
        """Stop the scheduler and ask any in-flight run to wind down.

        A sleeping loop is cancelled. An in-flight run is not: it stops
        taking new submissions, records itself as failed with partial
        counts, and the loop exits after it returns.
        """
        self._running = False
        self._pipeline.request_shutdown()
        if not self._task or self._task.done():
            return
        if self._in_run:
            logger.info("Audit scheduler stopping after the in-flight run")
        else:
            self._task.cancel()
            logger.info("Audit scheduler stopped")

    async def wait(self) -> None:
        """Block until the loop exits (after stop())."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _loop(self) -> None:
        """Main scheduling loop."""
        first = True
        while self._running:
            try:
                if not (first and self._run_immediately):
                    await asyncio.sleep(self._interval_seconds)
                first = False
                if not self._running:
                    break
                self._in_run = True
                try:
                    await self._run_once()
                finally:
                    self._in_run = False
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Audit scheduler error: %s", e, exc_info=True)
                if self._running:
                    await asyncio.sleep(ERROR_BACKOFF_SECONDS)

    async def _run_once(self) -> None:
        run, decision = await self._pipeline.run(trigger="scheduled")
        self._last_run_id = run.id
        self._last_status = run.status
        if run.status == "completed":
            self._runs_completed += 1
        else:
            self._runs_failed += 1
        logger.info(
            "Scheduled audit %s finished: %s (health %d, alert=%s)",
            run.id, run.status, decision.health_score, decision.should_alert,
        )

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def get_status(self) -> dict:
        """Get scheduler status for health checks."""
        return {
            "enabled": self._enabled,
            "running": self.is_running,
            "interval_hours": self._interval_seconds / 3600,
            "runs_completed": self._runs_completed,
            "runs_failed": self._runs_failed,
            "last_run_id": self._last_run_id,
            "last_status": self._last_status,
        }
