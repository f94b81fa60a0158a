"""Notifier Adapter — fire-and-forget fan-out to the configured dispatchers.

A summary goes out for every completed or failed run; an alert goes out
only when the decision says so. Each send runs as its own background task.
Nothing here can change a run's outcome: dispatcher errors, False returns
and timeouts are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging

from arena_audit.audit.alerting import AlertDecision, AuditTrend
from arena_audit.audit.interfaces import NotificationDispatcher
from arena_audit.models.audit import AuditRun
from arena_audit.notifications.payloads import AuditSummary

logger = logging.getLogger(__name__)


class AuditNotifier:
    """Usage:
        notifier = AuditNotifier([SlackWebhookDispatcher(), EmailDispatcher()])
        notifier.notify(run, decision)
        ...
        await notifier.drain(timeout=10)  # before process exit
    """

    def __init__(
        self,
        dispatchers: list[NotificationDispatcher] | None = None,
        frontend_url: str | None = None,
    ) -> None:
        self.dispatchers = list(dispatchers or [])
        self.frontend_url = frontend_url
        # Strong refs so pending sends are not garbage-collected
        self._tasks: set[asyncio.Task] = set()

    def notify(
        self,
        run: AuditRun,
        decision: AlertDecision,
        trend: AuditTrend | None = None,
    ) -> list[asyncio.Task]:
        """Schedule summary (and alert) sends. Returns immediately.

        Must be called from a running event loop.
        """
        if not run.is_terminal:
            logger.warning("Not notifying for run %s in non-terminal state %s", run.id, run.status)
            return []
        if not self.dispatchers:
            logger.debug("No notification dispatchers configured for run %s", run.id)
            return []

        try:
            summary = AuditSummary.build(run, decision, self.frontend_url, trend)
        except Exception as e:
            logger.error("Failed to build notification payload for run %s: %s", run.id, e, exc_info=True)
            return []

        scheduled = []
        for dispatcher in self.dispatchers:
            scheduled.append(self._spawn(dispatcher, "summary", summary))
            if decision.should_alert:
                scheduled.append(self._spawn(dispatcher, "alert", summary))
        return scheduled

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight sends; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            logger.warning("Cancelled %d notification(s) still pending after %.1fs", len(still_pending), timeout or 0)
            await asyncio.gather(*still_pending, return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _spawn(self, dispatcher: NotificationDispatcher, kind: str, summary: AuditSummary) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(dispatcher, kind, summary))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _deliver(dispatcher: NotificationDispatcher, kind: str, summary: AuditSummary) -> bool:
        name = getattr(dispatcher, "name", type(dispatcher).__name__)
        try:
            if kind == "alert":
                ok = await dispatcher.send_alert(summary)
            else:
                ok = await dispatcher.send_summary(summary)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "%s %s dispatch failed for run %s: %s", name, kind, summary.audit_run_id, e, exc_info=True,
            )
            return False

        if not ok:
            logger.debug("%s %s not delivered for run %s", name, kind, summary.audit_run_id)
        return bool(ok)
