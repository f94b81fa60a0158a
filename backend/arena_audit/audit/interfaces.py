"""Collaborator interfaces consumed by the audit core.

Concrete implementations live in arena_audit.integrations (submission store,
scoring oracle), arena_audit.db.audit_store (persistence) and
arena_audit.notifications (dispatchers). Tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from arena_audit.models.audit import AuditResult, AuditRun
    from arena_audit.models.submission import SubmissionRef
    from arena_audit.notifications.payloads import AuditSummary


class SubmissionStore(Protocol):
    async def list_scored_submissions(self, category: str, limit: int) -> list[SubmissionRef]:
        """Newest first; fewer than ``limit`` when data is short, never an error for that."""
        ...


class ScoringOracle(Protocol):
    async def rescore_submission(self, task_metadata: dict, proof: str) -> float:
        """Fresh score for one submission. May raise on transient failure."""
        ...


class AuditPersistence(Protocol):
    def create_run(self, run: AuditRun) -> None: ...

    def append_result(self, result: AuditResult) -> bool: ...

    def update_run_status(self, run_id: str, final_state: AuditRun) -> None: ...


class NotificationDispatcher(Protocol):
    name: str

    async def send_summary(self, summary: AuditSummary) -> bool: ...

    async def send_alert(self, summary: AuditSummary) -> bool: ...
