"""Scoring-drift audit models.

Includes: AuditRun (SQL table), AuditResult (SQL table).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from sqlmodel import JSON, Column, SQLModel
from sqlmodel import Field as SQLField

Severity = Literal["none", "minor", "major", "critical"]
RunStatus = Literal["running", "completed", "failed"]
Confidence = Literal["low", "medium", "high"]
SuggestedAction = Literal["allow", "flag_for_review", "escalate", "override"]
RunTrigger = Literal["manual", "scheduled"]

SEVERITIES: tuple[str, ...] = ("none", "minor", "major", "critical")
TERMINAL_RUN_STATUSES = frozenset({"completed", "failed"})


def new_run_id() -> str:
    """Date-prefixed run id, unique across concurrent runs."""
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return f"audit_{today}_{uuid4().hex[:12]}"


def result_id(run_id: str, submission_id: str) -> str:
    """Deterministic AuditResult identity, so retried appends are no-ops."""
    return f"{run_id}:{submission_id}"


def empty_bands() -> dict[str, int]:
    return {"within5": 0, "within10": 0, "within15": 0, "over15": 0}


class AuditRun(SQLModel, table=True):
    """A single execution of the scoring-drift audit."""

    __tablename__ = "audit_run"

    id: str = SQLField(default_factory=new_run_id, primary_key=True)
    trigger: str = "manual"  # RunTrigger
    status: str = "running"  # RunStatus
    started_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    # Per-severity tally; sum == total_processed
    none_count: int = 0
    minor_count: int = 0
    major_count: int = 0
    critical_count: int = 0
    total_processed: int = 0

    average_deviation: float = 0.0
    critical_issues_count: int = 0

    # Per-item telemetry
    sample_size: int = 0
    inconclusive_count: int = 0
    rescore_failure_count: int = 0
    failed_item_count: int = 0

    deviation_bands: dict = SQLField(default_factory=empty_bands, sa_column=Column(JSON))
    category_breakdown: dict = SQLField(default_factory=dict, sa_column=Column(JSON))

    duration_ms: int = 0
    error_message: str | None = None

    @property
    def counts(self) -> dict[str, int]:
        return {
            "none": self.none_count,
            "minor": self.minor_count,
            "major": self.major_count,
            "critical": self.critical_count,
        }

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES


class AuditResult(SQLModel, table=True):
    """Outcome of re-scoring one sampled submission within a run."""

    __tablename__ = "audit_result"

    id: str = SQLField(primary_key=True)  # result_id(run_id, submission_id)
    audit_run_id: str = SQLField(foreign_key="audit_run.id", index=True)
    submission_id: str
    task_id: str
    user_id: str
    category: str
    difficulty: str = "medium"

    original_score: float
    new_score: float
    deviation: float  # |new_score - original_score|
    severity: str  # Severity
    critical_issue: bool = False
    confidence: str = "high"  # Confidence
    suggested_action: str = "allow"  # SuggestedAction
    risk_factors: list[str] = SQLField(default_factory=list, sa_column=Column(JSON))
    rescore_ok: bool = True  # False = oracle failed, original score substituted

    timestamp: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
