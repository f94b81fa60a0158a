"""Notification payload shared by all dispatchers."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from arena_audit.audit.alerting import (
    AlertDecision,
    AuditTrend,
    health_score_color,
    health_score_label,
    status_emoji,
    status_text,
)
from arena_audit.config import settings
from arena_audit.models.audit import AuditRun, empty_bands


class AuditSummary(BaseModel):
    """Everything a dispatcher needs to describe one finished run."""

    audit_run_id: str
    run_status: str  # completed | failed
    trigger: str = "manual"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    total_submissions: int = 0
    passed_count: int = 0
    minor_count: int = 0
    major_count: int = 0
    critical_count: int = 0
    average_deviation: float = 0.0
    critical_issues_count: int = 0

    sample_size: int = 0
    failed_item_count: int = 0
    rescore_failure_count: int = 0
    inconclusive_count: int = 0

    health_score: int = 100
    health_label: str = "Excellent"
    health_color: str = "green"
    status: str = "pass"  # composite status
    status_emoji: str = "✅"
    status_text: str = ""
    should_alert: bool = False
    alert_reasons: list[str] = Field(default_factory=list)

    band_percentages: dict[str, int] = Field(default_factory=empty_bands)
    category_breakdown: dict[str, dict] = Field(default_factory=dict)
    trend: AuditTrend | None = None

    error_message: str | None = None
    report_url: str = ""

    @classmethod
    def build(
        cls,
        run: AuditRun,
        decision: AlertDecision,
        frontend_url: str | None = None,
        trend: AuditTrend | None = None,
    ) -> AuditSummary:
        base_url = (frontend_url if frontend_url is not None else settings.frontend_url).rstrip("/")
        metrics = decision.metrics
        return cls(
            audit_run_id=run.id,
            run_status=run.status,
            trigger=run.trigger,
            started_at=run.started_at,
            completed_at=run.completed_at,
            duration_ms=run.duration_ms,
            total_submissions=run.total_processed,
            passed_count=run.none_count,
            minor_count=run.minor_count,
            major_count=run.major_count,
            critical_count=run.critical_count,
            average_deviation=metrics.average_deviation,
            critical_issues_count=run.critical_issues_count,
            sample_size=run.sample_size,
            failed_item_count=run.failed_item_count,
            rescore_failure_count=run.rescore_failure_count,
            inconclusive_count=run.inconclusive_count,
            health_score=decision.health_score,
            health_label=health_score_label(decision.health_score),
            health_color=health_score_color(decision.health_score),
            status=decision.status,
            status_emoji=status_emoji(decision.status),
            status_text=status_text(decision.status),
            should_alert=decision.should_alert,
            alert_reasons=list(decision.reasons),
            band_percentages=dict(metrics.band_percentages),
            category_breakdown=dict(metrics.category_breakdown),
            trend=trend,
            error_message=run.error_message,
            report_url=f"{base_url}/admin/arena-audit/run/{run.id}",
        )
