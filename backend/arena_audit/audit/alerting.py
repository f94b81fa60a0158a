"""Alert Decision Engine — health score, composite status, and alert policy.

Everything here is a pure function of a finished AuditRun's aggregate
fields (severity counts, average deviation, deviation bands), so a run
re-read from the store evaluates identically to the in-memory one.

Health score:
    100
    - critical_penalty * critical_count
    - major_penalty * major_count
    - high_deviation_rate * (avg - high_baseline)          if avg > high_baseline
      or moderate_deviation_rate * (avg - moderate_baseline) if avg > moderate_baseline
    + consistency bonuses (share of results within 5 / 10 points)
    clamped to [0, 100], rounded.

Alert when ANY of:
    - composite status is critical (any critical result)
    - composite status is major AND average deviation > major_deviation_threshold
    - health score < health_threshold
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from arena_audit.config import AlertPolicy, HealthWeights
from arena_audit.models.audit import AuditRun, empty_bands

logger = logging.getLogger(__name__)

CompositeStatus = Literal["pass", "minor", "major", "critical"]
TrendDirection = Literal["improving", "stable", "declining"]

_STATUS_EMOJI = {"critical": "🚨", "major": "⚠️", "minor": "🔶", "pass": "✅"}
_STATUS_TEXT = {
    "critical": "🔴 Immediate Action Required",
    "major": "🟡 Review Recommended",
    "minor": "🟠 Monitor Closely",
    "pass": "🟢 All Clear",
}


class SeveritySummary(BaseModel):
    total_results: int = 0
    passed_count: int = 0
    minor_count: int = 0
    major_count: int = 0
    critical_count: int = 0


class AuditHealthMetrics(BaseModel):
    """Dashboard/notification view of one run's health."""

    average_deviation: float = 0.0
    status: CompositeStatus = "pass"
    band_counts: dict[str, int] = Field(default_factory=empty_bands)
    band_percentages: dict[str, int] = Field(default_factory=empty_bands)
    health_score: int = 100
    critical_issues_count: int = 0
    summary: SeveritySummary = Field(default_factory=SeveritySummary)
    category_breakdown: dict[str, dict] = Field(default_factory=dict)

    @classmethod
    def from_run(cls, run: AuditRun, weights: HealthWeights | None = None) -> AuditHealthMetrics:
        total = run.total_processed
        bands = {**empty_bands(), **(run.deviation_bands or {})}
        percentages = {
            k: (round(v / total * 100) if total else 0) for k, v in bands.items()
        }
        return cls(
            average_deviation=round(run.average_deviation, 2),
            status=composite_status(run),
            band_counts=bands,
            band_percentages=percentages,
            health_score=compute_health_score(run, weights),
            critical_issues_count=run.critical_issues_count,
            summary=SeveritySummary(
                total_results=total,
                passed_count=run.none_count,
                minor_count=run.minor_count,
                major_count=run.major_count,
                critical_count=run.critical_count,
            ),
            category_breakdown=dict(run.category_breakdown or {}),
        )


class AlertDecision(BaseModel):
    health_score: int
    should_alert: bool
    status: CompositeStatus
    reasons: list[str] = Field(default_factory=list)
    metrics: AuditHealthMetrics


class AuditTrend(BaseModel):
    trend: TrendDirection = "stable"
    average_deviation_trend: float = 0.0
    health_score_trend: float = 0.0
    critical_issues_trend: float = 0.0


# === Pure functions ===


def composite_status(run: AuditRun) -> CompositeStatus:
    """Overall run status derived from counts and average deviation."""
    if run.critical_count > 0:
        return "critical"
    if run.average_deviation > 10 or run.major_count > run.total_processed * 0.2:
        return "major"
    if run.average_deviation > 5 or run.major_count > 0:
        return "minor"
    return "pass"


def compute_health_score(run: AuditRun, weights: HealthWeights | None = None) -> int:
    """0-100 health score; non-increasing in critical and major counts."""
    w = weights or HealthWeights()
    avg = run.average_deviation

    score = 100.0
    score -= run.critical_count * w.critical_penalty
    score -= run.major_count * w.major_penalty

    if avg > w.high_deviation_baseline:
        score -= (avg - w.high_deviation_baseline) * w.high_deviation_rate
    elif avg > w.moderate_deviation_baseline:
        score -= (avg - w.moderate_deviation_baseline) * w.moderate_deviation_rate

    total = run.total_processed
    if total:
        bands = run.deviation_bands or {}
        within5_pct = bands.get("within5", 0) / total * 100
        within10_pct = bands.get("within10", 0) / total * 100
        if within5_pct >= 80:
            score += w.within5_bonus_high
        elif within5_pct >= 60:
            score += w.within5_bonus_low
        if within10_pct >= 90:
            score += w.within10_bonus

    return int(max(0, min(100, round(score))))


def health_score_label(score: int) -> str:
    if score >= 90:
        return "Excellent"
    if score >= 80:
        return "Good"
    if score >= 70:
        return "Fair"
    if score >= 60:
        return "Poor"
    return "Critical"


def health_score_color(score: int) -> str:
    if score >= 80:
        return "green"
    if score >= 60:
        return "yellow"
    if score >= 40:
        return "orange"
    return "red"


def status_emoji(status: str) -> str:
    return _STATUS_EMOJI.get(status, "📊")


def status_text(status: str) -> str:
    return _STATUS_TEXT.get(status, "📊 Normal")


# === Engine ===


class AlertDecisionEngine:
    """Evaluates a finished run against the configured weights and policy.

    Usage:
        engine = AlertDecisionEngine(HealthWeights.from_settings(), AlertPolicy.from_settings())
        decision = engine.evaluate(run)
        if decision.should_alert: ...
    """

    def __init__(
        self,
        weights: HealthWeights | None = None,
        policy: AlertPolicy | None = None,
    ) -> None:
        self.weights = weights or HealthWeights()
        self.policy = policy or AlertPolicy()

    def evaluate(self, run: AuditRun) -> AlertDecision:
        metrics = AuditHealthMetrics.from_run(run, self.weights)
        status = metrics.status
        health = metrics.health_score

        reasons: list[str] = []
        if status == "critical":
            reasons.append(f"{run.critical_count} critical deviation(s)")
        if status == "major" and run.average_deviation > self.policy.major_deviation_threshold:
            reasons.append(
                f"major status with average deviation {run.average_deviation:.2f} "
                f"> {self.policy.major_deviation_threshold:g}"
            )
        if health < self.policy.health_threshold:
            reasons.append(f"health score {health} < {self.policy.health_threshold}")

        decision = AlertDecision(
            health_score=health,
            should_alert=bool(reasons),
            status=status,
            reasons=reasons,
            metrics=metrics,
        )
        if decision.should_alert:
            logger.warning("Audit run %s requires alert: %s", run.id, "; ".join(reasons))
        return decision


# === Trend ===


def calculate_audit_trend(
    runs: list[AuditRun],
    weights: HealthWeights | None = None,
) -> AuditTrend:
    """Compare the 3 most recent runs with the 3 before them.

    Each of average deviation, health score and critical count votes
    improving or declining; the majority wins, ties are stable.
    """
    if len(runs) < 4:
        return AuditTrend()

    def _started(r: AuditRun) -> datetime:
        ts = r.started_at
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)

    ordered = sorted(runs, key=_started, reverse=True)
    recent, older = ordered[:3], ordered[3:6]

    def _mean(values: list[float]) -> float:
        return sum(values) / len(values)

    deviation_trend = _mean([r.average_deviation for r in recent]) - _mean(
        [r.average_deviation for r in older]
    )
    health_trend = _mean([compute_health_score(r, weights) for r in recent]) - _mean(
        [compute_health_score(r, weights) for r in older]
    )
    critical_trend = _mean([r.critical_count for r in recent]) - _mean(
        [r.critical_count for r in older]
    )

    improving = declining = 0
    for delta, better_when_lower in (
        (deviation_trend, True),
        (health_trend, False),
        (critical_trend, True),
    ):
        if delta == 0:
            continue
        if (delta < 0) == better_when_lower:
            improving += 1
        else:
            declining += 1

    if improving > declining:
        trend: TrendDirection = "improving"
    elif declining > improving:
        trend = "declining"
    else:
        trend = "stable"

    return AuditTrend(
        trend=trend,
        average_deviation_trend=round(deviation_trend, 2),
        health_score_trend=round(health_trend, 2),
        critical_issues_trend=round(critical_trend, 2),
    )
