"""Tests for AuditStore persistence: round-trip, idempotency, terminal states."""

import os
import re
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

import pytest
from arena_audit.errors import IllegalRunTransitionError, PersistenceError
from arena_audit.models.audit import AuditResult, AuditRun, new_run_id, result_id


def _result(run_id: str, sid: str, deviation: float, severity: str) -> AuditResult:
    return AuditResult(
        id=result_id(run_id, sid),
        audit_run_id=run_id,
        submission_id=sid,
        task_id=f"task-{sid}",
        user_id="user-1",
        category="ai-ml",
        difficulty="hard",
        original_score=80.0,
        new_score=80.0 - deviation,
        deviation=deviation,
        severity=severity,
        critical_issue=severity == "critical",
        risk_factors=["High score discrepancy"] if deviation > 20 else ["Standard deviation analysis"],
    )


# === Identity helpers ===


def test_new_run_id_format_and_uniqueness():
    a, b = new_run_id(), new_run_id()
    assert re.fullmatch(r"audit_\d{4}-\d{2}-\d{2}_[0-9a-f]{12}", a)
    assert a != b


def test_result_id_is_deterministic():
    assert result_id("run-1", "sub-9") == "run-1:sub-9"


# === Round-trip ===


def test_run_and_results_round_trip(audit_store):
    run = AuditRun(id="audit_rt")
    audit_store.create_run(run)

    results = [
        _result(run.id, "a", 2.0, "none"),
        _result(run.id, "b", 9.0, "minor"),
        _result(run.id, "c", 30.0, "critical"),
    ]
    for r in results:
        assert audit_store.append_result(r) is True

    run.none_count, run.minor_count, run.critical_count = 1, 1, 1
    run.total_processed = 3
    run.average_deviation = 41.0 / 3
    run.critical_issues_count = 1
    run.deviation_bands = {"within5": 1, "within10": 2, "within15": 2, "over15": 1}
    run.category_breakdown = {"ai-ml": {"count": 3, "total_deviation": 41.0, "avg_deviation": 41.0 / 3}}
    run.status = "completed"
    run.completed_at = datetime.now(timezone.utc)
    audit_store.update_run_status(run.id, run)

    stored = audit_store.get_run(run.id)
    assert stored.counts == run.counts
    assert stored.average_deviation == pytest.approx(run.average_deviation)
    assert stored.status == "completed"
    assert stored.deviation_bands == run.deviation_bands
    assert stored.category_breakdown["ai-ml"]["count"] == 3
    assert sum(stored.counts.values()) == stored.total_processed

    loaded = audit_store.list_results(run.id)
    assert {r.submission_id for r in loaded} == {"a", "b", "c"}
    critical = next(r for r in loaded if r.submission_id == "c")
    assert critical.risk_factors == ["High score discrepancy"]
    assert critical.critical_issue is True
    print("  PASS: run_and_results_round_trip")


def test_get_missing_run_returns_none(audit_store):
    assert audit_store.get_run("nope") is None


# === Idempotency ===


def test_create_run_twice_is_noop(audit_store):
    run = AuditRun(id="audit_dup")
    audit_store.create_run(run)

    again = AuditRun(id="audit_dup", none_count=99, total_processed=99)
    audit_store.create_run(again)

    assert audit_store.get_run("audit_dup").none_count == 0


def test_append_result_twice_returns_false(audit_store):
    audit_store.create_run(AuditRun(id="audit_r"))
    r = _result("audit_r", "a", 1.0, "none")
    assert audit_store.append_result(r) is True
    assert audit_store.append_result(_result("audit_r", "a", 50.0, "critical")) is False

    loaded = audit_store.list_results("audit_r")
    assert len(loaded) == 1
    assert loaded[0].deviation == 1.0


def test_repeated_completion_does_not_double_count(audit_store):
    run = AuditRun(id="audit_retry")
    audit_store.create_run(run)
    run.none_count = run.total_processed = 4
    run.status = "completed"

    audit_store.update_run_status(run.id, run)
    audit_store.update_run_status(run.id, run)

    stored = audit_store.get_run(run.id)
    assert stored.none_count == 4
    assert stored.total_processed == 4
    print("  PASS: repeated_completion_does_not_double_count")


# === Terminal states ===


def test_terminal_run_cannot_change_status(audit_store):
    run = AuditRun(id="audit_term")
    audit_store.create_run(run)
    run.status = "completed"
    audit_store.update_run_status(run.id, run)

    run.status = "failed"
    with pytest.raises(IllegalRunTransitionError):
        audit_store.update_run_status(run.id, run)
    assert audit_store.get_run(run.id).status == "completed"


def test_update_missing_run_raises(audit_store):
    with pytest.raises(PersistenceError):
        audit_store.update_run_status("ghost", AuditRun(id="ghost", status="failed"))


def test_update_with_mismatched_id_raises(audit_store):
    audit_store.create_run(AuditRun(id="audit_a"))
    with pytest.raises(PersistenceError):
        audit_store.update_run_status("audit_a", AuditRun(id="audit_b", status="completed"))


# === Reads ===


def test_list_recent_runs_newest_first(audit_store):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(4):
        audit_store.create_run(AuditRun(id=f"audit_{i}", started_at=base + timedelta(days=i)))

    recent = audit_store.list_recent_runs(limit=3)
    assert [r.id for r in recent] == ["audit_3", "audit_2", "audit_1"]


def test_list_results_only_for_requested_run(audit_store):
    for run_id in ("audit_x", "audit_y"):
        audit_store.create_run(AuditRun(id=run_id))
        audit_store.append_result(_result(run_id, "a", 1.0, "none"))

    loaded = audit_store.list_results("audit_x")
    assert [r.audit_run_id for r in loaded] == ["audit_x"]
