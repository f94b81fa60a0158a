"""Tests for AuditNotifier fan-out."""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

import pytest
from arena_audit.audit.alerting import AlertDecisionEngine
from arena_audit.models.audit import AuditRun
from arena_audit.notifications.notifier import AuditNotifier


def _run(status: str = "completed", critical: int = 0) -> AuditRun:
    return AuditRun(
        id="audit_notify",
        status=status,
        none_count=10,
        critical_count=critical,
        total_processed=10 + critical,
        critical_issues_count=critical,
        average_deviation=1.0,
    )


def _dispatcher(name: str = "fake", ok: bool = True, error: Exception | None = None) -> MagicMock:
    d = MagicMock()
    d.name = name
    d.send_summary = AsyncMock(return_value=ok, side_effect=error)
    d.send_alert = AsyncMock(return_value=ok, side_effect=error)
    return d


@pytest.mark.asyncio
async def test_clean_run_sends_summary_only():
    d = _dispatcher()
    run = _run()
    notifier = AuditNotifier([d], frontend_url="https://arena.test/")

    tasks = notifier.notify(run, AlertDecisionEngine().evaluate(run))
    await notifier.drain(timeout=1)

    assert len(tasks) == 1
    d.send_summary.assert_awaited_once()
    d.send_alert.assert_not_awaited()
    summary = d.send_summary.call_args.args[0]
    assert summary.report_url == "https://arena.test/admin/arena-audit/run/audit_notify"
    assert notifier.pending == 0


@pytest.mark.asyncio
async def test_alerting_run_sends_summary_and_alert_to_every_dispatcher():
    slack, email = _dispatcher("slack"), _dispatcher("email")
    run = _run(critical=2)
    notifier = AuditNotifier([slack, email])

    tasks = notifier.notify(run, AlertDecisionEngine().evaluate(run))
    results = await asyncio.gather(*tasks)

    assert results == [True, True, True, True]
    for d in (slack, email):
        d.send_summary.assert_awaited_once()
        d.send_alert.assert_awaited_once()
    print("  PASS: alerting_run_sends_summary_and_alert_to_every_dispatcher")


@pytest.mark.asyncio
async def test_dispatcher_errors_are_swallowed():
    broken, healthy = _dispatcher("broken", error=RuntimeError("boom")), _dispatcher("healthy")
    run = _run(critical=1)
    notifier = AuditNotifier([broken, healthy])

    results = await asyncio.gather(*notifier.notify(run, AlertDecisionEngine().evaluate(run)))

    assert results == [False, False, True, True]
    healthy.send_alert.assert_awaited_once()


@pytest.mark.asyncio
async def test_non_terminal_run_is_not_notified():
    d = _dispatcher()
    run = _run(status="running")
    notifier = AuditNotifier([d])

    assert notifier.notify(run, AlertDecisionEngine().evaluate(run)) == []
    d.send_summary.assert_not_called()


@pytest.mark.asyncio
async def test_no_dispatchers_is_a_no_op():
    run = _run()
    assert AuditNotifier().notify(run, AlertDecisionEngine().evaluate(run)) == []


@pytest.mark.asyncio
async def test_drain_cancels_slow_dispatchers():
    async def hang(summary):
        await asyncio.sleep(30)
        return True

    d = _dispatcher()
    d.send_summary = AsyncMock(side_effect=hang)
    run = _run()
    notifier = AuditNotifier([d])

    tasks = notifier.notify(run, AlertDecisionEngine().evaluate(run))
    await notifier.drain(timeout=0.05)

    assert all(t.done() for t in tasks)
    assert tasks[0].cancelled()
    assert notifier.pending == 0
    print("  PASS: drain_cancels_slow_dispatchers")
