"""Tests for the Slack webhook dispatcher."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from arena_audit.notifications.payloads import AuditSummary
from arena_audit.notifications.slack import (
    SlackWebhookDispatcher,
    build_alert_message,
    build_summary_message,
)

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXXX"


def _summary(**overrides) -> AuditSummary:
    data = dict(
        audit_run_id="audit_20260101_000000_abcd1234",
        run_status="completed",
        duration_ms=5400,
        total_submissions=10,
        passed_count=6,
        minor_count=2,
        major_count=1,
        critical_count=1,
        average_deviation=7.3,
        critical_issues_count=1,
        health_score=71,
        health_label="Fair",
        status="critical",
        status_emoji="🔴",
        status_text="🔴 Immediate Action Required",
        should_alert=True,
        alert_reasons=["composite status is critical"],
        band_percentages={"within5": 60, "within10": 80, "within15": 90, "over15": 10},
        category_breakdown={
            "ai-ml": {"count": 5, "avg_deviation": 9.0},
            "fullstack-dev": {"count": 5, "avg_deviation": 5.5},
        },
        report_url="https://arena.test/admin/arena-audit/run/audit_20260101_000000_abcd1234",
    )
    data.update(overrides)
    return AuditSummary(**data)


class TestMessages:
    def test_summary_message_fields(self):
        msg = build_summary_message(_summary())
        assert "Arena Audit Complete" in msg["text"]
        assert "Avg Deviation: 7.3 points" in msg["text"]
        assert "View Full Report" in msg["text"]
        assert msg["blocks"][-1]["elements"][0]["url"].endswith("abcd1234")

    def test_failed_summary_includes_error(self):
        msg = build_summary_message(_summary(run_status="failed", error_message="PersistenceError: locked"))
        assert "Arena Audit Failed" in msg["text"]
        assert any("PersistenceError: locked" in b.get("text", {}).get("text", "") for b in msg["blocks"])

    def test_alert_message_is_danger_when_critical(self):
        msg = build_alert_message(_summary())
        button = msg["blocks"][-1]["elements"][0]
        assert button["style"] == "danger"
        assert "Critical Issues: 1 ❗" in msg["text"]
        assert msg["blocks"][0]["type"] == "header"

    def test_alert_message_primary_when_not_critical(self):
        msg = build_alert_message(_summary(status="major", critical_issues_count=0))
        assert msg["blocks"][-1]["elements"][0]["style"] == "primary"
        assert "Critical Issues: 0 ✅" in msg["text"]

    def test_alert_category_fields_capped(self):
        breakdown = {f"cat-{i}": {"count": 1, "avg_deviation": 1.0} for i in range(6)}
        msg = build_alert_message(_summary(category_breakdown=breakdown))
        category_block = msg["blocks"][3]
        assert len(category_block["fields"]) == 4


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_unconfigured_returns_false(self):
        dispatcher = SlackWebhookDispatcher(webhook_url="")
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            assert await dispatcher.send_summary(_summary()) is False
            mock_post.assert_not_called()

    @pytest.mark.asyncio
    async def test_ok_response_returns_true(self):
        dispatcher = SlackWebhookDispatcher(webhook_url=WEBHOOK)
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, text="ok")
            assert await dispatcher.send_alert(_summary()) is True
            assert mock_post.call_args.args[0] == WEBHOOK
            assert "blocks" in mock_post.call_args.kwargs["json"]
        print("  PASS: ok_response_returns_true")

    @pytest.mark.asyncio
    async def test_non_ok_body_returns_false(self):
        dispatcher = SlackWebhookDispatcher(webhook_url=WEBHOOK)
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, text="invalid_payload")
            assert await dispatcher.send_summary(_summary()) is False

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self):
        dispatcher = SlackWebhookDispatcher(webhook_url=WEBHOOK)
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(500, text="server error")
            assert await dispatcher.send_summary(_summary()) is False

    @pytest.mark.asyncio
    async def test_connection_error_returns_false(self):
        dispatcher = SlackWebhookDispatcher(webhook_url=WEBHOOK)
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock,
                   side_effect=httpx.ConnectError("refused")):
            assert await dispatcher.send_summary(_summary()) is False

    @pytest.mark.asyncio
    async def test_timeout_returns_false(self):
        dispatcher = SlackWebhookDispatcher(webhook_url=WEBHOOK, timeout=0.1)
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock,
                   side_effect=httpx.ReadTimeout("slow")):
            assert await dispatcher.send_alert(_summary()) is False
