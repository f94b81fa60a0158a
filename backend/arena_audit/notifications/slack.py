"""Slack incoming-webhook dispatcher.

Posts a JSON body with ``text`` (fallback) and ``blocks`` (rich layout).
Slack answers a successful webhook with the literal body ``ok``.
Never raises: failures are logged and reported as False.
"""

from __future__ import annotations

import logging

import httpx

from arena_audit.config import settings
from arena_audit.notifications.payloads import AuditSummary

logger = logging.getLogger(__name__)


def _mrkdwn(text: str) -> dict:
    return {"type": "mrkdwn", "text": text}


def _results_line(summary: AuditSummary) -> str:
    return (
        f"{summary.passed_count} ✅ {summary.minor_count} ⚠️ "
        f"{summary.major_count} 🔶 {summary.critical_count} ❗"
    )


def build_summary_message(summary: AuditSummary) -> dict:
    """Run-complete message, sent for every completed or failed run."""
    title = "Arena Audit Complete" if summary.run_status == "completed" else "Arena Audit Failed"
    duration = f"{summary.duration_ms}ms" if summary.duration_ms else "N/A"
    text = (
        f"📊 *{title}*\n"
        f"• Run ID: `{summary.audit_run_id}`\n"
        f"• Submissions: {summary.total_submissions}\n"
        f"• Passed: {summary.passed_count} ✅\n"
        f"• Minor: {summary.minor_count} ⚠️\n"
        f"• Major: {summary.major_count} 🔶\n"
        f"• Critical: {summary.critical_count} ❗\n"
        f"• Avg Deviation: {summary.average_deviation:.1f} points\n"
        f"• Duration: {duration}\n"
        f"• <{summary.report_url}|View Full Report>"
    )
    blocks: list[dict] = [
        {
            "type": "section",
            "text": _mrkdwn(f"📊 *Arena Nightly {title.split(' ', 1)[1]}*\nRun ID: `{summary.audit_run_id}`"),
        },
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*Results:*\n{_results_line(summary)}"),
                _mrkdwn(
                    f"*Metrics:*\n{summary.average_deviation:.1f} avg deviation\n"
                    f"{summary.total_submissions} total\n"
                    f"Health {summary.health_score} ({summary.health_label})"
                ),
            ],
        },
    ]
    if summary.trend is not None and summary.trend.trend != "stable":
        blocks.append({"type": "context", "elements": [_mrkdwn(f"Trend: {summary.trend.trend}")]})
    if summary.run_status == "failed" and summary.error_message:
        blocks.append({"type": "section", "text": _mrkdwn(f"*Error:*\n```{summary.error_message}```")})
    blocks.append(
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Report", "emoji": True},
                    "url": summary.report_url,
                }
            ],
        }
    )
    return {"text": text, "blocks": blocks}


def build_alert_message(summary: AuditSummary) -> dict:
    """Alert message, sent only when the run crossed an alert condition."""
    emoji = summary.status_emoji
    deviation_emoji = "📈" if summary.average_deviation > 10 else "📊"
    critical_emoji = "❗" if summary.critical_issues_count > 0 else "✅"
    text = (
        f"{emoji} *Nightly Audit Alert* {emoji}\n"
        f"• Run ID: `{summary.audit_run_id}`\n"
        f"• Deviation: {summary.average_deviation:.1f} {deviation_emoji}\n"
        f"• Critical Issues: {summary.critical_issues_count} {critical_emoji}\n"
        f"• Health Score: {summary.health_score} ({summary.health_label})\n"
        f"• Status: {summary.status_text}"
    )
    pct = summary.band_percentages
    blocks: list[dict] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"{emoji} Arena Nightly Audit Alert {emoji}", "emoji": True},
        },
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*Run ID:*\n`{summary.audit_run_id}`"),
                _mrkdwn(f"*Status:*\n{summary.status_text}"),
                _mrkdwn(f"*Total Submissions:*\n{summary.total_submissions}"),
                _mrkdwn(f"*Average Deviation:*\n{summary.average_deviation:.1f} points"),
                _mrkdwn(f"*Critical Issues:*\n{summary.critical_issues_count}"),
                _mrkdwn(f"*Health Score:*\n{summary.health_score} ({summary.health_label})"),
            ],
        },
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*Results Breakdown:*\n{_results_line(summary)}"),
                _mrkdwn(
                    f"*Deviation Ranges:*\n≤5: {pct.get('within5', 0)}%\n≤10: {pct.get('within10', 0)}%\n"
                    f"≤15: {pct.get('within15', 0)}%\n>15: {pct.get('over15', 0)}%"
                ),
            ],
        },
    ]
    if summary.category_breakdown:
        fields = [
            _mrkdwn(
                f"*{category.upper()}:*\n{stats.get('count', 0)} submissions, "
                f"{stats.get('avg_deviation', 0.0):.1f} avg deviation"
            )
            for category, stats in summary.category_breakdown.items()
        ]
        blocks.append({"type": "section", "fields": fields[:4]})  # Slack caps fields per section
    if summary.alert_reasons:
        reasons = "\n".join(f"• {r}" for r in summary.alert_reasons)
        blocks.append({"type": "section", "text": _mrkdwn(f"*Why:*\n{reasons}")})
    blocks.append(
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Full Report", "emoji": True},
                    "url": summary.report_url,
                    "style": "danger" if summary.status == "critical" else "primary",
                }
            ],
        }
    )
    return {"text": text, "blocks": blocks}


class SlackWebhookDispatcher:
    """Notification dispatcher for a Slack incoming webhook."""

    name = "slack"

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None) -> None:
        self.webhook_url = settings.slack_webhook_url if webhook_url is None else webhook_url
        self._timeout = settings.notification_timeout_seconds if timeout is None else timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    async def send_summary(self, summary: AuditSummary) -> bool:
        return await self._post(build_summary_message(summary), "summary", summary.audit_run_id)

    async def send_alert(self, summary: AuditSummary) -> bool:
        return await self._post(build_alert_message(summary), "alert", summary.audit_run_id)

    async def _post(self, message: dict, kind: str, run_id: str) -> bool:
        if not self.is_configured:
            logger.debug("Slack webhook not configured, skipping %s", kind)
            return False

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.webhook_url, json=message)
        except httpx.TimeoutException:
            logger.warning("Slack %s for run %s timed out", kind, run_id)
            return False
        except Exception as e:
            logger.warning("Slack %s for run %s failed: %s", kind, run_id, e)
            return False

        if resp.status_code >= 400:
            logger.warning("Slack %s for run %s failed: HTTP %d: %s", kind, run_id, resp.status_code, resp.text)
            return False
        if resp.text.strip() != "ok":
            logger.warning("Slack %s for run %s: unexpected response %r", kind, run_id, resp.text)
            return False

        logger.info("Slack %s sent for run %s", kind, run_id)
        return True
