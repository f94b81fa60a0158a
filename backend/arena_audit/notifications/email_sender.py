"""Async email dispatcher for audit reports.

Uses aiosmtplib for non-blocking SMTP (STARTTLS).
Designed as fire-and-forget — errors are logged but never fail the run.
"""

from __future__ import annotations

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from arena_audit.config import settings
from arena_audit.notifications.payloads import AuditSummary
from arena_audit.notifications.templates.audit_report import render_audit_email

logger = logging.getLogger(__name__)


def is_email_configured() -> bool:
    """Check if SMTP credentials are set."""
    return bool(settings.smtp_user and settings.smtp_password)


def get_recipients() -> list[str]:
    """Parse comma-separated recipients from settings."""
    raw = settings.audit_recipients.strip()
    if not raw:
        return []
    return [addr.strip() for addr in raw.split(",") if addr.strip()]


class EmailDispatcher:
    """Notification dispatcher that mails an HTML report."""

    name = "email"

    def __init__(self, recipients: list[str] | None = None) -> None:
        self.recipients = recipients

    async def send_summary(self, summary: AuditSummary) -> bool:
        subject = f"[Arena Audit] {summary.audit_run_id} {summary.run_status}"
        return await self._send(subject, render_audit_email(summary), summary.audit_run_id)

    async def send_alert(self, summary: AuditSummary) -> bool:
        subject = (
            f"[Arena Audit] ALERT {summary.audit_run_id}: {summary.status} "
            f"(health {summary.health_score})"
        )
        return await self._send(subject, render_audit_email(summary, alert=True), summary.audit_run_id)

    async def _send(self, subject: str, html_body: str, run_id: str) -> bool:
        """Returns True if the email was sent, False otherwise."""
        if not is_email_configured():
            logger.debug("Email not configured, skipping send")
            return False

        to_addrs = self.recipients or get_recipients()
        if not to_addrs:
            logger.debug("No recipients configured, skipping send")
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.smtp_user
        msg["To"] = ", ".join(to_addrs)
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                start_tls=True,
                username=settings.smtp_user,
                password=settings.smtp_password,
                timeout=settings.notification_timeout_seconds,
            )
            logger.info("Audit email for run %s sent to %s", run_id, ", ".join(to_addrs))
            return True
        except Exception as e:
            logger.warning("Failed to send audit email for run %s: %s", run_id, e)
            return False
