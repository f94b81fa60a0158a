"""HTML email template for audit run reports."""

from __future__ import annotations

import html

from arena_audit.notifications.payloads import AuditSummary

# Health colour name → hex (dark theme)
HEALTH_COLORS = {
    "green": "#22c55e",
    "yellow": "#eab308",
    "orange": "#f97316",
    "red": "#ef4444",
}

SEVERITY_COLORS = {
    "none": "#22c55e",
    "minor": "#eab308",
    "major": "#f97316",
    "critical": "#ef4444",
}


def _stat(label: str, value: str, color: str = "#e2e8f0") -> str:
    return (
        f'<td style="padding:8px 12px;text-align:center;">'
        f'<div style="color:{color};font-size:20px;font-weight:600;">{value}</div>'
        f'<div style="color:#7a8ba7;font-size:11px;">{html.escape(label)}</div>'
        f'</td>'
    )


def render_audit_email(summary: AuditSummary, alert: bool = False) -> str:
    """Render an HTML email for one audit run.

    Uses inline CSS for email client compatibility.
    Category names and error text are HTML-escaped.
    """
    health_hex = HEALTH_COLORS.get(summary.health_color, "#888")
    heading = "Arena Audit Alert" if alert else "Arena Audit Report"

    severity_row = "".join(
        [
            _stat("None", str(summary.passed_count), SEVERITY_COLORS["none"]),
            _stat("Minor", str(summary.minor_count), SEVERITY_COLORS["minor"]),
            _stat("Major", str(summary.major_count), SEVERITY_COLORS["major"]),
            _stat("Critical", str(summary.critical_count), SEVERITY_COLORS["critical"]),
        ]
    )

    # Deviation bands: bar widths proportional to percentage, 180px max
    bands_html = ""
    if summary.total_submissions:
        bars = []
        for key, label in (("within5", "≤5"), ("within10", "≤10"), ("within15", "≤15"), ("over15", ">15")):
            pct = summary.band_percentages.get(key, 0)
            bars.append(
                f'<div style="margin:4px 0;">'
                f'<span style="display:inline-block;width:60px;color:#a0aec0;font-size:13px;">{label}</span>'
                f'<span style="display:inline-block;background:#00d4aa;height:14px;'
                f'width:{int(pct * 1.8)}px;border-radius:3px;vertical-align:middle;"></span>'
                f'<span style="color:#e2e8f0;font-size:13px;margin-left:8px;">{pct}%</span>'
                f'</div>'
            )
        bands_html = (
            '<h2 style="color:#00d4aa;font-size:16px;margin:24px 0 12px;">Deviation Ranges</h2>'
            + "".join(bars)
        )

    categories_html = ""
    if summary.category_breakdown:
        rows = []
        for category, stats in sorted(summary.category_breakdown.items()):
            rows.append(
                f'<tr>'
                f'<td style="padding:6px 12px;color:#e2e8f0;font-size:13px;">{html.escape(category)}</td>'
                f'<td style="padding:6px 12px;color:#a0aec0;font-size:13px;">{stats.get("count", 0)}</td>'
                f'<td style="padding:6px 12px;color:#a0aec0;font-size:13px;">'
                f'{stats.get("avg_deviation", 0.0):.1f}</td>'
                f'</tr>'
            )
        categories_html = (
            '<h2 style="color:#00d4aa;font-size:16px;margin:24px 0 12px;">By Category</h2>'
            '<table style="width:100%;border-collapse:collapse;">'
            '<tr><th style="text-align:left;padding:6px 12px;color:#7a8ba7;font-size:12px;">Category</th>'
            '<th style="text-align:left;padding:6px 12px;color:#7a8ba7;font-size:12px;">Submissions</th>'
            '<th style="text-align:left;padding:6px 12px;color:#7a8ba7;font-size:12px;">Avg deviation</th></tr>'
            + "".join(rows)
            + "</table>"
        )

    reasons_html = ""
    if alert and summary.alert_reasons:
        items = "".join(
            f'<li style="color:#fca5a5;font-size:13px;margin:4px 0;">{html.escape(r)}</li>'
            for r in summary.alert_reasons
        )
        reasons_html = (
            '<h2 style="color:#ef4444;font-size:16px;margin:24px 0 12px;">Alert Conditions</h2>'
            f'<ul style="margin:0;padding-left:18px;">{items}</ul>'
        )

    error_html = ""
    if summary.error_message:
        error_html = (
            '<h2 style="color:#ef4444;font-size:16px;margin:24px 0 12px;">Error</h2>'
            f'<pre style="color:#fca5a5;font-size:12px;background:#060a14;padding:8px;'
            f'border-radius:4px;white-space:pre-wrap;">{html.escape(summary.error_message)}</pre>'
        )

    telemetry = (
        f"{summary.sample_size} sampled · {summary.failed_item_count} failed items · "
        f"{summary.rescore_failure_count} rescore failures · {summary.inconclusive_count} inconclusive"
    )
    trend_str = f" · trend {summary.trend.trend}" if summary.trend else ""
    safe_url = html.escape(summary.report_url)
    safe_run_id = html.escape(summary.audit_run_id)

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin:0;padding:0;background:#060a14;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;">
<div style="max-width:640px;margin:0 auto;padding:24px;">

  <!-- Header -->
  <div style="background:#0a0f1e;border:1px solid #1a2332;border-radius:8px;padding:24px;margin-bottom:16px;">
    <h1 style="color:#00d4aa;font-size:20px;margin:0 0 4px;">{summary.status_emoji} {heading}</h1>
    <div style="color:#7a8ba7;font-size:13px;">{safe_run_id} · {summary.run_status} · {summary.duration_ms}ms{trend_str}</div>
    <div style="color:#7a8ba7;font-size:12px;margin-top:4px;">{html.escape(summary.status_text)}</div>
  </div>

  <!-- Metrics -->
  <div style="background:#0a0f1e;border:1px solid #1a2332;border-radius:8px;padding:24px;margin-bottom:16px;">
    <table style="width:100%;border-collapse:collapse;"><tr>
      {_stat("Health", f"{summary.health_score} ({summary.health_label})", health_hex)}
      {_stat("Avg deviation", f"{summary.average_deviation:.1f}")}
      {_stat("Critical issues", str(summary.critical_issues_count))}
    </tr></table>
    <table style="width:100%;border-collapse:collapse;margin-top:12px;"><tr>{severity_row}</tr></table>
    <div style="color:#7a8ba7;font-size:12px;margin-top:8px;">{telemetry}</div>

    {reasons_html}
    {bands_html}
    {categories_html}
    {error_html}

    <div style="text-align:center;margin:24px 0;">
      <a href="{safe_url}" style="display:inline-block;padding:10px 28px;background:#00d4aa;color:#060a14;border-radius:6px;text-decoration:none;font-weight:600;font-size:14px;">View Full Report</a>
    </div>
  </div>

  <!-- Footer -->
  <div style="text-align:center;padding:16px;color:#4a5568;font-size:11px;">
    Generated by the Arena scoring-drift audit
  </div>

</div>
</body>
</html>"""
