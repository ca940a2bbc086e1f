"""
MJML Email Templates
Deadline reminder and hearing notification emails, rendered to subject/text/HTML.

Every value that comes from a matter, client, party or hearing record is
HTML-escaped before it is placed in the MJML source.
"""

import logging
from datetime import datetime
from typing import NamedTuple, Optional

from mjml import mjml_to_html

from .config import FRONTEND_URL
from .utils.dates import days_until, format_firm_datetime
from .utils.sanitization import sanitize_string as esc

logger = logging.getLogger(__name__)

FIRM_NAME = "Docket"
DEFAULT_HEARING_TYPE = "Court Hearing"

# Days-until-due thresholds for urgency colouring
URGENT_DAYS = 1
WARNING_DAYS = 3

THEME = {
    "primary": "#4f46e5",
    "hearing": "#10b981",
    "background": "#f8fafc",
    "panel": "#f9fafb",
    "hearing_panel": "#f0fdf4",
    "text_primary": "#1f2937",
    "text_secondary": "#374151",
    "text_muted": "#6b7280",
    "border": "#e5e7eb",
    "success": "#059669",
    "warning": "#f59e0b",
    "danger": "#dc2626",
}


class RenderedEmail(NamedTuple):
    subject: str
    text: str
    html: str


def urgency_color(days: int) -> str:
    if days <= URGENT_DAYS:
        return THEME["danger"]
    if days <= WARNING_DAYS:
        return THEME["warning"]
    return THEME["success"]


def matter_url(matter_id: int) -> str:
    return f"{FRONTEND_URL}/matters/{matter_id}"


def client_name(matter) -> str:
    client = getattr(matter, "client", None)
    return client.full_name if client is not None else ""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # Result exposes 'html' and 'errors' as keys or attributes depending on the mjml release
        if isinstance(result, dict):
            html, errors = result.get("html", ""), result.get("errors")
        else:
            html, errors = getattr(result, "html", ""), getattr(result, "errors", None)
        if errors:
            logger.warning(f"MJML compilation warnings: {errors}")
        return html or ""
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    accent_color: str = THEME["primary"],
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    footer_note: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all notification emails. Arguments must already be escaped."""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section background-color="#ffffff" padding="0 30px 20px 30px">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{accent_color}"
              color="#ffffff"
              font-weight="bold"
              border-radius="6px"
              padding="10px 0">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    footer_section = ""
    if footer_note:
        footer_section = f"""
        <mj-section background-color="#ffffff" padding="0 30px 30px 30px" border-radius="0 0 8px 8px">
          <mj-column>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="0 0 20px 0" />
            <mj-text font-size="12px" color="{THEME['text_muted']}" padding="0">
              <strong>Note:</strong> {footer_note}
            </mj-text>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}" width="600px">
        <mj-section background-color="{accent_color}" padding="20px" border-radius="8px 8px 0 0">
          <mj-column>
            <mj-text font-size="24px" color="#ffffff" padding="0">
              {title}
            </mj-text>
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="30px 30px 10px 30px">
          <mj-column>
            <mj-text padding="0 0 20px 0">Dear Legal Team,</mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}
        {footer_section}
      </mj-body>
    </mjml>
    """


def _detail_rows(rows: list[tuple[str, str]]) -> str:
    """Label/value pairs as paragraphs. Values must already be escaped."""
    return "\n".join(f"<p style=\"margin: 0 0 6px 0;\"><strong>{label}:</strong> {value}</p>" for label, value in rows)


def deadline_reminder_mjml(matter, deadline, now: Optional[datetime] = None) -> str:
    """Deadline reminder MJML template"""
    days = days_until(deadline.due_at, now)
    due_text = esc(format_firm_datetime(deadline.due_at))
    matter_line = f"{esc(matter.title)} (#{esc(matter.matter_number)})"

    details = _detail_rows(
        [
            ("Due Date", due_text),
            (
                "Days Until Due",
                f'<span style="color: {urgency_color(days)}; font-weight: bold;">{days}</span>',
            ),
            ("Matter", matter_line),
            ("Client", esc(client_name(matter))),
        ]
    )

    content = f"""
    <mj-text padding="0 0 10px 0">
      This is a reminder about an upcoming deadline:
    </mj-text>

    <mj-text container-background-color="{THEME['panel']}" padding="20px" font-size="14px" color="{THEME['text_muted']}">
      <h3 style="color: {THEME['text_primary']}; margin: 0 0 15px 0;">{esc(deadline.title)}</h3>
      {details}
    </mj-text>

    <mj-text padding="20px 0">
      Please ensure all necessary actions are completed before the deadline.
    </mj-text>
    """

    return get_base_template(
        title="Deadline Reminder",
        preview_text=f"{esc(deadline.title)} is due in {days} day(s)",
        content_sections=content,
        accent_color=THEME["primary"],
        cta_url=esc(matter_url(matter.id)),
        cta_label="View Matter Details",
        footer_note="Reply to this email to add notes or updates to this deadline.",
    )


def render_deadline_reminder(matter, deadline, now: Optional[datetime] = None) -> RenderedEmail:
    """Subject, plain-text and HTML bodies for a deadline reminder"""
    days = days_until(deadline.due_at, now)
    due_text = format_firm_datetime(deadline.due_at)

    subject = f"Deadline Reminder: {deadline.title} - {matter.title}"
    text = f"""Dear Legal Team,

This is a reminder about an upcoming deadline for {matter.title}:

Deadline: {deadline.title}
Due Date: {due_text}
Days Until Due: {days}
Matter: {matter.title} (#{matter.matter_number})
Client: {client_name(matter)}

Please ensure all necessary actions are completed before the deadline.

You can view more details and update the status at: {matter_url(matter.id)}

Best regards,
{FIRM_NAME} Notification System

---
Reply to this email to add notes or updates to this deadline."""

    html = compile_mjml_to_html(deadline_reminder_mjml(matter, deadline, now))
    return RenderedEmail(subject=subject, text=text, html=html)


def _hearing_optional_rows(hearing) -> list[tuple[str, str]]:
    rows = []
    if hearing.courtroom:
        rows.append(("Courtroom", hearing.courtroom))
    if hearing.judge_or_alj:
        rows.append(("Judge/ALJ", hearing.judge_or_alj))
    court_name = getattr(hearing, "court_name", None)
    if court_name:
        rows.append(("Court", court_name))
    return rows


def _hearing_when(hearing) -> str:
    return format_firm_datetime(hearing.start_at) if hearing.start_at else "To be determined"


def hearing_notification_mjml(matter, hearing) -> str:
    """Hearing notification MJML template"""
    hearing_type = hearing.hearing_type or DEFAULT_HEARING_TYPE
    rows = [("Date &amp; Time", esc(_hearing_when(hearing)))]
    rows += [(label, esc(value)) for label, value in _hearing_optional_rows(hearing)]
    rows += [
        ("Matter", f"{esc(matter.title)} (#{esc(matter.matter_number)})"),
        ("Client", esc(client_name(matter))),
    ]

    content = f"""
    <mj-text padding="0 0 10px 0">
      A hearing has been scheduled:
    </mj-text>

    <mj-text container-background-color="{THEME['hearing_panel']}" padding="20px" font-size="14px" color="{THEME['text_muted']}">
      <h3 style="color: {THEME['text_primary']}; margin: 0 0 15px 0;">{esc(hearing_type)}</h3>
      {_detail_rows(rows)}
    </mj-text>

    <mj-text padding="20px 0">
      Please mark your calendar and prepare accordingly.
    </mj-text>
    """

    return get_base_template(
        title="Hearing Scheduled",
        preview_text=f"{esc(hearing_type)} on {esc(_hearing_when(hearing))}",
        content_sections=content,
        accent_color=THEME["hearing"],
        cta_url=esc(matter_url(matter.id)),
        cta_label="View Matter Details",
        footer_note="Reply to this email to add notes or updates to this hearing.",
    )


def render_hearing_notification(matter, hearing) -> RenderedEmail:
    """Subject, plain-text and HTML bodies for a hearing notification"""
    hearing_type = hearing.hearing_type or DEFAULT_HEARING_TYPE

    subject = f"Hearing Scheduled: {hearing_type} - {matter.title}"
    lines = [
        "Dear Legal Team,",
        "",
        f"A hearing has been scheduled for {matter.title}:",
        "",
        f"Hearing Type: {hearing_type}",
        f"Date & Time: {_hearing_when(hearing)}",
    ]
    # Missing courtroom/judge/court are left out entirely, not rendered blank
    lines += [f"{label}: {value}" for label, value in _hearing_optional_rows(hearing)]
    lines += [
        "",
        f"Matter: {matter.title} (#{matter.matter_number})",
        f"Client: {client_name(matter)}",
        "",
        "Please mark your calendar and prepare accordingly.",
        "",
        f"You can view more details at: {matter_url(matter.id)}",
        "",
        "Best regards,",
        f"{FIRM_NAME} Notification System",
        "",
        "---",
        "Reply to this email to add notes or updates to this hearing.",
    ]

    html = compile_mjml_to_html(hearing_notification_mjml(matter, hearing))
    return RenderedEmail(subject=subject, text="\n".join(lines), html=html)


def default_mjml(subject: str, text: str) -> str:
    content = f"""
    <mj-text css-class="preformatted">
      <div style="white-space: pre-wrap;">{esc(text)}</div>
    </mj-text>
    """
    return get_base_template(
        title=esc(subject),
        preview_text=esc(subject),
        content_sections=content,
    )


def render_default_html(subject: str, text: str) -> str:
    """Fallback HTML body for content that only has plain text"""
    return compile_mjml_to_html(default_mjml(subject, text))
