"""
Capstone Workflow Service
Email Service: best-effort notification sink.

Provides email sending with template support.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Uses:
    - Flask-Mail compatible config (MAIL_SERVER, MAIL_PORT, etc.)
    - Falls back to logging-only mode when SMTP is not configured
    - All emails are recorded in EmailLog for audit

Workflow services call ``notify()`` only after their transaction has
committed.  It returns a delivered flag and never raises for delivery or
audit-log failures.
"""

from __future__ import annotations

import html
import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from capstone.models import db
from capstone.models.notification import EmailLog
from capstone.models.user import User

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #1e3a5f; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">Capstone Project Portal</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        {body}
    </div>
    <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                border: 1px solid #e2e8f0; border-top: none; text-align: center;">
        <p style="color: #94a3b8; font-size: 12px; margin: 0;">Automated notification, please do not reply</p>
    </div>
</div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "team_invitation": {
        "subject": "Team invitation from {from_name}",
        "body": """
        <p>Hello {to_name},</p>
        <p><strong>{from_name}</strong> ({from_reg_num}) has invited you to join their capstone team.</p>
        <p>Open the portal to accept or reject the invitation.</p>
        """,
    },
    "guide_request": {
        "subject": "Guide request from {team_id}",
        "body": """
        <p>Dear {to_name},</p>
        <p>Team <strong>{team_id}</strong> (semester {semester}) has requested you as their project guide.</p>
        <p>Project: <strong>{project_name}</strong></p>
        <p>Please review the request in the portal.</p>
        """,
    },
    "expert_request": {
        "subject": "Subject expert request from {team_id}",
        "body": """
        <p>Dear {to_name},</p>
        <p>Team <strong>{team_id}</strong> (semester {semester}) has requested you as their subject expert.</p>
        <p>Project: <strong>{project_name}</strong></p>
        <p>Please review the request in the portal.</p>
        """,
    },
    "weekly_log_ready": {
        "subject": "Week {week_number} logs ready for verification: {team_id}",
        "body": """
        <p>Dear {to_name},</p>
        <p>Every member of team <strong>{team_id}</strong> has submitted progress for
           week {week_number}. The week is awaiting your verification.</p>
        """,
    },
    "review_request": {
        "subject": "{review_title} requested by {team_id}",
        "body": """
        <p>Dear {to_name},</p>
        <p>Team <strong>{team_id}</strong> has requested <strong>{review_title}</strong> on
           {review_date} at {start_time}. Please accept or reject the slot.</p>
        """,
    },
    "review_scheduled": {
        "subject": "{review_title} scheduled for {team_id}",
        "body": """
        <p>Hello {to_name},</p>
        <p><strong>{review_title}</strong> for team <strong>{team_id}</strong> is confirmed on
           {review_date} at {start_time}.</p>
        <p>Meeting link: {meeting_link}</p>
        """,
    },
    "student_query": {
        "subject": "New query from {from_reg_num} ({team_id})",
        "body": """
        <p>Dear {to_name},</p>
        <p><strong>{from_reg_num}</strong> of team <strong>{team_id}</strong> asked:</p>
        <blockquote>{question}</blockquote>
        <p>Reply from the portal.</p>
        """,
    },
    "query_reply": {
        "subject": "Your guide replied to your query ({team_id})",
        "body": """
        <p>Hello {to_name},</p>
        <p>{guide_reg_num} has answered your query:</p>
        <blockquote>{question}</blockquote>
        <p>Open the portal to read the reply.</p>
        """,
    },
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged to the database but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
        category: str = "workflow",
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> EmailLog:
        """
        Send an email and log it.

        If SMTP is not configured, the email is logged with status='sent'
        to simulate sending without actual delivery.

        Returns:
            The EmailLog record for this email (added to the session, not committed).
        """
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            category=category,
            status="queued",
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(log)

        if not cls.is_configured():
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return log

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name,
                           subject=subject, html_body=html_body)
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        except (smtplib.SMTPException, OSError) as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email failed: to=%s error=%s", to_email, exc)

        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> EmailLog | None:
        """
        Send an email using a named template.

        Template variables are interpolated from the context dict.
        """
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return None

        values = _SafeDict(context, to_name=to_name or to_email)
        subject = template["subject"].format_map(values)
        escaped = _SafeDict({k: html.escape(v) if isinstance(v, str) else v for k, v in values.items()})
        html_body = _LAYOUT.format(body=template["body"].format_map(escaped))

        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            template_name=template_name,
            entity_type=entity_type,
            entity_id=entity_id,
        )

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


def notify(
    reg_num: str,
    template_name: str,
    context: dict[str, Any],
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> bool:
    """
    Fire-and-forget notification to a registered user.

    Must be called after the workflow transaction has committed.  Commits
    its own EmailLog row.  Returns True when the message was delivered (or
    recorded in log-only mode), False otherwise.  Never raises for
    delivery or audit failures.
    """
    user = db.session.execute(
        select(User).where(User.reg_num == reg_num)
    ).scalar_one_or_none()
    if user is None or not user.email:
        logger.warning("No email address for %s, %s notification skipped",
                       reg_num, template_name, extra={"reg_num": reg_num})
        return False

    try:
        log = EmailService.send_from_template(
            to_email=user.email,
            to_name=user.name,
            template_name=template_name,
            context=context,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Could not record %s notification for %s", template_name, reg_num,
                     exc_info=True, extra={"reg_num": reg_num})
        return False

    return log is not None and log.status == "sent"


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
