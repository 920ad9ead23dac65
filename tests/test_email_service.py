"""
Tests: notification sink.

Delivery failures are reported to the caller but never roll back the
workflow change that triggered the notification.
"""

import smtplib
from unittest.mock import patch

import pytest
from sqlalchemy import select

from capstone.models import db
from capstone.models.mentorship import GuideRequest
from capstone.models.notification import EmailLog
from capstone.services import mentorship_service
from capstone.services.email_service import EmailService, notify


@pytest.fixture()
def smtp_failing(app, monkeypatch):
    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.campus.example.org")
    with patch.object(EmailService, "_send_smtp",
                      side_effect=smtplib.SMTPException("connection refused")) as mock_smtp:
        yield mock_smtp


def test_dev_mode_logs_as_sent(mentored_team):
    assert notify("G1", "guide_request", {"team_id": "TEAM-0001", "semester": 5,
                                          "project_name": "Irrigation"}) is True

    log = db.session.execute(select(EmailLog)).scalar_one()
    assert log.status == "sent"
    assert log.subject == "Guide request from TEAM-0001"
    assert log.recipient_name == "User G1"


def test_missing_email_skips_notification(make_user):
    make_user("S5", email=None)
    assert notify("S5", "team_invitation", {"from_name": "X", "from_reg_num": "X"}) is False
    assert db.session.execute(select(EmailLog)).first() is None


def test_unknown_template_reports_failure(mentored_team):
    assert notify("G1", "no_such_template", {}) is False
    assert EmailService.send_from_template(to_email="a@b.org", template_name="nope", context={}) is None


def test_missing_context_keys_left_as_placeholders(mentored_team):
    log = EmailService.send_from_template(to_email="g1@campus.example.org", to_name="G1",
                                          template_name="review_request", context={"team_id": "T"})
    assert "{review_title}" in log.subject


def test_smtp_failure_recorded(mentored_team, smtp_failing):
    assert notify("G1", "guide_request", {"team_id": "TEAM-0001"}) is False

    log = db.session.execute(select(EmailLog)).scalar_one()
    assert log.status == "failed"
    assert "connection refused" in log.error_message


def test_fan_out_reports_notification_failure_but_keeps_request(make_user, make_team, smtp_failing):
    make_user("S1")
    make_user("G1", role="staff")
    make_user("G2", role="staff")
    make_team("TEAM-0001", "S1")

    summary = mentorship_service.request_staff("guide", "S1", ["G1", "G2"])

    assert summary["success_count"] == 0
    assert summary["failed_count"] == 2
    assert summary["notification_failures"] == ["G1", "G2"]
    assert {r["status"] for r in summary["results"]} == {"notification_failed"}
    assert smtp_failing.call_count == 2

    rows = db.session.execute(select(GuideRequest).order_by(GuideRequest.id)).scalars().all()
    assert [(r.staff_reg_num, r.status, r.notified) for r in rows] == [
        ("G1", "interested", False),
        ("G2", "interested", False),
    ]


def test_free_text_is_escaped_in_html_body(mentored_team, app, monkeypatch):
    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.campus.example.org")
    with patch.object(EmailService, "_send_smtp") as mock_smtp:
        assert notify("G1", "student_query", {"team_id": "TEAM-0001", "from_reg_num": "S1",
                                              "question": "<script>alert(1)</script>"}) is True

    html_body = mock_smtp.call_args.kwargs["html_body"]
    assert "&lt;script&gt;" in html_body
    assert "<script>" not in html_body
