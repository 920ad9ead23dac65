"""
Tests: weekly progress submission and guide verification.
"""

import pytest
from sqlalchemy import select

from capstone.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from capstone.models import db
from capstone.models.notification import EmailLog
from capstone.models.progress import WeeklyLogVerification
from capstone.services import progress_service


def _submit_all(week=1):
    progress_service.submit_progress("S1", week, "Surveyed soil moisture sensors")
    return progress_service.submit_progress("S2", week, "Drafted the system block diagram")


def _verification(team_id, week):
    return db.session.execute(
        select(WeeklyLogVerification).filter_by(team_id=team_id, week_number=week)
    ).scalar_one_or_none()


class TestSubmit:

    def test_verification_opens_when_last_member_submits(self, mentored_team):
        first = progress_service.submit_progress("S1", 1, "Surveyed soil moisture sensors")
        assert first["status"] == "submitted"
        assert first["verification_open"] is False
        assert _verification(mentored_team, 1) is None

        second = progress_service.submit_progress("S2", 1, "Drafted the system block diagram")
        assert second["verification_open"] is True
        assert second["guide_notified"] is True
        assert _verification(mentored_team, 1).status == "pending"

        mail = db.session.execute(select(EmailLog).filter_by(template_name="weekly_log_ready")).scalar_one()
        assert mail.recipient_email == "g1@campus.example.org"

    def test_resubmission_is_reported_not_duplicated(self, mentored_team):
        progress_service.submit_progress("S1", 1, "first")
        again = progress_service.submit_progress("S1", 1, "second")

        assert again["status"] == "already_submitted"
        assert again["progress"]["progress"] == "first"

    def test_week_out_of_range(self, mentored_team):
        with pytest.raises(ValidationError):
            progress_service.submit_progress("S1", 13, "late")
        with pytest.raises(ValidationError):
            progress_service.submit_progress("S1", 0, "early")

    def test_empty_progress_rejected(self, mentored_team):
        with pytest.raises(ValidationError):
            progress_service.submit_progress("S1", 1, "   ")

    def test_student_without_team_not_found(self, mentored_team, make_user):
        make_user("S7")
        with pytest.raises(NotFoundError):
            progress_service.submit_progress("S7", 1, "hello")

    def test_verified_week_is_closed(self, mentored_team):
        _submit_all()
        progress_service.verify_week("G1", mentored_team, 1, "accept", remarks="Good start")
        with pytest.raises(ConflictError):
            progress_service.submit_progress("S1", 1, "one more thing")


class TestVerify:

    def test_accept_requires_remarks(self, mentored_team):
        _submit_all()
        with pytest.raises(ValidationError):
            progress_service.verify_week("G1", mentored_team, 1, "accept")

        row = progress_service.verify_week("G1", mentored_team, 1, "accept", remarks="Good start")
        assert row["is_verified"] is True
        assert row["verified_by"] == "G1"
        assert progress_service.verified_week_count(mentored_team) == 1

    def test_reject_clears_week_and_reopens_on_resubmission(self, mentored_team):
        _submit_all()
        row = progress_service.verify_week("G1", mentored_team, 1, "reject", reason="Too vague")
        assert row["status"] == "reject"

        grid = progress_service.log_status(mentored_team)["weeks"][0]
        assert grid["members"] == {"S1": False, "S2": False}

        with pytest.raises(ConflictError):
            progress_service.verify_week("G1", mentored_team, 1, "accept", remarks="ok")

        _submit_all()
        reopened = _verification(mentored_team, 1)
        assert reopened.status == "pending"
        assert reopened.reason is None

    def test_only_team_guide_verifies(self, mentored_team):
        _submit_all()
        with pytest.raises(ForbiddenError):
            progress_service.verify_week("E1", mentored_team, 1, "accept", remarks="ok")

    def test_nothing_to_verify_before_all_submit(self, mentored_team):
        progress_service.submit_progress("S1", 1, "partial")
        with pytest.raises(NotFoundError):
            progress_service.verify_week("G1", mentored_team, 1, "accept", remarks="ok")

    def test_second_verification_conflicts(self, mentored_team):
        _submit_all()
        progress_service.verify_week("G1", mentored_team, 1, "accept", remarks="ok")
        with pytest.raises(ConflictError):
            progress_service.verify_week("G1", mentored_team, 1, "reject", reason="changed")


class TestStatusAndDeadlines:

    def test_log_status_grid(self, mentored_team):
        progress_service.submit_progress("S1", 2, "Week two notes")

        status = progress_service.log_status(mentored_team)

        assert len(status["weeks"]) == 12
        week2 = status["weeks"][1]
        assert week2["members"] == {"S1": True, "S2": False}
        assert week2["verification"] is None

    def test_set_deadline_upserts(self, mentored_team):
        progress_service.set_deadline(mentored_team, 8, "2026-04-01")
        row = progress_service.set_deadline(mentored_team, 8, "2026-04-08")
        assert row["deadline"] == "2026-04-08"

    def test_deadline_for_unknown_team(self, mentored_team):
        with pytest.raises(NotFoundError):
            progress_service.set_deadline("TEAM-9999", 8, "2026-04-01")
