"""
Tests: attendance, end time and marks entry on a scheduled review.

The review starts 2026-03-10 10:00; every call passes an explicit ``now``.
"""

from datetime import date, datetime, time

import pytest

from capstone.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TimeWindowExceededError,
    ValidationError,
)
from capstone.models import db
from capstone.models.review import INDIVIDUAL_CRITERIA, MARK_CRITERIA, ScheduledReview
from capstone.services import marks_service

START = datetime(2026, 3, 10, 10, 0)


def _scores(value=5, **overrides):
    scores = {criterion: value for criterion in MARK_CRITERIA}
    scores.update(overrides)
    return scores


@pytest.fixture()
def review_id(mentored_team):
    review = ScheduledReview(
        team_id=mentored_team,
        team_lead="S1",
        review_title="1st_review",
        review_date=date(2026, 3, 10),
        start_time=time(10, 0),
        guide_reg_num="G1",
        expert_reg_num="E1",
        meeting_link="https://meet.example.org/r1",
    )
    db.session.add(review)
    db.session.commit()
    return review.review_id


class TestAttendance:

    def test_recorded_once(self, review_id):
        review = marks_service.record_attendance(review_id, "G1", "Present")
        assert review["attendance"] == "present"

        with pytest.raises(ConflictError):
            marks_service.record_attendance(review_id, "E1", "absent")

    def test_invalid_value(self, review_id):
        with pytest.raises(ValidationError):
            marks_service.record_attendance(review_id, "G1", "late")

    def test_outsider_forbidden(self, review_id, make_user):
        make_user("G9", role="staff")
        with pytest.raises(ForbiddenError):
            marks_service.record_attendance(review_id, "G9", "present")

    def test_unknown_review(self, mentored_team):
        with pytest.raises(NotFoundError):
            marks_service.record_attendance(404, "G1", "present")


class TestEndTime:

    def test_within_window(self, review_id):
        review = marks_service.record_end_time(review_id, "E1", "11:15:00",
                                               now=datetime(2026, 3, 10, 11, 20))
        assert review["end_time"] == "11:15:00"

        with pytest.raises(ConflictError):
            marks_service.record_end_time(review_id, "G1", "11:30:00",
                                          now=datetime(2026, 3, 10, 11, 35))

    def test_requires_seconds(self, review_id):
        with pytest.raises(ValidationError):
            marks_service.record_end_time(review_id, "G1", "11:15", now=datetime(2026, 3, 10, 11, 20))

    def test_before_start_rejected(self, review_id):
        with pytest.raises(ValidationError):
            marks_service.record_end_time(review_id, "G1", "11:15:00", now=datetime(2026, 3, 10, 9, 0))

    def test_after_window_rejected(self, review_id):
        with pytest.raises(TimeWindowExceededError):
            marks_service.record_end_time(review_id, "G1", "11:15:00", now=datetime(2026, 3, 10, 13, 1))

    def test_end_must_follow_start(self, review_id):
        with pytest.raises(ValidationError):
            marks_service.record_end_time(review_id, "G1", "09:45:00", now=datetime(2026, 3, 10, 11, 0))


class TestMarks:

    def test_guide_and_expert_halves(self, review_id):
        marks_service.enter_marks(review_id, "guide", "G1", _scores(5), remarks="Solid survey",
                                  now=datetime(2026, 3, 11, 18, 0))
        marks = marks_service.enter_marks(review_id, "expert", "E1", _scores(4),
                                          now=datetime(2026, 3, 10, 12, 0))

        assert marks["guide"]["total"] == 30
        assert marks["expert"]["total"] == 24
        assert marks["total_marks"] == 54
        assert marks["guide"]["remarks"] == "Solid survey"
        assert marks_service.get_marks(review_id)["total_marks"] == 54

    def test_guide_window_is_33_hours(self, review_id):
        with pytest.raises(TimeWindowExceededError):
            marks_service.enter_marks(review_id, "guide", "G1", _scores(),
                                      now=datetime(2026, 3, 11, 19, 1))

    def test_expert_window_is_3_hours(self, review_id):
        with pytest.raises(TimeWindowExceededError):
            marks_service.enter_marks(review_id, "expert", "E1", _scores(),
                                      now=datetime(2026, 3, 10, 13, 30))

    def test_marks_entered_once(self, review_id):
        marks_service.enter_marks(review_id, "guide", "G1", _scores(), now=START)
        with pytest.raises(ConflictError):
            marks_service.enter_marks(review_id, "guide", "G1", _scores(6), now=START)

    def test_every_criterion_needs_non_negative_integer(self, review_id):
        with pytest.raises(ValidationError):
            marks_service.enter_marks(review_id, "guide", "G1", _scores(aim=-1), now=START)
        with pytest.raises(ValidationError):
            marks_service.enter_marks(review_id, "guide", "G1", _scores(scope="8"), now=START)
        incomplete = _scores()
        incomplete.pop("work_plan")
        with pytest.raises(ValidationError):
            marks_service.enter_marks(review_id, "guide", "G1", incomplete, now=START)

    def test_party_must_match_actor(self, review_id):
        with pytest.raises(ForbiddenError):
            marks_service.enter_marks(review_id, "expert", "G1", _scores(), now=START)

    def test_get_marks_before_entry(self, review_id):
        with pytest.raises(NotFoundError):
            marks_service.get_marks(review_id)


def _individual(value=8, **overrides):
    scores = {criterion: value for criterion in INDIVIDUAL_CRITERIA}
    scores.update(overrides)
    return scores


class TestIndividualMarks:

    def test_guide_and_expert_halves_per_member(self, review_id):
        marks_service.enter_individual_marks(review_id, "guide", "G1", "S2", _individual(8),
                                             "Clear presentation", now=datetime(2026, 3, 11, 9, 0))
        row = marks_service.enter_individual_marks(review_id, "expert", "E1", "S2", _individual(6),
                                                   "Needs deeper viva answers",
                                                   now=datetime(2026, 3, 10, 12, 0))

        assert row["student_reg_num"] == "S2"
        assert row["guide"]["total"] == 24
        assert row["expert"]["total"] == 18
        assert row["total_marks"] == 42
        assert row["review_title"] == "1st_review"

    def test_members_marked_independently(self, review_id):
        marks_service.enter_individual_marks(review_id, "guide", "G1", "S1", _individual(9), "Led the demo",
                                             now=START)
        marks_service.enter_individual_marks(review_id, "guide", "G1", "S2", _individual(7), "Good support",
                                             now=START)

        rows = marks_service.get_individual_marks(review_id)
        assert [(r["student_reg_num"], r["guide"]["total"]) for r in rows] == [("S1", 27), ("S2", 21)]

    def test_each_party_marks_a_member_once(self, review_id):
        marks_service.enter_individual_marks(review_id, "expert", "E1", "S1", _individual(), "Fine", now=START)
        with pytest.raises(ConflictError):
            marks_service.enter_individual_marks(review_id, "expert", "E1", "S1", _individual(9), "Again",
                                                 now=START)

    def test_student_outside_team_rejected(self, review_id, make_user):
        make_user("S7")
        with pytest.raises(ValidationError):
            marks_service.enter_individual_marks(review_id, "guide", "G1", "S7", _individual(), "Who?",
                                                 now=START)

    def test_remarks_and_criteria_required(self, review_id):
        with pytest.raises(ValidationError):
            marks_service.enter_individual_marks(review_id, "guide", "G1", "S1", _individual(), "  ",
                                                 now=START)
        incomplete = _individual()
        incomplete.pop("contributions")
        with pytest.raises(ValidationError):
            marks_service.enter_individual_marks(review_id, "guide", "G1", "S1", incomplete, "ok",
                                                 now=START)

    def test_windows_follow_party(self, review_id):
        with pytest.raises(TimeWindowExceededError):
            marks_service.enter_individual_marks(review_id, "expert", "E1", "S1", _individual(), "Late",
                                                 now=datetime(2026, 3, 10, 13, 30))
        row = marks_service.enter_individual_marks(review_id, "guide", "G1", "S1", _individual(), "On time",
                                                   now=datetime(2026, 3, 11, 18, 0))
        assert row["guide"]["total"] == 24

    def test_party_must_match_actor(self, review_id):
        with pytest.raises(ForbiddenError):
            marks_service.enter_individual_marks(review_id, "guide", "E1", "S1", _individual(), "x",
                                                 now=START)

    def test_unknown_review(self, mentored_team):
        with pytest.raises(NotFoundError):
            marks_service.get_individual_marks(404)
