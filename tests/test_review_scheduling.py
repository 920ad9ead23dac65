"""
Tests: two-phase review scheduling.

A review request is materialized only when both the guide and the expert
have accepted; the result must not depend on who confirmed last.
"""

from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from capstone.core.exceptions import (
    ConflictError,
    DuplicateRequestError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from capstone.models import db
from capstone.models.progress import WeeklyLogVerification
from capstone.models.review import ReviewRequest, ScheduledReview
from capstone.services import progress_service, review_scheduling

TODAY = date(2026, 3, 1)
REVIEW_DAY = "2026-03-10"
LINK = "https://meet.example.org/abc-defg-hij"


def _verify_week(team_id, week):
    db.session.add(WeeklyLogVerification(team_id=team_id, week_number=week,
                                          status="accept", is_verified=True, verified_by="G1"))
    db.session.commit()


def _request(start="10:00", **kwargs):
    return review_scheduling.request_review(
        "S1", kwargs.pop("review_date", REVIEW_DAY), start, "uploads/TEAM-0001/review1.pdf",
        today=kwargs.pop("today", TODAY), **kwargs,
    )


def _count(model):
    return db.session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture()
def gated_team(mentored_team):
    _verify_week(mentored_team, 1)
    return mentored_team


# ── Request ──────────────────────────────────────────────────────────────────


class TestRequestReview:

    def test_first_request_is_first_review(self, gated_team):
        row = _request()

        assert row["review_title"] == "1st_review"
        assert row["guide_status"] == "interested"
        assert row["expert_status"] == "interested"
        assert row["state"] == "both_pending"
        assert row["notified"] == {"guide": True, "expert": True}

    def test_blocked_until_week_one_verified(self, mentored_team):
        with pytest.raises(ConflictError):
            _request()

    def test_team_needs_guide_and_expert(self, make_user, make_team):
        make_user("S1")
        make_user("G1", role="staff")
        make_team("TEAM-0001", "S1", guide="G1")
        _verify_week("TEAM-0001", 1)
        with pytest.raises(ConflictError):
            _request()

    def test_past_date_rejected(self, gated_team):
        with pytest.raises(ValidationError):
            _request(review_date="2026-02-27")

    def test_malformed_time_rejected(self, gated_team):
        with pytest.raises(ValidationError):
            _request(start="ten o'clock")

    def test_only_leader_may_request(self, gated_team):
        with pytest.raises(ForbiddenError):
            review_scheduling.request_review("S2", REVIEW_DAY, "10:00", "f.pdf", today=TODAY)

    def test_pending_title_is_duplicate(self, gated_team):
        _request()
        with pytest.raises(DuplicateRequestError):
            _request(start="14:00")

    def test_rejected_request_can_be_reproposed(self, gated_team):
        first = _request()
        review_scheduling.confirm(first["request_id"], "guide", "G1", "reject", reason="On leave")

        second = _request(start="14:00")
        assert second["review_title"] == "1st_review"


# ── Confirm ──────────────────────────────────────────────────────────────────


class TestConfirm:

    @pytest.mark.parametrize("order", [("guide", "expert"), ("expert", "guide")])
    def test_both_accept_materializes_regardless_of_order(self, gated_team, order):
        row = _request()
        actors = {"guide": "G1", "expert": "E1"}
        links = {"guide": None, "expert": LINK}

        first = review_scheduling.confirm(row["request_id"], order[0], actors[order[0]], "accept",
                                          meeting_link=links[order[0]])
        assert first["outcome"] == "waiting_on_counterparty"
        assert first["review"] is None

        second = review_scheduling.confirm(row["request_id"], order[1], actors[order[1]], "accept",
                                           meeting_link=links[order[1]])
        assert second["outcome"] == "materialized"

        review = db.session.execute(select(ScheduledReview)).scalar_one()
        assert review.schedule_dict() == {
            "team_id": "TEAM-0001",
            "project_name": "Smart Irrigation Controller",
            "team_lead": "S1",
            "review_title": "1st_review",
            "review_date": REVIEW_DAY,
            "start_time": "10:00:00",
            "guide_reg_num": "G1",
            "expert_reg_num": "E1",
            "meeting_link": LINK,
            "file_ref": "uploads/TEAM-0001/review1.pdf",
        }
        assert review.source_request_id == row["request_id"]
        assert _count(ReviewRequest) == 0

    def test_expert_link_wins_over_guide_link(self, gated_team):
        row = _request()

        review_scheduling.confirm(row["request_id"], "guide", "G1", "accept",
                                  meeting_link="https://meet.example.org/guide-room")
        result = review_scheduling.confirm(row["request_id"], "expert", "E1", "accept", meeting_link=LINK)

        assert result["review"]["meeting_link"] == LINK

    def test_reject_then_accept_never_schedules(self, gated_team):
        row = _request()

        rejected = review_scheduling.confirm(row["request_id"], "guide", "G1", "reject",
                                             reason="Clashes with exams")
        assert rejected["outcome"] == "rejected"

        late = review_scheduling.confirm(row["request_id"], "expert", "E1", "accept", meeting_link=LINK)
        assert late["outcome"] == "counterparty_rejected"
        assert late["review"] is None
        assert _count(ScheduledReview) == 0
        assert db.session.get(ReviewRequest, row["request_id"]).state == "dead"

    def test_expert_accept_requires_meeting_link(self, gated_team):
        row = _request()
        with pytest.raises(ValidationError):
            review_scheduling.confirm(row["request_id"], "expert", "E1", "accept")

    def test_reject_requires_reason(self, gated_team):
        row = _request()
        with pytest.raises(ValidationError):
            review_scheduling.confirm(row["request_id"], "guide", "G1", "reject")

    def test_wrong_party_forbidden(self, gated_team):
        row = _request()
        with pytest.raises(ForbiddenError):
            review_scheduling.confirm(row["request_id"], "guide", "E1", "accept")

    def test_party_decides_once(self, gated_team):
        row = _request()
        review_scheduling.confirm(row["request_id"], "guide", "G1", "accept")
        with pytest.raises(ConflictError):
            review_scheduling.confirm(row["request_id"], "guide", "G1", "reject", reason="changed mind")

    def test_materialized_request_is_gone(self, gated_team):
        row = _request()
        review_scheduling.confirm(row["request_id"], "guide", "G1", "accept")
        review_scheduling.confirm(row["request_id"], "expert", "E1", "accept", meeting_link=LINK)
        with pytest.raises(NotFoundError):
            review_scheduling.confirm(row["request_id"], "guide", "G1", "accept")

    def test_unknown_party_rejected(self, gated_team):
        row = _request()
        with pytest.raises(ValidationError):
            review_scheduling.confirm(row["request_id"], "leader", "S1", "accept")


# ── Gating across reviews ────────────────────────────────────────────────────


def _schedule(start="10:00", **kwargs):
    row = _request(start=start, **kwargs)
    review_scheduling.confirm(row["request_id"], "guide", "G1", "accept")
    return review_scheduling.confirm(row["request_id"], "expert", "E1", "accept",
                                     meeting_link=LINK)["review"]


class TestReviewSequence:

    def test_second_review_waits_for_week_six(self, gated_team):
        _schedule()

        with pytest.raises(ConflictError):
            _request(start="11:00", review_date="2026-04-20")

        _verify_week(gated_team, 6)
        row = _request(start="11:00", review_date="2026-04-20")
        assert row["review_title"] == "2nd_review"

    def test_no_third_regular_review(self, gated_team):
        _schedule()
        _verify_week(gated_team, 6)
        _schedule(start="11:00", review_date="2026-04-20")

        with pytest.raises(ConflictError):
            _request(start="12:00", review_date="2026-05-05")

    def test_second_review_never_reuses_a_materialized_request_id(self, gated_team):
        first = _schedule()
        _verify_week(gated_team, 6)

        pending = _request(start="11:00", review_date="2026-04-20")
        assert pending["request_id"] != first["source_request_id"]

        review_scheduling.confirm(pending["request_id"], "guide", "G1", "accept")
        second = review_scheduling.confirm(pending["request_id"], "expert", "E1", "accept",
                                           meeting_link=LINK)["review"]

        assert second["review_title"] == "2nd_review"
        assert second["source_request_id"] == pending["request_id"]
        assert _count(ScheduledReview) == 2
        assert review_scheduling.completed_review_count(gated_team) == 2

    def test_optional_review_after_week_eight_deadline(self, gated_team):
        with pytest.raises(ConflictError):
            _request(is_optional=True)

        _schedule()
        with pytest.raises(ConflictError):
            _request(start="15:00", is_optional=True)

        progress_service.set_deadline(gated_team, 8, "2026-02-20")
        row = _request(start="15:00", is_optional=True)
        assert row["review_title"] == "optional_review"
        assert row["is_optional"] is True

    def test_optional_review_before_deadline_refused(self, gated_team):
        _schedule()
        progress_service.set_deadline(gated_team, 8, "2026-04-01")
        with pytest.raises(ConflictError):
            _request(start="15:00", is_optional=True)


# ── Views ────────────────────────────────────────────────────────────────────


class TestViews:

    def test_pending_for_staff_hides_dead_requests(self, gated_team):
        row = _request()
        assert [r["request_id"] for r in review_scheduling.pending_for_staff("E1", "expert")] == \
            [row["request_id"]]

        review_scheduling.confirm(row["request_id"], "guide", "G1", "reject", reason="Travelling")
        assert review_scheduling.pending_for_staff("E1", "expert") == []
        assert review_scheduling.pending_for_staff("G1", "guide") == []

    def test_upcoming_includes_three_hour_grace(self, gated_team):
        review = _schedule()

        during = review_scheduling.upcoming_for_team(gated_team, now=datetime(2026, 3, 10, 12, 30))
        after = review_scheduling.upcoming_for_team(gated_team, now=datetime(2026, 3, 10, 13, 30))

        assert [r["review_id"] for r in during] == [review["review_id"]]
        assert after == []
        assert len(review_scheduling.upcoming_for_staff("G1", now=datetime(2026, 3, 9, 9, 0))) == 1

    def test_completed_lists_reviews_with_attendance(self, gated_team):
        review = _schedule()
        assert review_scheduling.completed_for_team(gated_team) == []

        row = db.session.get(ScheduledReview, review["review_id"])
        row.attendance = "present"
        db.session.commit()

        assert [r["review_id"] for r in review_scheduling.completed_for_team(gated_team)] == \
            [review["review_id"]]
        assert review_scheduling.upcoming_for_team(gated_team, now=datetime(2026, 3, 10, 9, 0)) == []
