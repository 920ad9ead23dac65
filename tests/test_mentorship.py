"""
Tests: guide / expert assignment on the request lifecycle engine.

Covers fan-out with capacity exclusion, accept side effects, capacity
saturation, idempotent decisions, family independence and the admin
direct-assignment path.
"""

import pytest
from sqlalchemy import select

from capstone.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    DuplicateRequestError,
    ForbiddenError,
    NoEligibleTargetsError,
    NotFoundError,
    ValidationError,
)
from capstone.models import db
from capstone.models.mentorship import ExpertRequest, GuideRequest
from capstone.models.team import Team
from capstone.models.user import User
from capstone.services import mentorship_service
from capstone.services.mentorship_service import expert_requests, guide_requests


# ── Helpers ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def team(make_user, make_team):
    """TEAM-0001 led by S1 with a registered project and no mentors yet."""
    make_user("S1")
    make_user("S2")
    make_team("TEAM-0001", "S1", "S2")
    return "TEAM-0001"


def _fill_slots(make_user, make_team, staff_reg, count, *, model=GuideRequest, semester=5):
    """Give staff_reg ``count`` accepted teams without going through the engine."""
    field = "guide_reg_num" if model is GuideRequest else "expert_reg_num"
    for i in range(count):
        leader = f"L{staff_reg}{i}"
        team_id = f"FILL-{staff_reg}-{i}"
        make_user(leader, semester=semester)
        make_team(team_id, leader, semester=semester, **{field.replace("_reg_num", ""): staff_reg})
        db.session.add(model(team_id=team_id, staff_reg_num=staff_reg, team_semester=semester,
                             status="accept"))
    db.session.commit()


def _rows(model, **criteria):
    return db.session.execute(select(model).filter_by(**criteria).order_by(model.id)).scalars().all()


# ── Create (fan-out) ─────────────────────────────────────────────────────────


class TestRequestStaff:

    def test_saturated_target_excluded_other_requested(self, team, make_user, make_team):
        make_user("G1", role="staff")
        make_user("G2", role="staff")
        _fill_slots(make_user, make_team, "G1", 3)

        summary = mentorship_service.request_staff("guide", "S1", ["G1", "G2"])

        assert summary["requested"] == 2
        assert summary["success_count"] == 1
        assert summary["failed_count"] == 0
        assert summary["excluded"] == [{"target": "G1", "reason": "capacity_reached"}]
        assert [r["target"] for r in summary["results"]] == ["G2"]
        assert summary["results"][0]["status"] == "requested"
        assert summary["notification_failures"] == []
        assert [r.staff_reg_num for r in _rows(GuideRequest, team_id=team)] == ["G2"]

    def test_unavailable_target_excluded(self, team, make_user):
        make_user("G1", role="staff", available=False)
        make_user("G2", role="staff")

        summary = mentorship_service.request_staff("guide", "S1", ["G1", "G2"])

        assert summary["excluded"] == [{"target": "G1", "reason": "unavailable"}]
        assert summary["success_count"] == 1

    def test_single_saturated_target_is_capacity_exceeded(self, team, make_user, make_team):
        make_user("G1", role="staff")
        _fill_slots(make_user, make_team, "G1", 3)

        with pytest.raises(CapacityExceededError) as exc_info:
            mentorship_service.request_staff("guide", "S1", ["G1"])
        assert not isinstance(exc_info.value, NoEligibleTargetsError)

    def test_all_targets_saturated_is_no_eligible_targets(self, team, make_user, make_team):
        make_user("G1", role="staff")
        make_user("G2", role="staff", available=False)
        _fill_slots(make_user, make_team, "G1", 3)

        with pytest.raises(NoEligibleTargetsError):
            mentorship_service.request_staff("guide", "S1", ["G1", "G2"])
        assert _rows(GuideRequest, team_id=team) == []

    def test_repeat_request_is_duplicate(self, team, make_user):
        make_user("G1", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1"])

        with pytest.raises(DuplicateRequestError):
            mentorship_service.request_staff("guide", "S1", ["G1"])
        assert len(_rows(GuideRequest, team_id=team)) == 1

    def test_partial_duplicate_reported_per_target(self, team, make_user):
        make_user("G1", role="staff")
        make_user("G2", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1"])

        summary = mentorship_service.request_staff("guide", "S1", ["G1", "G2"])

        statuses = {r["target"]: r["status"] for r in summary["results"]}
        assert statuses == {"G1": "duplicate", "G2": "requested"}
        assert summary["success_count"] == 1
        assert summary["failed_count"] == 1

    def test_staff_cannot_hold_both_roles(self, team, make_user):
        make_user("G1", role="staff")
        guide_requests.assign_directly("ADM", team, "G1")

        summary = mentorship_service.request_staff("expert", "S1", ["G1"])

        assert summary["success_count"] == 0
        assert summary["results"][0]["status"] == "failed"
        assert summary["results"][0]["error"] == "Conflict"
        assert _rows(ExpertRequest) == []

    def test_project_required_first(self, make_user, make_team):
        make_user("S1")
        make_user("G1", role="staff")
        make_team("TEAM-0001", "S1", project_name=None)
        with pytest.raises(ValidationError):
            mentorship_service.request_staff("guide", "S1", ["G1"])

    def test_targets_required(self, team):
        with pytest.raises(ValidationError):
            mentorship_service.request_staff("guide", "S1", [])

    def test_non_leader_forbidden(self, team, make_user):
        make_user("G1", role="staff")
        with pytest.raises(ForbiddenError):
            mentorship_service.request_staff("guide", "S2", ["G1"])

    def test_unknown_family_not_found(self, team):
        with pytest.raises(NotFoundError):
            mentorship_service.request_staff("mentor", "S1", ["G1"])

    def test_role_already_filled(self, team, make_user):
        make_user("G1", role="staff")
        make_user("G2", role="staff")
        guide_requests.assign_directly("ADM", team, "G1")
        with pytest.raises(ConflictError):
            mentorship_service.request_staff("guide", "S1", ["G2"])


# ── Decide ───────────────────────────────────────────────────────────────────


class TestDecide:

    def test_accept_assigns_and_withdraws_team_requests(self, team, make_user):
        make_user("G1", role="staff")
        make_user("G2", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1", "G2"])

        row = mentorship_service.decide_request("guide", "G1", team, "accept")

        assert row["status"] == "accept"
        assert db.session.get(Team, team).guide_reg_num == "G1"
        assert [r.staff_reg_num for r in _rows(GuideRequest, team_id=team)] == ["G1"]
        with pytest.raises(NotFoundError):
            mentorship_service.decide_request("guide", "G2", team, "accept")

    def test_second_accept_is_not_found(self, team, make_user):
        make_user("G1", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1"])
        mentorship_service.decide_request("guide", "G1", team, "accept")

        with pytest.raises(NotFoundError):
            mentorship_service.decide_request("guide", "G1", team, "accept")
        assert len(_rows(GuideRequest, staff_reg_num="G1", status="accept")) == 1

    def test_reject_requires_reason_and_keeps_role_open(self, team, make_user):
        make_user("G1", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1"])

        with pytest.raises(ValidationError):
            mentorship_service.decide_request("guide", "G1", team, "reject", "  ")
        row = mentorship_service.decide_request("guide", "G1", team, "reject", "Full schedule")

        assert row["status"] == "reject"
        assert row["reason"] == "Full schedule"
        assert db.session.get(Team, team).guide_reg_num is None

    def test_last_slot_saturates_staff(self, team, make_user, make_team):
        make_user("G1", role="staff")
        _fill_slots(make_user, make_team, "G1", 2)
        make_user("S9")
        make_team("TEAM-0002", "S9")
        mentorship_service.request_staff("guide", "S1", ["G1"])
        mentorship_service.request_staff("guide", "S9", ["G1"])

        mentorship_service.decide_request("guide", "G1", team, "accept")

        staff = db.session.execute(select(User).filter_by(reg_num="G1")).scalar_one()
        assert staff.available is False
        assert staff.unavailable_reason
        assert _rows(GuideRequest, team_id="TEAM-0002") == []
        assert len(_rows(GuideRequest, staff_reg_num="G1", status="accept")) == 3

    def test_accept_beyond_capacity_refused(self, team, make_user, make_team):
        make_user("G1", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1"])
        _fill_slots(make_user, make_team, "G1", 3)

        with pytest.raises(CapacityExceededError):
            mentorship_service.decide_request("guide", "G1", team, "accept")

        pending = _rows(GuideRequest, team_id=team)
        assert [r.status for r in pending] == ["interested"]
        assert db.session.get(Team, team).guide_reg_num is None

    def test_capacity_counted_per_semester_track(self, team, make_user, make_team):
        make_user("G1", role="staff")
        _fill_slots(make_user, make_team, "G1", 3, semester=7)

        summary = mentorship_service.request_staff("guide", "S1", ["G1"])
        assert summary["success_count"] == 1
        mentorship_service.decide_request("guide", "G1", team, "accept")
        assert db.session.get(Team, team).guide_reg_num == "G1"

    def test_guide_and_expert_families_independent(self, team, make_user):
        make_user("G1", role="staff")
        make_user("E1", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1"])
        mentorship_service.request_staff("expert", "S1", ["E1"])

        mentorship_service.decide_request("guide", "G1", team, "accept")

        assert [r.status for r in _rows(ExpertRequest, team_id=team)] == ["interested"]
        mentorship_service.decide_request("expert", "E1", team, "accept")
        t = db.session.get(Team, team)
        assert (t.guide_reg_num, t.expert_reg_num) == ("G1", "E1")

    def test_expert_saturation_leaves_guide_requests(self, team, make_user, make_team):
        make_user("X1", role="staff")
        _fill_slots(make_user, make_team, "X1", 2, model=ExpertRequest)
        make_user("S9")
        make_team("TEAM-0002", "S9")
        mentorship_service.request_staff("guide", "S9", ["X1"])
        mentorship_service.request_staff("expert", "S1", ["X1"])

        mentorship_service.decide_request("expert", "X1", team, "accept")

        assert [r.status for r in _rows(GuideRequest, team_id="TEAM-0002")] == ["interested"]


# ── Admin assignment & views ─────────────────────────────────────────────────


class TestAssignAndViews:

    def test_admin_assigns_directly(self, team, make_user):
        make_user("E1", role="staff")

        row = mentorship_service.assign_directly("expert", "ADM", team, "E1")

        assert row["status"] == "accept"
        assert row["assigned_by"] == "ADM"
        assert db.session.get(Team, team).expert_reg_num == "E1"
        assert expert_requests.mentored_teams("E1")[0]["team_id"] == team

    def test_admin_assign_respects_capacity(self, team, make_user, make_team):
        make_user("G1", role="staff")
        _fill_slots(make_user, make_team, "G1", 3)
        with pytest.raises(CapacityExceededError):
            mentorship_service.assign_directly("guide", "ADM", team, "G1")
        assert _rows(GuideRequest, team_id=team) == []

    def test_pending_for_staff_and_team_status(self, team, make_user):
        make_user("G1", role="staff")
        mentorship_service.request_staff("guide", "S1", ["G1"])

        pending = guide_requests.pending_for_staff("G1")
        assert [p["team"]["team_id"] for p in pending] == [team]

        status = mentorship_service.request_status_for_team(team)
        assert status["guide_reg_num"] is None
        assert [r["staff_reg_num"] for r in status["guide_requests"]] == ["G1"]
        assert status["expert_requests"] == []
