"""
Guide / subject-expert assignment service.

Both families run on the request lifecycle engine with one shared
StaffRequestLifecycle, instantiated once per family:

    Create   team leader → one or more candidate staff (fan-out)
    Decide   staff accepts or rejects a team's pending request
    Assign   admin assigns directly (recorded as an accepted row)

Capacity rule (checked under a lock on the staff row at commit time):
    - a staff member holds at most STAFF_TEAM_CAPACITY accepted teams per
      semester track and family;
    - an accept that would exceed it is refused with CapacityExceeded;
    - the accept that fills the last slot is recorded, then the staff
      member becomes unavailable and every other ``interested`` row of that
      staff member in the family is purged.

Guide and expert lifecycles are independent: nothing done in one family
cancels rows of the other.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import delete, select

from capstone.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    DuplicateRequestError,
    NoEligibleTargetsError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from capstone.models import db
from capstone.models.mentorship import ExpertRequest, GuideRequest
from capstone.models.team import Team
from capstone.models.user import User
from capstone.services.email_service import notify
from capstone.services.helpers.queries import get_team, get_user, team_led_by
from capstone.services.helpers.transaction import atomic, lock_one
from capstone.services.request_lifecycle import LIVE_STATUSES, RequestLifecycle, utcnow

logger = logging.getLogger(__name__)

FAMILIES = ("guide", "expert")


def _capacity() -> int:
    return current_app.config["STAFF_TEAM_CAPACITY"]


class StaffRequestLifecycle(RequestLifecycle):
    """Team → staff request family (guide or expert)."""

    def __init__(self, family: str, model, team_field: str, template: str):
        self.family = family
        self.model = model
        self.team_field = team_field
        self.template = template

    # ── capacity ─────────────────────────────────────────────────────────

    def accepted_count(self, staff_reg: str, semester: int) -> int:
        return self.count_where(
            self.model.staff_reg_num == staff_reg,
            self.model.status == "accept",
            self.model.team_semester == semester,
        )

    def is_eligible(self, staff: User, semester: int) -> bool:
        return staff.available and self.accepted_count(staff.reg_num, semester) < _capacity()

    def _saturate(self, staff: User, semester: int, keep_id: int) -> int:
        """Staff just filled the last slot: disable and withdraw pending rows."""
        staff.mark_unavailable(f"{self.family} capacity reached for semester {semester}")
        result = db.session.execute(
            delete(self.model)
            .where(
                self.model.staff_reg_num == staff.reg_num,
                self.model.status == "interested",
                self.model.id != keep_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        logger.info(
            "%s %s reached capacity for semester %s: unavailable, %d pending requests purged",
            self.family, staff.reg_num, semester, result.rowcount,
            extra={"reg_num": staff.reg_num, "family": self.family},
        )
        return result.rowcount

    def _check_roles(self, team: Team, staff_reg: str) -> None:
        if staff_reg in (team.guide_reg_num, team.expert_reg_num):
            role = "guide" if team.guide_reg_num == staff_reg else "expert"
            raise ConflictError(
                f"{staff_reg} is already the {role} of team {team.team_id}",
                details={"team_id": team.team_id, "role": role},
            )

    def _check_role_open(self, team: Team) -> None:
        holder = getattr(team, self.team_field)
        if holder:
            raise ConflictError(
                f"Team {team.team_id} already has a {self.family}",
                details={"team_id": team.team_id, self.team_field: holder},
            )

    def _commit_assignment(self, row, team: Team, staff_reg: str) -> None:
        """Capacity re-check and assignment.  ``row`` must not be accepted yet."""
        staff = lock_one(select(User).where(User.reg_num == staff_reg))
        if staff is None:
            raise NotFoundError(resource="Staff", resource_id=staff_reg)

        count = self.accepted_count(staff_reg, row.team_semester)
        if count >= _capacity():
            raise CapacityExceededError(
                f"{staff_reg} already mentors {count} semester-{row.team_semester} teams as {self.family}",
                details={"staff_reg_num": staff_reg, "accepted": count, "capacity": _capacity()},
            )

        setattr(team, self.team_field, staff_reg)

        # Role filled: the team's other pending requests in this family are moot
        db.session.execute(
            delete(self.model)
            .where(
                self.model.team_id == team.team_id,
                self.model.status == "interested",
                self.model.id != row.id,
            )
            .execution_options(synchronize_session="fetch")
        )

        if count + 1 >= _capacity():
            self._saturate(staff, row.team_semester, keep_id=row.id)

    # ── lifecycle hooks ──────────────────────────────────────────────────

    def pending_statement(self, actor, counterparty):
        return select(self.model).where(
            self.model.team_id == counterparty,
            self.model.staff_reg_num == actor,
            self.model.status == "interested",
        )

    def guard_decision(self, row, actor, decision):
        team = get_team(row.team_id)
        self._check_roles(team, actor)
        if decision == "accept":
            self._check_role_open(team)

    def apply_accept(self, row, actor):
        self._commit_assignment(row, get_team(row.team_id), actor)

    # ── create (fan-out) ─────────────────────────────────────────────────

    def create(self, leader_reg: str, targets) -> dict:
        """
        Request one or more candidate staff for the leader's team.

        Targets at capacity (or unavailable) are excluded; the call fails
        only when nothing is left.  Each remaining target gets its own
        committed sub-transaction and its own notification, so one target's
        failure never affects another.
        """
        if isinstance(targets, str):
            targets = [targets]
        targets = list(dict.fromkeys(t.strip() for t in (targets or []) if isinstance(t, str) and t.strip()))
        if not targets:
            raise ValidationError("At least one staff registration id is required",
                                  details={"targets": "required"}, code="ERR_VALIDATION_REQUIRED")

        team = team_led_by(leader_reg)
        if not team.has_project:
            raise ValidationError("Register the project before requesting a " + self.family,
                                  details={"project": "required"})
        if team.semester not in current_app.config["SEMESTER_TRACKS"]:
            raise ValidationError(
                f"Semester {team.semester} has no {self.family} allocation",
                details={"semester": team.semester},
            )
        self._check_role_open(team)

        staff = {reg: get_user(reg, role="staff") for reg in targets}

        eligible, excluded = [], []
        for reg in targets:
            if self.is_eligible(staff[reg], team.semester):
                eligible.append(reg)
            else:
                excluded.append({
                    "target": reg,
                    "reason": "unavailable" if not staff[reg].available else "capacity_reached",
                })

        if not eligible:
            detail = {"excluded": excluded}
            if len(targets) == 1:
                raise CapacityExceededError(f"{targets[0]} cannot take more teams", details=detail)
            raise NoEligibleTargetsError("None of the requested staff can take more teams",
                                         details=detail)

        results = [self._request_one(team, reg) for reg in eligible]

        if all(r["status"] == "duplicate" for r in results):
            raise DuplicateRequestError(
                f"Every requested {self.family} already has a request from {team.team_id}",
                details={"results": results},
            )

        success = sum(1 for r in results if r["status"] == "requested")
        summary = {
            "team_id": team.team_id,
            "family": self.family,
            "requested": len(targets),
            "success_count": success,
            "failed_count": len(results) - success,
            "excluded": excluded,
            "results": results,
            "notification_failures": [r["target"] for r in results if r["status"] == "notification_failed"],
        }
        logger.info("%s requests from %s: %d ok, %d failed, %d excluded",
                    self.family, team.team_id, success, summary["failed_count"], len(excluded),
                    extra={"team_id": team.team_id, "family": self.family})
        return summary

    def _request_one(self, team: Team, staff_reg: str) -> dict:
        result = {"target": staff_reg, "request_id": None, "status": None, "notified": None}
        try:
            with atomic(f"{self.family}.create"):
                self._check_roles(team, staff_reg)
                existing = self.first_where(
                    self.model.team_id == team.team_id,
                    self.model.staff_reg_num == staff_reg,
                    self.model.status.in_(LIVE_STATUSES),
                )
                if existing is not None:
                    raise DuplicateRequestError(
                        f"{team.team_id} already requested {staff_reg}",
                        details={"request_id": existing.id},
                    )
                row = self.model(
                    team_id=team.team_id,
                    staff_reg_num=staff_reg,
                    team_semester=team.semester,
                    project_name=team.project_name,
                    status="interested",
                )
                db.session.add(row)
        except DuplicateRequestError:
            result["status"] = "duplicate"
            return result
        except (ConflictError, PersistenceError) as exc:
            result["status"] = "failed"
            result["error"] = exc.kind
            return result

        result["request_id"] = row.id
        delivered = notify(
            staff_reg, self.template,
            {"team_id": team.team_id, "semester": team.semester, "project_name": team.project_name},
            entity_type=self.model.__tablename__, entity_id=row.id,
        )
        try:
            with atomic(f"{self.family}.notified"):
                row.notified = delivered
        except PersistenceError:
            delivered = False

        result["notified"] = delivered
        result["status"] = "requested" if delivered else "notification_failed"
        if not delivered:
            logger.warning("%s request %s → %s persisted but notification failed",
                           self.family, team.team_id, staff_reg,
                           extra={"team_id": team.team_id, "reg_num": staff_reg, "family": self.family})
        return result

    # ── admin direct assignment ──────────────────────────────────────────

    def assign_directly(self, admin_reg: str, team_id: str, staff_reg: str) -> dict:
        get_user(staff_reg, role="staff")
        with atomic(f"{self.family}.assign"):
            team = get_team(team_id)
            self._check_roles(team, staff_reg)
            self._check_role_open(team)
            row = self.model(
                team_id=team.team_id,
                staff_reg_num=staff_reg,
                team_semester=team.semester,
                project_name=team.project_name,
                status="interested",
                assigned_by=admin_reg,
            )
            db.session.add(row)
            db.session.flush()
            self._commit_assignment(row, team, staff_reg)
            row.status = "accept"
            row.decided_at = utcnow()

        logger.info("Admin %s assigned %s %s to %s", admin_reg, self.family, staff_reg, team_id,
                    extra={"team_id": team_id, "reg_num": admin_reg, "family": self.family})
        return row.to_dict()

    # ── views ────────────────────────────────────────────────────────────

    def pending_for_staff(self, staff_reg: str) -> list[dict]:
        rows = db.session.execute(
            select(self.model, Team)
            .join(Team, Team.team_id == self.model.team_id)
            .where(self.model.staff_reg_num == staff_reg, self.model.status == "interested")
            .order_by(self.model.created_at)
        ).all()
        return [dict(req.to_dict(), team=team.to_dict()) for req, team in rows]

    def mentored_teams(self, staff_reg: str) -> list[dict]:
        teams = db.session.execute(
            select(Team)
            .where(getattr(Team, self.team_field) == staff_reg)
            .order_by(Team.team_id)
        ).scalars().all()
        return [t.to_dict() for t in teams]

    def requests_for_team(self, team_id: str) -> list[dict]:
        rows = db.session.execute(
            select(self.model).where(self.model.team_id == team_id).order_by(self.model.id)
        ).scalars().all()
        return [r.to_dict() for r in rows]


guide_requests = StaffRequestLifecycle("guide", GuideRequest, "guide_reg_num", "guide_request")
expert_requests = StaffRequestLifecycle("expert", ExpertRequest, "expert_reg_num", "expert_request")

_LIFECYCLES = {"guide": guide_requests, "expert": expert_requests}


def lifecycle_for(family: str) -> StaffRequestLifecycle:
    try:
        return _LIFECYCLES[family]
    except KeyError:
        raise NotFoundError(resource="Request family", resource_id=family) from None


def request_staff(family: str, leader_reg: str, targets) -> dict:
    return lifecycle_for(family).create(leader_reg, targets)


def decide_request(family: str, staff_reg: str, team_id: str, decision, reason=None) -> dict:
    return lifecycle_for(family).decide(staff_reg, team_id, decision, reason).to_dict()


def assign_directly(family: str, admin_reg: str, team_id: str, staff_reg: str) -> dict:
    return lifecycle_for(family).assign_directly(admin_reg, team_id, staff_reg)


def request_status_for_team(team_id: str) -> dict:
    team = get_team(team_id)
    return {
        "team_id": team.team_id,
        "guide_reg_num": team.guide_reg_num,
        "expert_reg_num": team.expert_reg_num,
        "guide_requests": guide_requests.requests_for_team(team_id),
        "expert_requests": expert_requests.requests_for_team(team_id),
    }
