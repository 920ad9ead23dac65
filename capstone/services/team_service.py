"""
Team formation service.

Covers:
    - Team join requests (invite / accept / reject) on the request lifecycle engine
    - Team Composition Guard: size, single-team membership, compatibility
    - ConfirmTeam: the single point where membership becomes immutable
    - Project registration and team views

Team-size accounting: MAX_TEAM_SIZE counts the leader, so an inviter may
hold at most MAX_TEAM_SIZE - 1 accepted invitees.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import and_, delete, or_, select

from capstone.core.exceptions import (
    ConflictError,
    DuplicateRequestError,
    ValidationError,
)
from capstone.models import db
from capstone.models.team import (
    HARDWARE_SOFTWARE,
    TEAM_ID_PREFIX,
    Team,
    TeamJoinRequest,
    TeamMember,
    format_team_id,
)
from capstone.models.user import User
from capstone.services.email_service import notify
from capstone.services.helpers.queries import (
    accepted_invitation_of,
    accepted_invitee_count,
    get_team,
    get_user,
    membership_of,
    team_led_by,
)
from capstone.services.helpers.transaction import atomic
from capstone.services.request_lifecycle import LIVE_STATUSES, RequestLifecycle, utcnow

logger = logging.getLogger(__name__)


def _max_team_size() -> int:
    return current_app.config["MAX_TEAM_SIZE"]


# ═══════════════════════════════════════════════════════════════════════════
#  Team Composition Guard
# ═══════════════════════════════════════════════════════════════════════════


class TeamCompositionGuard:
    """Invariants checked on invite, on join-accept and on ConfirmTeam."""

    @staticmethod
    def check_not_in_team(*reg_nums: str) -> None:
        for reg_num in reg_nums:
            member = membership_of(reg_num)
            if member is not None:
                raise ConflictError(
                    f"{reg_num} is already a member of team {member.team_id}",
                    details={"reg_num": reg_num, "team_id": member.team_id},
                )

    @staticmethod
    def check_inviter_has_room(inviter: str) -> None:
        limit = _max_team_size() - 1
        if accepted_invitee_count(inviter) >= limit:
            raise ConflictError(
                f"{inviter} already has {limit} accepted members; the team is full",
                details={"reg_num": inviter, "max_team_size": _max_team_size()},
            )

    @staticmethod
    def check_not_joining_elsewhere(reg_num: str) -> None:
        """reg_num has not accepted an invitation into another forming team."""
        accepted = accepted_invitation_of(reg_num)
        if accepted is not None:
            raise ConflictError(
                f"{reg_num} has already accepted an invitation from {accepted.from_reg_num}",
                details={"reg_num": reg_num, "inviter": accepted.from_reg_num},
            )

    @staticmethod
    def check_not_leading_forming_team(reg_num: str) -> None:
        if accepted_invitee_count(reg_num) > 0:
            raise ConflictError(
                f"{reg_num} is already forming their own team",
                details={"reg_num": reg_num},
            )

    @staticmethod
    def check_compatible(a: User, b: User) -> None:
        """Same semester, same project type, same company when both external."""
        if not a.project_type or not b.project_type:
            missing = a.reg_num if not a.project_type else b.reg_num
            raise ValidationError(
                f"{missing} has not chosen a project type yet",
                details={"project_type": "required", "reg_num": missing},
            )
        if a.semester != b.semester:
            raise ValidationError(
                "Team members must be in the same semester",
                details={"semester": [a.semester, b.semester]},
            )
        if a.project_type != b.project_type:
            raise ValidationError(
                "Team members must share the same project type",
                details={"project_type": [a.project_type, b.project_type]},
            )
        if a.project_type == "external" and \
                (a.company_name or "").strip().lower() != (b.company_name or "").strip().lower():
            raise ValidationError(
                "External project members must be from the same company",
                details={"company_name": [a.company_name, b.company_name]},
            )


guard = TeamCompositionGuard()


# ═══════════════════════════════════════════════════════════════════════════
#  Join-request lifecycle
# ═══════════════════════════════════════════════════════════════════════════


class TeamJoinLifecycle(RequestLifecycle):
    family = "team_join"
    model = TeamJoinRequest

    def pending_statement(self, actor, counterparty):
        return select(TeamJoinRequest).where(
            TeamJoinRequest.from_reg_num == counterparty,
            TeamJoinRequest.to_reg_num == actor,
            TeamJoinRequest.status == "interested",
        )

    def guard_decision(self, row, actor, decision):
        if decision != "accept":
            return
        guard.check_not_in_team(row.from_reg_num, actor)
        guard.check_not_joining_elsewhere(actor)
        guard.check_not_leading_forming_team(actor)
        guard.check_not_joining_elsewhere(row.from_reg_num)
        guard.check_inviter_has_room(row.from_reg_num)
        guard.check_compatible(get_user(row.from_reg_num), get_user(actor))

    def apply_accept(self, row, actor):
        # This accept fills the inviter's last slot: withdraw their other invitations
        if accepted_invitee_count(row.from_reg_num) + 1 >= _max_team_size() - 1:
            result = db.session.execute(
                delete(TeamJoinRequest)
                .where(
                    TeamJoinRequest.from_reg_num == row.from_reg_num,
                    TeamJoinRequest.status == "interested",
                    TeamJoinRequest.id != row.id,
                )
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount:
                logger.info("Team of %s is full, withdrew %d pending invitations",
                            row.from_reg_num, result.rowcount,
                            extra={"reg_num": row.from_reg_num, "family": self.family})

    def create(self, from_reg: str, to_reg: str) -> TeamJoinRequest:
        """Invite ``to_reg`` into the team ``from_reg`` is forming."""
        to_reg = (to_reg or "").strip()
        if not to_reg:
            raise ValidationError("to_reg_num is required", details={"to_reg_num": "required"},
                                  code="ERR_VALIDATION_REQUIRED")
        if from_reg == to_reg:
            raise ValidationError("You cannot invite yourself", details={"to_reg_num": "self"})

        sender = get_user(from_reg, role="student")
        receiver = get_user(to_reg, role="student")

        with atomic("team_join.create"):
            existing = self.first_where(
                or_(
                    and_(TeamJoinRequest.from_reg_num == from_reg, TeamJoinRequest.to_reg_num == to_reg),
                    and_(TeamJoinRequest.from_reg_num == to_reg, TeamJoinRequest.to_reg_num == from_reg),
                ),
                TeamJoinRequest.status.in_(LIVE_STATUSES),
            )
            if existing is not None:
                raise DuplicateRequestError(
                    "An invitation between these students already exists",
                    details={"request_id": existing.id, "status": existing.status},
                )

            guard.check_not_in_team(from_reg, to_reg)
            guard.check_not_joining_elsewhere(from_reg)
            guard.check_not_joining_elsewhere(to_reg)
            guard.check_not_leading_forming_team(to_reg)
            guard.check_inviter_has_room(from_reg)
            guard.check_compatible(sender, receiver)

            row = TeamJoinRequest(from_reg_num=from_reg, to_reg_num=to_reg, status="interested")
            db.session.add(row)

        logger.info("Team invitation %s → %s", from_reg, to_reg,
                    extra={"reg_num": from_reg, "family": self.family})

        delivered = notify(
            to_reg, "team_invitation",
            {"from_name": sender.name, "from_reg_num": from_reg},
            entity_type="team_join_request", entity_id=row.id,
        )
        with atomic("team_join.notified"):
            row.notified = delivered
        return row


team_join = TeamJoinLifecycle()


def send_invitation(from_reg: str, to_reg: str) -> dict:
    return team_join.create(from_reg, to_reg).to_dict()


def decide_invitation(actor: str, inviter: str, decision, reason=None) -> dict:
    return team_join.decide(actor, inviter, decision, reason).to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  ConfirmTeam
# ═══════════════════════════════════════════════════════════════════════════


def next_team_id() -> str:
    """Next sequential TEAM-NNNN after the highest id issued so far."""
    existing = db.session.execute(
        select(Team.team_id).where(Team.team_id.like(f"{TEAM_ID_PREFIX}-%"))
    ).scalars().all()
    numbers = []
    for team_id in existing:
        suffix = team_id.rsplit("-", 1)[-1]
        if suffix.isdigit():
            numbers.append(int(suffix))
    return format_team_id(max(numbers, default=0) + 1)


def confirm_team(leader_reg: str) -> dict:
    """
    Finalise the team led by ``leader_reg``.

    Zero accepted invitees → solo team.  Otherwise every accepted, not yet
    team-bound invitee joins; their edges are stamped with the team id and
    every other non-accepted, unbound edge touching any member is purged.
    """
    leader = get_user(leader_reg, role="student")
    if leader.semester is None:
        raise ValidationError("Your semester is not set", details={"semester": "required"})

    with atomic("team.confirm"):
        guard.check_not_in_team(leader_reg)
        accepted = accepted_invitation_of(leader_reg)
        if accepted is not None:
            raise ConflictError(
                f"You joined the team of {accepted.from_reg_num}; only they can confirm it",
                details={"leader": accepted.from_reg_num},
            )

        invitations = db.session.execute(
            select(TeamJoinRequest)
            .where(
                TeamJoinRequest.from_reg_num == leader_reg,
                TeamJoinRequest.status == "accept",
                TeamJoinRequest.team_conformed.is_(False),
            )
            .order_by(TeamJoinRequest.id)
            .with_for_update()
        ).scalars().all()
        invitees = [inv.to_reg_num for inv in invitations]

        guard.check_not_in_team(*invitees)
        if len(invitees) + 1 > _max_team_size():
            raise ConflictError(
                f"A team may have at most {_max_team_size()} members",
                details={"members": len(invitees) + 1},
            )
        for reg_num in invitees:
            guard.check_compatible(leader, get_user(reg_num))

        team_id = next_team_id()
        team = Team(team_id=team_id, semester=leader.semester, leader_reg_num=leader_reg)
        team.members.append(TeamMember(reg_num=leader_reg, is_leader=True))
        for reg_num in invitees:
            team.members.append(TeamMember(reg_num=reg_num, is_leader=False))
        db.session.add(team)
        db.session.flush()

        for inv in invitations:
            inv.team_id = team_id
            inv.team_conformed = True

        members = [leader_reg, *invitees]
        purged = db.session.execute(
            delete(TeamJoinRequest)
            .where(
                or_(TeamJoinRequest.from_reg_num.in_(members),
                    TeamJoinRequest.to_reg_num.in_(members)),
                TeamJoinRequest.status != "accept",
                TeamJoinRequest.team_id.is_(None),
            )
            .execution_options(synchronize_session="fetch")
        ).rowcount

    logger.info("Team %s confirmed: leader=%s members=%d purged_invitations=%d",
                team_id, leader_reg, len(members), purged,
                extra={"team_id": team_id, "reg_num": leader_reg})
    return get_team(team_id).to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Project registration
# ═══════════════════════════════════════════════════════════════════════════


def register_project(leader_reg: str, payload: dict) -> dict:
    """Record the project of the caller's team; project type follows the leader."""
    name = (payload.get("project_name") or "").strip()
    if not name:
        raise ValidationError("project_name is required", details={"project_name": "required"},
                              code="ERR_VALIDATION_REQUIRED")
    hard_soft = (payload.get("hard_soft") or "").strip().lower() or None
    if hard_soft is not None and hard_soft not in HARDWARE_SOFTWARE:
        raise ValidationError("hard_soft must be 'hardware' or 'software'",
                              details={"hard_soft": "invalid"})

    leader = get_user(leader_reg, role="student")
    if not leader.project_type:
        raise ValidationError("Choose a project type before registering a project",
                              details={"project_type": "required"})

    with atomic("team.register_project"):
        team = team_led_by(leader_reg)
        if team.has_project:
            raise ConflictError(f"Team {team.team_id} already registered a project",
                                details={"team_id": team.team_id})
        team.project_name = name
        team.project_type = leader.project_type
        team.company_name = leader.company_name if leader.project_type == "external" else None
        team.cluster = payload.get("cluster")
        team.description = payload.get("description")
        team.outcome = payload.get("outcome")
        team.hard_soft = hard_soft
        team.project_registered_at = utcnow()

    logger.info("Project registered for %s: %s", team.team_id, name,
                extra={"team_id": team.team_id, "reg_num": leader_reg})
    return team.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Views
# ═══════════════════════════════════════════════════════════════════════════


def received_invitations(reg_num: str) -> list[dict]:
    """Pending invitations addressed to a student who is not yet in a team."""
    get_user(reg_num, role="student")
    guard.check_not_in_team(reg_num)
    rows = db.session.execute(
        select(TeamJoinRequest, User)
        .join(User, User.reg_num == TeamJoinRequest.from_reg_num)
        .where(TeamJoinRequest.to_reg_num == reg_num, TeamJoinRequest.status == "interested")
        .order_by(TeamJoinRequest.created_at)
    ).all()
    result = []
    for req, sender in rows:
        d = req.to_dict()
        d["from"] = {"reg_num": sender.reg_num, "name": sender.name, "semester": sender.semester,
                     "project_type": sender.project_type, "company_name": sender.company_name}
        result.append(d)
    return result


def team_status(reg_num: str) -> dict:
    """Confirmed team of a student, or the state of the team being formed."""
    get_user(reg_num, role="student")
    member = membership_of(reg_num)
    if member is not None:
        return {
            "confirmed": True,
            "is_leader": member.is_leader,
            "team": member.team.to_dict(),
        }

    joined = accepted_invitation_of(reg_num)
    outgoing = db.session.execute(
        select(TeamJoinRequest)
        .where(TeamJoinRequest.from_reg_num == reg_num,
               TeamJoinRequest.status.in_(LIVE_STATUSES))
        .order_by(TeamJoinRequest.id)
    ).scalars().all()
    return {
        "confirmed": False,
        "leader": joined.from_reg_num if joined else reg_num,
        "joined_team_of": joined.from_reg_num if joined else None,
        "accepted_invitees": [r.to_reg_num for r in outgoing if r.status == "accept"],
        "pending_invitations": [r.to_dict() for r in outgoing if r.status == "interested"],
    }


def team_detail(team_id: str) -> dict:
    return get_team(team_id).to_dict()
