"""
Lookup helpers shared by the workflow services.

get_user / get_team raise NotFoundError so callers never deal with None for
mandatory references.  The membership helpers answer the questions every
guard asks: which confirmed team is this student in, which team does this
student lead, who has already committed to a forming team.
"""

import logging

from sqlalchemy import func, select

from capstone.core.exceptions import ForbiddenError, NotFoundError
from capstone.models import db
from capstone.models.team import Team, TeamJoinRequest, TeamMember
from capstone.models.user import User

logger = logging.getLogger(__name__)


def get_user(reg_num: str, *, role: str | None = None) -> User:
    """Return the User for reg_num, optionally requiring a role."""
    user = db.session.execute(
        select(User).where(User.reg_num == reg_num)
    ).scalar_one_or_none()
    if user is None or (role is not None and user.role != role):
        raise NotFoundError(resource=(role or "user").capitalize(), resource_id=reg_num)
    return user


def get_team(team_id: str) -> Team:
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFoundError(resource="Team", resource_id=team_id)
    return team


def membership_of(reg_num: str) -> TeamMember | None:
    return db.session.execute(
        select(TeamMember).where(TeamMember.reg_num == reg_num)
    ).scalar_one_or_none()


def team_of_member(reg_num: str) -> Team | None:
    member = membership_of(reg_num)
    return member.team if member else None


def team_led_by(reg_num: str) -> Team:
    """Return the confirmed team whose leader is reg_num.

    NotFoundError when the student is in no team; ForbiddenError when the
    student is a member but not the leader.
    """
    member = membership_of(reg_num)
    if member is None:
        raise NotFoundError(resource="Team", resource_id=f"led by {reg_num}")
    if not member.is_leader:
        raise ForbiddenError("Only the team leader can perform this action",
                             details={"team_id": member.team_id})
    return member.team


def accepted_invitee_count(inviter: str) -> int:
    """Accepted, not yet team-bound invitations sent by inviter."""
    return db.session.execute(
        select(func.count(TeamJoinRequest.id)).where(
            TeamJoinRequest.from_reg_num == inviter,
            TeamJoinRequest.status == "accept",
            TeamJoinRequest.team_conformed.is_(False),
        )
    ).scalar_one()


def accepted_invitation_of(reg_num: str) -> TeamJoinRequest | None:
    """The invitation reg_num has accepted into a still-forming team, if any."""
    return db.session.execute(
        select(TeamJoinRequest).where(
            TeamJoinRequest.to_reg_num == reg_num,
            TeamJoinRequest.status == "accept",
            TeamJoinRequest.team_conformed.is_(False),
        )
    ).scalars().first()
