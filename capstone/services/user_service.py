"""
User directory service.

Admin-managed registry of students, staff and admins keyed by registration
id, plus the profile fields the workflow reads: semester, project-type
preference, company name and staff availability.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select

from capstone.core.exceptions import ConflictError, ValidationError
from capstone.models import db
from capstone.models.mentorship import ExpertRequest, GuideRequest
from capstone.models.user import PROJECT_TYPES, USER_ROLES, User
from capstone.services.helpers.queries import (
    accepted_invitation_of,
    accepted_invitee_count,
    get_team,
    get_user,
    membership_of,
)
from capstone.services.helpers.transaction import atomic
from capstone.utils.helpers import parse_int, require_fields

logger = logging.getLogger(__name__)


def create_user(payload: dict) -> dict:
    """Create a single directory entry.

    Raises:
        ValidationError: missing fields, unknown role, invalid email
        ConflictError: registration id already registered
    """
    require_fields(payload, "reg_num", "name", "role")
    reg_num = payload["reg_num"].strip()
    role = payload["role"].strip().lower()
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(sorted(USER_ROLES))}",
                              details={"role": "invalid"})

    email = (payload.get("email") or "").strip() or None
    if email:
        try:
            valid = validate_email(email, check_deliverability=False)
            email = valid.normalized
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from e

    semester = payload.get("semester")
    if semester not in (None, ""):
        semester = parse_int(semester, "semester")
    else:
        semester = None
    if role == "student" and semester is None:
        raise ValidationError("semester is required for students", details={"semester": "required"},
                              code="ERR_VALIDATION_REQUIRED")

    with atomic("user.create"):
        if db.session.execute(select(User.id).where(User.reg_num == reg_num)).first() is not None:
            raise ConflictError(f"User {reg_num} already exists", details={"reg_num": reg_num})
        user = User(
            reg_num=reg_num,
            name=payload["name"].strip(),
            email=email,
            phone_number=payload.get("phone_number"),
            role=role,
            department=payload.get("department"),
            semester=semester,
            available=True,
        )
        db.session.add(user)

    logger.info("User created: %s (%s)", reg_num, role, extra={"reg_num": reg_num, "role": role})
    return user.to_dict()


def get_user_profile(reg_num: str) -> dict:
    return get_user(reg_num).to_dict()


def update_project_type(reg_num: str, project_type: str, company_name: str | None = None) -> dict:
    """Student chooses internal / external; external requires a company."""
    value = (project_type or "").strip().lower() if isinstance(project_type, str) else ""
    if value not in PROJECT_TYPES:
        raise ValidationError("project_type must be 'internal' or 'external'",
                              details={"project_type": "invalid"})
    company = (company_name or "").strip() if isinstance(company_name, str) else ""
    if value == "external" and not company:
        raise ValidationError("company_name is required for external projects",
                              details={"company_name": "required"}, code="ERR_VALIDATION_REQUIRED")

    with atomic("user.project_type"):
        user = get_user(reg_num, role="student")
        member = membership_of(reg_num)
        if member is not None:
            raise ConflictError("Project type cannot change after the team is confirmed",
                                details={"team_id": member.team_id})
        joined = accepted_invitation_of(reg_num)
        if joined is not None or accepted_invitee_count(reg_num) > 0:
            raise ConflictError("Project type cannot change while your team is forming",
                                details={"leader": joined.from_reg_num if joined else reg_num})
        user.project_type = value
        user.company_name = company if value == "external" else None

    logger.info("%s set project type %s", reg_num, value, extra={"reg_num": reg_num})
    return user.to_dict()


def set_availability(staff_reg: str, available: bool, reason: str | None = None) -> dict:
    """Explicit availability toggle; the only way back from capacity-driven unavailability."""
    if not isinstance(available, bool):
        raise ValidationError("available must be true or false", details={"available": "invalid"})

    with atomic("user.availability"):
        staff = get_user(staff_reg, role="staff")
        if available:
            staff.mark_available()
        else:
            staff.mark_unavailable((reason or "").strip() or "set unavailable")

    logger.info("Availability of %s set to %s", staff_reg, available, extra={"reg_num": staff_reg})
    return staff.to_dict()


def _accepted_counts(model, semester: int | None) -> dict[str, int]:
    stmt = (
        select(model.staff_reg_num, func.count(model.id))
        .where(model.status == "accept")
        .group_by(model.staff_reg_num)
    )
    if semester is not None:
        stmt = stmt.where(model.team_semester == semester)
    return dict(db.session.execute(stmt).all())


def list_available_staff(semester: int | None = None) -> list[dict]:
    """Available staff with their accepted guide / expert counts."""
    staff = db.session.execute(
        select(User).where(User.role == "staff", User.available.is_(True)).order_by(User.reg_num)
    ).scalars().all()
    guides = _accepted_counts(GuideRequest, semester)
    experts = _accepted_counts(ExpertRequest, semester)
    return [
        dict(s.to_dict(), accepted_as_guide=guides.get(s.reg_num, 0),
             accepted_as_expert=experts.get(s.reg_num, 0))
        for s in staff
    ]


def role_for_team(staff_reg: str, team_id: str) -> str | None:
    """'guide', 'expert' or None for a staff member on a team."""
    team = get_team(team_id)
    if team.guide_reg_num == staff_reg:
        return "guide"
    if team.expert_reg_num == staff_reg:
        return "expert"
    return None
