"""
User directory blueprint.

Endpoints:
    POST   /api/v1/users                                  admin creates a user
    GET    /api/v1/users/<reg_num>                        profile
    PUT    /api/v1/users/me/project-type                  student preference
           Body: { "project_type": "internal|external", "company_name": "..." }
    PUT    /api/v1/users/<reg_num>/availability           staff (self) or admin
           Body: { "available": true|false, "reason": "..." }
    GET    /api/v1/users/staff/available?semester=5       available staff + load
    GET    /api/v1/users/<reg_num>/teams/<team_id>/role   guide | expert | null
"""

import logging

from flask import Blueprint, request

from capstone.core.exceptions import ForbiddenError
from capstone.middleware.identity import current_identity, identity_required
from capstone.services import user_service
from capstone.utils.errors import api_ok
from capstone.utils.helpers import parse_int

logger = logging.getLogger(__name__)

user_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@user_bp.route("", methods=["POST"])
@identity_required("admin")
def create_user():
    data = request.get_json(silent=True) or {}
    return api_ok("User created", user_service.create_user(data), status=201)


@user_bp.route("/me/project-type", methods=["PUT"])
@identity_required("student")
def update_project_type():
    data = request.get_json(silent=True) or {}
    user = user_service.update_project_type(
        current_identity().reg_num, data.get("project_type"), data.get("company_name"),
    )
    return api_ok("Project type updated", user)


@user_bp.route("/staff/available", methods=["GET"])
@identity_required()
def available_staff():
    semester = request.args.get("semester")
    semester = parse_int(semester, "semester") if semester else None
    rows = user_service.list_available_staff(semester)
    return api_ok(f"{len(rows)} available staff", {"items": rows, "total": len(rows)})


@user_bp.route("/<reg_num>", methods=["GET"])
@identity_required()
def get_user(reg_num):
    return api_ok("User", user_service.get_user_profile(reg_num))


@user_bp.route("/<reg_num>/availability", methods=["PUT"])
@identity_required("staff", "admin")
def set_availability(reg_num):
    identity = current_identity()
    if identity.role == "staff" and identity.reg_num != reg_num:
        raise ForbiddenError("Staff can only change their own availability")
    data = request.get_json(silent=True) or {}
    user = user_service.set_availability(reg_num, data.get("available"), data.get("reason"))
    return api_ok("Availability updated", user)


@user_bp.route("/<reg_num>/teams/<team_id>/role", methods=["GET"])
@identity_required()
def role_for_team(reg_num, team_id):
    role = user_service.role_for_team(reg_num, team_id)
    return api_ok("Role for team", {"reg_num": reg_num, "team_id": team_id, "role": role})
