"""
Team formation blueprint.

Endpoints:
    POST   /api/v1/teams/invitations                         invite a student
           Body: { "to_reg_num": "..." }
    GET    /api/v1/teams/invitations/received                pending invitations for caller
    POST   /api/v1/teams/invitations/<from_reg_num>/decision accept / reject an invitation
           Body: { "decision": "accept|reject", "reason": "..." }
    POST   /api/v1/teams/confirm                             finalise the caller's team
    GET    /api/v1/teams/status                              caller's team or forming state
    GET    /api/v1/teams/<team_id>                           team detail
    POST   /api/v1/teams/project                             leader registers the project

Layer contract:
    - Blueprint: parse input, resolve caller identity, call service, render envelope.
    - NO db.session calls here; all writes are owned by team_service.
"""

import logging

from flask import Blueprint, request

from capstone.middleware.identity import current_identity, identity_required
from capstone.services import team_service
from capstone.utils.errors import api_ok

logger = logging.getLogger(__name__)

team_bp = Blueprint("teams", __name__, url_prefix="/api/v1/teams")


@team_bp.route("/invitations", methods=["POST"])
@identity_required("student")
def send_invitation():
    data = request.get_json(silent=True) or {}
    row = team_service.send_invitation(current_identity().reg_num, data.get("to_reg_num"))
    return api_ok("Invitation sent", row, status=201)


@team_bp.route("/invitations/received", methods=["GET"])
@identity_required("student")
def received_invitations():
    rows = team_service.received_invitations(current_identity().reg_num)
    return api_ok(f"{len(rows)} pending invitation(s)", {"items": rows, "total": len(rows)})


@team_bp.route("/invitations/<from_reg_num>/decision", methods=["POST"])
@identity_required("student")
def decide_invitation(from_reg_num):
    data = request.get_json(silent=True) or {}
    row = team_service.decide_invitation(
        current_identity().reg_num, from_reg_num, data.get("decision"), data.get("reason"),
    )
    return api_ok(f"Invitation {row['status']}ed", row)


@team_bp.route("/confirm", methods=["POST"])
@identity_required("student")
def confirm_team():
    team = team_service.confirm_team(current_identity().reg_num)
    return api_ok(f"Team {team['team_id']} confirmed", team, status=201)


@team_bp.route("/status", methods=["GET"])
@identity_required("student")
def team_status():
    return api_ok("Team status", team_service.team_status(current_identity().reg_num))


@team_bp.route("/project", methods=["POST"])
@identity_required("student")
def register_project():
    data = request.get_json(silent=True) or {}
    team = team_service.register_project(current_identity().reg_num, data)
    return api_ok("Project registered", team, status=201)


@team_bp.route("/<team_id>", methods=["GET"])
@identity_required()
def team_detail(team_id):
    return api_ok("Team detail", team_service.team_detail(team_id))
