"""
Guide / expert assignment blueprint.

<family> is "guide" or "expert"; anything else is a 404.

Endpoints:
    POST   /api/v1/mentorship/<family>/requests                    leader requests staff
           Body: { "targets": ["STAFF1", "STAFF2"] }
    POST   /api/v1/mentorship/<family>/requests/<team_id>/decision staff decides
           Body: { "decision": "accept|reject", "reason": "..." }
    GET    /api/v1/mentorship/<family>/requests/pending            staff's pending requests
    GET    /api/v1/mentorship/<family>/teams                       teams the caller mentors
    POST   /api/v1/mentorship/<family>/assign                      admin direct assignment
           Body: { "team_id": "...", "staff_reg_num": "..." }
    GET    /api/v1/mentorship/teams/<team_id>/requests             request status per team
"""

import logging

from flask import Blueprint, request

from capstone.middleware.identity import current_identity, identity_required
from capstone.services import mentorship_service
from capstone.utils.errors import api_ok

logger = logging.getLogger(__name__)

mentorship_bp = Blueprint("mentorship", __name__, url_prefix="/api/v1/mentorship")


@mentorship_bp.route("/<family>/requests", methods=["POST"])
@identity_required("student")
def create_requests(family):
    data = request.get_json(silent=True) or {}
    targets = data.get("targets")
    if targets is None and data.get("staff_reg_num"):
        targets = [data["staff_reg_num"]]
    summary = mentorship_service.request_staff(family, current_identity().reg_num, targets)
    message = f"{summary['success_count']} of {summary['requested']} {family} request(s) sent"
    return api_ok(message, summary, status=201)


@mentorship_bp.route("/<family>/requests/<team_id>/decision", methods=["POST"])
@identity_required("staff")
def decide_request(family, team_id):
    data = request.get_json(silent=True) or {}
    row = mentorship_service.decide_request(
        family, current_identity().reg_num, team_id, data.get("decision"), data.get("reason"),
    )
    return api_ok(f"{family.capitalize()} request {row['status']}ed", row)


@mentorship_bp.route("/<family>/requests/pending", methods=["GET"])
@identity_required("staff")
def pending_requests(family):
    rows = mentorship_service.lifecycle_for(family).pending_for_staff(current_identity().reg_num)
    return api_ok(f"{len(rows)} pending request(s)", {"items": rows, "total": len(rows)})


@mentorship_bp.route("/<family>/teams", methods=["GET"])
@identity_required("staff")
def mentored_teams(family):
    teams = mentorship_service.lifecycle_for(family).mentored_teams(current_identity().reg_num)
    return api_ok(f"{len(teams)} team(s)", {"items": teams, "total": len(teams)})


@mentorship_bp.route("/<family>/assign", methods=["POST"])
@identity_required("admin")
def assign_directly(family):
    data = request.get_json(silent=True) or {}
    row = mentorship_service.assign_directly(
        family, current_identity().reg_num, data.get("team_id"), data.get("staff_reg_num"),
    )
    return api_ok(f"{family.capitalize()} assigned", row, status=201)


@mentorship_bp.route("/teams/<team_id>/requests", methods=["GET"])
@identity_required()
def team_requests(team_id):
    return api_ok("Request status", mentorship_service.request_status_for_team(team_id))
