"""
Weekly progress blueprint.

Endpoints:
    POST   /api/v1/progress/weeks/<week>                               member submits progress
           Body: { "progress": "..." }
    POST   /api/v1/progress/teams/<team_id>/weeks/<week>/verification  guide verifies
           Body: { "decision": "accept|reject", "remarks", "reason" }
    GET    /api/v1/progress/teams/<team_id>/status                     submission grid
    GET    /api/v1/progress/teams/<team_id>/verified-count
    PUT    /api/v1/progress/teams/<team_id>/weeks/<week>/deadline      admin sets deadline
           Body: { "deadline": "YYYY-MM-DD" }
"""

import logging

from flask import Blueprint, request

from capstone.middleware.identity import current_identity, identity_required
from capstone.services import progress_service
from capstone.utils.errors import api_ok

logger = logging.getLogger(__name__)

progress_bp = Blueprint("progress", __name__, url_prefix="/api/v1/progress")


@progress_bp.route("/weeks/<int:week>", methods=["POST"])
@identity_required("student")
def submit_progress(week):
    data = request.get_json(silent=True) or {}
    result = progress_service.submit_progress(current_identity().reg_num, week, data.get("progress"))
    if result["status"] == "already_submitted":
        return api_ok(f"Week {week} progress was already submitted", result)
    return api_ok(f"Week {week} progress submitted", result, status=201)


@progress_bp.route("/teams/<team_id>/weeks/<int:week>/verification", methods=["POST"])
@identity_required("staff")
def verify_week(team_id, week):
    data = request.get_json(silent=True) or {}
    row = progress_service.verify_week(
        current_identity().reg_num, team_id, week, data.get("decision"),
        remarks=data.get("remarks"), reason=data.get("reason"),
    )
    return api_ok(f"Week {week} {row['status']}ed", row)


@progress_bp.route("/teams/<team_id>/status", methods=["GET"])
@identity_required()
def log_status(team_id):
    return api_ok("Weekly log status", progress_service.log_status(team_id))


@progress_bp.route("/teams/<team_id>/verified-count", methods=["GET"])
@identity_required()
def verified_count(team_id):
    count = progress_service.verified_week_count(team_id)
    return api_ok(f"{count} verified week(s)", {"team_id": team_id, "verified_weeks": count})


@progress_bp.route("/teams/<team_id>/weeks/<int:week>/deadline", methods=["PUT"])
@identity_required("admin")
def set_deadline(team_id, week):
    data = request.get_json(silent=True) or {}
    row = progress_service.set_deadline(team_id, week, data.get("deadline"))
    return api_ok("Deadline saved", row)
