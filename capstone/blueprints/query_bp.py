"""
Student query blueprint.

Endpoints:
    POST   /api/v1/queries                           member asks the team's guide
           Body: { "question": "..." }
    GET    /api/v1/queries/team                      queries raised by the caller's team
    GET    /api/v1/queries/received?unanswered=true  queries addressed to the calling guide
    POST   /api/v1/queries/<query_id>/reply          guide answers
           Body: { "reply": "..." }
"""

import logging

from flask import Blueprint, request

from capstone.middleware.identity import current_identity, identity_required
from capstone.services import query_service
from capstone.utils.errors import api_ok
from capstone.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

query_bp = Blueprint("queries", __name__, url_prefix="/api/v1/queries")


@query_bp.route("", methods=["POST"])
@identity_required("student")
def submit_query():
    data = request.get_json(silent=True) or {}
    row = query_service.submit_query(current_identity().reg_num, data.get("question"))
    return api_ok("Query sent to your guide", row, status=201)


@query_bp.route("/team", methods=["GET"])
@identity_required("student")
def team_queries():
    rows = query_service.queries_for_team_of(current_identity().reg_num)
    return api_ok("Team queries", {"items": rows, "total": len(rows)})


@query_bp.route("/received", methods=["GET"])
@identity_required("staff")
def received_queries():
    unanswered = parse_bool(request.args.get("unanswered"), "unanswered")
    rows = query_service.queries_for_guide(current_identity().reg_num, unanswered_only=unanswered)
    return api_ok(f"{len(rows)} query(ies)", {"items": rows, "total": len(rows)})


@query_bp.route("/<int:query_id>/reply", methods=["POST"])
@identity_required("staff")
def reply_to_query(query_id):
    data = request.get_json(silent=True) or {}
    row = query_service.reply_to_query(current_identity().reg_num, query_id, data.get("reply"))
    return api_ok("Reply saved", row)
