"""
Review scheduling and post-review blueprint.

Endpoints:
    POST   /api/v1/reviews/requests                                  leader proposes a slot
           Body: { "review_date", "start_time", "file_ref", "is_optional" }
    POST   /api/v1/reviews/requests/<request_id>/<party>/decision    guide / expert confirms
           Body: { "decision": "accept|reject", "reason", "meeting_link" }
    GET    /api/v1/reviews/requests/pending?party=guide|expert       caller's pending requests
    GET    /api/v1/reviews/teams/<team_id>/requests                  request history
    GET    /api/v1/reviews/upcoming                                  caller's upcoming reviews
    GET    /api/v1/reviews/teams/<team_id>/upcoming
    GET    /api/v1/reviews/teams/<team_id>/completed
    POST   /api/v1/reviews/<review_id>/attendance                    { "attendance" }
    POST   /api/v1/reviews/<review_id>/end-time                      { "end_time": "HH:MM:SS" }
    POST   /api/v1/reviews/<review_id>/marks/<party>                 { "scores": {...}, "remarks" }
    GET    /api/v1/reviews/<review_id>/marks
    POST   /api/v1/reviews/<review_id>/marks/<party>/students/<reg_num>  per-member marks
           Body: { "scores": {oral_presentation, viva_voce_and_ppt, contributions}, "remarks" }
    GET    /api/v1/reviews/<review_id>/individual-marks
"""

import logging

from flask import Blueprint, request

from capstone.middleware.identity import current_identity, identity_required
from capstone.services import marks_service, review_scheduling
from capstone.utils.errors import api_ok
from capstone.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

review_bp = Blueprint("reviews", __name__, url_prefix="/api/v1/reviews")


# ── Scheduling ───────────────────────────────────────────────────────────


@review_bp.route("/requests", methods=["POST"])
@identity_required("student")
def request_review():
    data = request.get_json(silent=True) or {}
    row = review_scheduling.request_review(
        current_identity().reg_num,
        data.get("review_date"),
        data.get("start_time"),
        data.get("file_ref"),
        is_optional=parse_bool(data.get("is_optional"), "is_optional"),
    )
    return api_ok(f"{row['review_title']} requested", row, status=201)


@review_bp.route("/requests/<int:request_id>/<party>/decision", methods=["POST"])
@identity_required("staff")
def confirm_review(request_id, party):
    data = request.get_json(silent=True) or {}
    result = review_scheduling.confirm(
        request_id, party, current_identity().reg_num, data.get("decision"),
        reason=data.get("reason"), meeting_link=data.get("meeting_link"),
    )
    messages = {
        review_scheduling.OUTCOME_MATERIALIZED: "Review scheduled",
        review_scheduling.OUTCOME_WAITING: "Accepted, waiting on the other reviewer",
        review_scheduling.OUTCOME_REJECTED: "Review request rejected",
        review_scheduling.OUTCOME_DEAD: "Accepted, but the other reviewer already rejected this request",
    }
    return api_ok(messages[result["outcome"]], result)


@review_bp.route("/requests/pending", methods=["GET"])
@identity_required("staff")
def pending_requests():
    party = request.args.get("party", "guide")
    rows = review_scheduling.pending_for_staff(current_identity().reg_num, party)
    return api_ok(f"{len(rows)} pending review request(s)", {"items": rows, "total": len(rows)})


@review_bp.route("/teams/<team_id>/requests", methods=["GET"])
@identity_required()
def team_requests(team_id):
    rows = review_scheduling.requests_for_team(team_id)
    return api_ok("Review requests", {"items": rows, "total": len(rows)})


@review_bp.route("/upcoming", methods=["GET"])
@identity_required("staff")
def upcoming_for_staff():
    rows = review_scheduling.upcoming_for_staff(current_identity().reg_num)
    return api_ok("Upcoming reviews", {"items": rows, "total": len(rows)})


@review_bp.route("/teams/<team_id>/upcoming", methods=["GET"])
@identity_required()
def upcoming_for_team(team_id):
    rows = review_scheduling.upcoming_for_team(team_id)
    return api_ok("Upcoming reviews", {"items": rows, "total": len(rows)})


@review_bp.route("/teams/<team_id>/completed", methods=["GET"])
@identity_required()
def completed_for_team(team_id):
    rows = review_scheduling.completed_for_team(team_id)
    return api_ok("Completed reviews", {"items": rows, "total": len(rows)})


# ── Post-review annotation ───────────────────────────────────────────────


@review_bp.route("/<int:review_id>/attendance", methods=["POST"])
@identity_required("staff")
def record_attendance(review_id):
    data = request.get_json(silent=True) or {}
    review = marks_service.record_attendance(review_id, current_identity().reg_num, data.get("attendance"))
    return api_ok("Attendance recorded", review)


@review_bp.route("/<int:review_id>/end-time", methods=["POST"])
@identity_required("staff")
def record_end_time(review_id):
    data = request.get_json(silent=True) or {}
    review = marks_service.record_end_time(review_id, current_identity().reg_num, data.get("end_time"))
    return api_ok("End time recorded", review)


@review_bp.route("/<int:review_id>/marks/<party>", methods=["POST"])
@identity_required("staff")
def enter_marks(review_id, party):
    data = request.get_json(silent=True) or {}
    marks = marks_service.enter_marks(
        review_id, party, current_identity().reg_num, data.get("scores"), data.get("remarks"),
    )
    return api_ok(f"{party.capitalize()} marks recorded", marks, status=201)


@review_bp.route("/<int:review_id>/marks", methods=["GET"])
@identity_required()
def get_marks(review_id):
    return api_ok("Review marks", marks_service.get_marks(review_id))


@review_bp.route("/<int:review_id>/marks/<party>/students/<student_reg_num>", methods=["POST"])
@identity_required("staff")
def enter_individual_marks(review_id, party, student_reg_num):
    data = request.get_json(silent=True) or {}
    marks = marks_service.enter_individual_marks(
        review_id, party, current_identity().reg_num, student_reg_num,
        data.get("scores"), data.get("remarks"),
    )
    return api_ok(f"{party.capitalize()} marks recorded for {student_reg_num}", marks, status=201)


@review_bp.route("/<int:review_id>/individual-marks", methods=["GET"])
@identity_required()
def get_individual_marks(review_id):
    rows = marks_service.get_individual_marks(review_id)
    return api_ok("Individual marks", {"items": rows, "total": len(rows)})
