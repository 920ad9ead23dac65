"""
Health check blueprint.

Endpoints:
    GET /api/v1/health         simple 200 for load balancers (also /ready)
    GET /api/v1/health/live    liveness with database round-trip
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from capstone.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe: 200 whenever the process is serving if app is running."""
    return jsonify({"status": "ok", "app": "Capstone Workflow Service"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with database status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": type(exc).__name__}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["app"] = {
        "name": "Capstone Workflow Service",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
