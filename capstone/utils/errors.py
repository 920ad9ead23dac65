"""Standardised API response envelope.

Usage
-----
    from capstone.utils.errors import api_ok, api_error, E

    return api_ok("Team confirmed", team.to_dict(), status=201)
    return api_error(E.VALIDATION_REQUIRED, "reason is required")

Every response has the shape::

    {"ok": true,  "message": str, "data": {...}}
    {"ok": false, "message": str, "error": {"kind", "code", "detail"?, "reference"?}}
"""

from __future__ import annotations

import logging
import uuid

from flask import jsonify
from werkzeug.exceptions import HTTPException

from capstone.core.exceptions import WorkflowError

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Identity – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / saturation – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CAPACITY_EXCEEDED = "ERR_CAPACITY_EXCEEDED"
    NO_ELIGIBLE_TARGETS = "ERR_NO_ELIGIBLE_TARGETS"

    # Time window – HTTP 422
    TIME_WINDOW = "ERR_TIME_WINDOW"

    # Transport – HTTP 405 / 415 / 429
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    UNSUPPORTED_MEDIA = "ERR_UNSUPPORTED_MEDIA"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status / kind mapping ────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CAPACITY_EXCEEDED: 409,
    E.NO_ELIGIBLE_TARGETS: 409,
    E.UNSUPPORTED_MEDIA: 415,
    E.TIME_WINDOW: 422,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}

_DEFAULT_KIND: dict[str, str] = {
    E.VALIDATION_REQUIRED: "ValidationError",
    E.VALIDATION_INVALID: "ValidationError",
    E.UNAUTHENTICATED: "Unauthenticated",
    E.FORBIDDEN: "Forbidden",
    E.NOT_FOUND: "NotFound",
    E.METHOD_NOT_ALLOWED: "MethodNotAllowed",
    E.CONFLICT_DUPLICATE: "DuplicateRequest",
    E.CONFLICT_STATE: "Conflict",
    E.CAPACITY_EXCEEDED: "CapacityExceeded",
    E.NO_ELIGIBLE_TARGETS: "NoEligibleTargets",
    E.UNSUPPORTED_MEDIA: "ValidationError",
    E.TIME_WINDOW: "TimeWindowExceeded",
    E.RATE_LIMITED: "RateLimited",
    E.DATABASE: "PersistenceError",
    E.INTERNAL: "InternalError",
}


def new_reference() -> str:
    """Short correlation id logged next to server-side failures."""
    return uuid.uuid4().hex[:12]


def api_ok(message: str, data=None, *, status: int = 200):
    """Return a standard JSON success response."""
    return jsonify({"ok": True, "message": message, "data": data if data is not None else {}}), status


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    kind: str | None = None,
    details: dict | None = None,
    reference: str | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    kind : str, optional
        Error kind override.  Falls back to ``_DEFAULT_KIND[code]``.
    details : dict, optional
        Extra structured payload.
    reference : str, optional
        Correlation id for server-side failures.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    error: dict = {
        "kind": kind or _DEFAULT_KIND.get(code, "Error"),
        "code": code,
    }
    if details:
        error["detail"] = details
    if reference:
        error["reference"] = reference

    return jsonify({"ok": False, "message": message, "error": error}), http_status


def workflow_error_response(exc: WorkflowError):
    """Render a WorkflowError (or subclass) into the failure envelope."""
    reference = getattr(exc, "reference", None)
    # Persistence failures never leak internal detail
    details = None if reference else exc.details
    return api_error(
        exc.code, exc.message,
        status=exc.status, kind=exc.kind, details=details, reference=reference,
    )


def register_error_handlers(app):
    """Install app-wide handlers so every failure uses the same envelope."""

    @app.errorhandler(WorkflowError)
    def _handle_workflow_error(exc: WorkflowError):
        if exc.status >= 500:
            logger.error("Workflow failure kind=%s reference=%s",
                         exc.kind, getattr(exc, "reference", None),
                         extra={"reference": getattr(exc, "reference", None)})
        else:
            logger.info("Request refused: %s (%s)", exc.message, exc.kind)
        return workflow_error_response(exc)

    @app.errorhandler(404)
    def _not_found(e):
        return api_error(E.NOT_FOUND, "Resource not found")

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(415)
    def _unsupported_media(e):
        return api_error(E.UNSUPPORTED_MEDIA, "Content-Type must be application/json")

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests",
                         details={"retry_after": str(e.description)})

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return api_error(E.VALIDATION_INVALID, e.description or e.name,
                         status=e.code, kind=e.name.replace(" ", ""))

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        reference = new_reference()
        logger.exception("Unhandled error reference=%s", reference, extra={"reference": reference})
        return api_error(E.INTERNAL, "Internal server error", reference=reference)
