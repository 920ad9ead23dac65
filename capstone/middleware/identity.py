"""
Caller identity middleware.

Authentication happens upstream.  The gateway forwards the resolved
identity in two trusted headers which are read once per request:

    X-Registration-Id   registration number of the caller
    X-Role              student | staff | admin

Usage:
    @bp.route("/teams/confirm", methods=["POST"])
    @identity_required("student")
    def confirm_team():
        actor = current_identity()
        ...

Services receive the acting registration id as an explicit argument and
never read ``g`` themselves.
"""

import functools
import logging
from typing import NamedTuple

from flask import Flask, g, request

from capstone.models.user import USER_ROLES
from capstone.utils.errors import E, api_error

logger = logging.getLogger(__name__)

REG_NUM_HEADER = "X-Registration-Id"
ROLE_HEADER = "X-Role"


class Identity(NamedTuple):
    reg_num: str
    role: str


def init_identity(app: Flask):
    """Populate g.identity from the gateway headers (None when absent/invalid)."""

    @app.before_request
    def _resolve_identity():
        reg_num = (request.headers.get(REG_NUM_HEADER) or "").strip()
        role = (request.headers.get(ROLE_HEADER) or "").strip().lower()
        if reg_num and role in USER_ROLES:
            g.identity = Identity(reg_num, role)
        else:
            g.identity = None


def current_identity() -> Identity | None:
    return getattr(g, "identity", None)


def identity_required(*roles: str):
    """
    Decorator: require a resolved identity, optionally restricted to roles.

    401 when no identity is present, 403 when the role is not allowed.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = current_identity()
            if identity is None:
                return api_error(E.UNAUTHENTICATED, "Authenticated identity required", status=401)

            if roles and identity.role not in roles:
                logger.warning(
                    "%s (%s) denied on %s: requires one of %s",
                    identity.reg_num, identity.role, f.__name__, roles,
                    extra={"reg_num": identity.reg_num, "role": identity.role},
                )
                return api_error(E.FORBIDDEN, "Permission denied",
                                 details={"required_roles": list(roles)})

            return f(*args, **kwargs)
        return decorated
    return decorator
