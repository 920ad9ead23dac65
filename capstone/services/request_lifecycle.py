"""
Request Lifecycle Engine.

One parameterised state machine drives every single-acceptor request family
(team join, guide, expert):

    interested ──accept──▶ accept   (terminal)
        │
        └──────reject──▶ reject    (terminal, reason required)

Subclasses describe WHERE the pending row lives and WHAT accepting means;
the engine owns the shared contract:

    1. decision / reason validation before any store access
    2. one atomic unit of work: lock the pending row → NotFound when absent
       → family guards → accept side effect → status stamp
    3. notification only after commit

A second Decide on the same row therefore finds no ``interested`` row and
fails with NotFoundError; nothing is ever applied twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from capstone.core.exceptions import NotFoundError, ValidationError
from capstone.models import db
from capstone.models.team import DECISIONS
from capstone.services.helpers.transaction import atomic, lock_one

logger = logging.getLogger(__name__)


# Live edges block a new request between the same parties
LIVE_STATUSES = ("interested", "accept")


def normalise_decision(decision) -> str:
    value = (decision or "").strip().lower() if isinstance(decision, str) else ""
    if value not in DECISIONS:
        raise ValidationError(
            "decision must be 'accept' or 'reject'",
            details={"decision": "invalid"},
        )
    return value


def require_reason(reason) -> str:
    """A rejection must always explain itself."""
    text = (reason or "").strip() if isinstance(reason, str) else ""
    if not text:
        raise ValidationError(
            "reason is required when rejecting",
            details={"reason": "required"},
            code="ERR_VALIDATION_REQUIRED",
        )
    return text


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestLifecycle:
    """Base engine.  Subclasses set ``family`` / ``model`` and fill the hooks."""

    family: str = ""
    model = None

    # ── hooks ────────────────────────────────────────────────────────────

    def pending_statement(self, actor: str, counterparty: str):
        """SELECT for the single ``interested`` row the actor may decide."""
        raise NotImplementedError

    def guard_decision(self, row, actor: str, decision: str) -> None:
        """Raise a WorkflowError to refuse the decision.  Runs under the row lock."""

    def apply_accept(self, row, actor: str) -> None:
        """Side effect of accepting.  Runs while ``row.status`` is still ``interested``."""

    def after_commit(self, row, decision: str) -> None:
        """Post-commit work (notifications)."""

    # ── engine ───────────────────────────────────────────────────────────

    def decide(self, actor: str, counterparty: str, decision, reason=None):
        """Accept or reject the pending request ``counterparty → actor``."""
        decision = normalise_decision(decision)
        if decision == "reject":
            reason = require_reason(reason)

        with atomic(f"{self.family}.decide"):
            row = lock_one(self.pending_statement(actor, counterparty))
            if row is None:
                raise NotFoundError(
                    resource=f"Pending {self.model.__name__}",
                    resource_id=f"{counterparty}→{actor}",
                )

            self.guard_decision(row, actor, decision)

            if decision == "accept":
                self.apply_accept(row, actor)
                row.reason = None
            else:
                row.reason = reason
            row.status = decision
            row.decided_at = utcnow()

        logger.info(
            "%s request %s by %s (counterparty=%s)", self.family, decision, actor, counterparty,
            extra={"reg_num": actor, "family": self.family},
        )
        self.after_commit(row, decision)
        return row

    # ── shared queries ───────────────────────────────────────────────────

    def count_where(self, *criteria) -> int:
        return db.session.execute(
            select(func.count(self.model.id)).where(*criteria)
        ).scalar_one()

    def first_where(self, *criteria):
        return db.session.execute(
            select(self.model).where(*criteria)
        ).scalars().first()
