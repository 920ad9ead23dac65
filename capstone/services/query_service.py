"""
Student queries to the team's guide.

A member of a confirmed team asks a question; it is addressed to the team's
guide, who answers it once.  Only the most recent ANSWERED_QUERIES_KEPT
answered queries of a team are retained: older answered ones are pruned
each time a new query is raised.  Unanswered queries are never pruned.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import delete, select

from capstone.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from capstone.models import db
from capstone.models.query import StudentQuery
from capstone.services.email_service import notify
from capstone.services.helpers.queries import get_user, membership_of
from capstone.services.helpers.transaction import atomic, lock_one
from capstone.services.request_lifecycle import utcnow

logger = logging.getLogger(__name__)


def _text(value, field: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValidationError(f"{field} is required", details={field: "required"},
                              code="ERR_VALIDATION_REQUIRED")
    return text


def _prune_answered(team_id: str) -> int:
    keep = current_app.config["ANSWERED_QUERIES_KEPT"]
    stale = db.session.execute(
        select(StudentQuery.query_id)
        .where(StudentQuery.team_id == team_id, StudentQuery.reply.is_not(None))
        .order_by(StudentQuery.created_at.desc(), StudentQuery.query_id.desc())
        .offset(keep)
    ).scalars().all()
    if not stale:
        return 0
    db.session.execute(
        delete(StudentQuery)
        .where(StudentQuery.query_id.in_(stale))
        .execution_options(synchronize_session="fetch")
    )
    return len(stale)


def submit_query(reg_num: str, question) -> dict:
    """Raise a question to the guide of the caller's team."""
    question = _text(question, "question")

    with atomic("query.submit"):
        member = membership_of(reg_num)
        if member is None:
            raise NotFoundError(resource="Team membership", resource_id=reg_num)
        team = member.team
        if not team.guide_reg_num:
            raise ConflictError("Your team has no guide yet", details={"team_id": team.team_id})

        row = StudentQuery(
            team_id=team.team_id,
            project_name=team.project_name,
            team_member=reg_num,
            guide_reg_num=team.guide_reg_num,
            question=question,
        )
        db.session.add(row)
        db.session.flush()
        pruned = _prune_answered(team.team_id)

    logger.info("Query %s from %s to guide %s (pruned %d answered)", row.query_id, reg_num,
                row.guide_reg_num, pruned, extra={"team_id": row.team_id, "reg_num": reg_num})

    notified = notify(row.guide_reg_num, "student_query",
                      {"team_id": row.team_id, "from_reg_num": reg_num, "question": question},
                      entity_type="student_query", entity_id=row.query_id)
    return dict(row.to_dict(), notified=notified)


def reply_to_query(guide_reg: str, query_id: int, reply) -> dict:
    """The addressed guide answers a query; a query is answered once."""
    reply = _text(reply, "reply")

    with atomic("query.reply"):
        row = lock_one(select(StudentQuery).where(StudentQuery.query_id == query_id))
        if row is None:
            raise NotFoundError(resource="StudentQuery", resource_id=query_id)
        if row.guide_reg_num != guide_reg:
            raise ForbiddenError("Only the guide this query was sent to can answer it",
                                 details={"query_id": query_id})
        if row.answered:
            raise ConflictError("This query is already answered", details={"query_id": query_id})
        row.reply = reply
        row.replied_at = utcnow()

    logger.info("Query %s answered by %s", query_id, guide_reg,
                extra={"team_id": row.team_id, "reg_num": guide_reg})

    notified = notify(row.team_member, "query_reply",
                      {"team_id": row.team_id, "guide_reg_num": guide_reg, "question": row.question},
                      entity_type="student_query", entity_id=row.query_id)
    return dict(row.to_dict(), notified=notified)


def queries_for_guide(guide_reg: str, *, unanswered_only: bool = False) -> list[dict]:
    get_user(guide_reg, role="staff")
    stmt = select(StudentQuery).where(StudentQuery.guide_reg_num == guide_reg)
    if unanswered_only:
        stmt = stmt.where(StudentQuery.reply.is_(None))
    rows = db.session.execute(stmt.order_by(StudentQuery.query_id)).scalars().all()
    return [r.to_dict() for r in rows]


def queries_for_team_of(reg_num: str) -> list[dict]:
    """Every query raised by the caller's team, newest first."""
    member = membership_of(reg_num)
    if member is None:
        raise NotFoundError(resource="Team membership", resource_id=reg_num)
    rows = db.session.execute(
        select(StudentQuery)
        .where(StudentQuery.team_id == member.team_id)
        .order_by(StudentQuery.query_id.desc())
    ).scalars().all()
    return [r.to_dict() for r in rows]
