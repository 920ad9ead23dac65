"""
Review Scheduling Coordinator.

A two-phase variant of the request lifecycle: a ReviewRequest carries
independent ``guide_status`` and ``expert_status`` fields and is
materialised into a ScheduledReview only once both read ``accept``.

    both_pending ──guide accept──▶ guide_accepted ──expert accept──▶ materialized
         │        ──expert accept─▶ expert_accepted ──guide accept──▶ materialized
         └── any reject ─────────────────────────────────────────────▶ dead

Each confirmation locks the request row, re-reads the counterparty's field
and, when both have accepted, inserts the ScheduledReview and deletes the
request in the same transaction.  The schedule is built only from the
request row, so the result does not depend on which party confirmed last.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func, or_, select

from capstone.core.exceptions import (
    ConflictError,
    DuplicateRequestError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from capstone.models import db
from capstone.models.progress import WeekDeadline, WeeklyLogVerification
from capstone.models.review import (
    REVIEW_PARTIES,
    STATE_DEAD,
    ReviewRequest,
    ScheduledReview,
)
from capstone.services.email_service import notify
from capstone.services.helpers.queries import get_team, team_led_by
from capstone.services.helpers.transaction import atomic, lock_one
from capstone.services.request_lifecycle import normalise_decision, require_reason
from capstone.utils.helpers import parse_date, parse_time

logger = logging.getLogger(__name__)

# Outcomes reported to the confirming party
OUTCOME_REJECTED = "rejected"
OUTCOME_WAITING = "waiting_on_counterparty"
OUTCOME_MATERIALIZED = "materialized"
OUTCOME_DEAD = "counterparty_rejected"

UPCOMING_GRACE = timedelta(hours=3)


def completed_review_count(team_id: str) -> int:
    return db.session.execute(
        select(func.count(ScheduledReview.review_id)).where(ScheduledReview.team_id == team_id)
    ).scalar_one()


def _week_verified(team_id: str, week: int) -> bool:
    row = db.session.execute(
        select(WeeklyLogVerification).where(
            WeeklyLogVerification.team_id == team_id,
            WeeklyLogVerification.week_number == week,
        )
    ).scalar_one_or_none()
    return bool(row and row.is_verified)


def _review_title(team_id: str, completed: int, is_optional: bool, today: date) -> str:
    """Derive the title and enforce the gating rules for it."""
    if is_optional:
        if completed != 1:
            raise ConflictError(
                "An optional review needs exactly one completed review",
                details={"completed_reviews": completed},
            )
        week = current_app.config["OPTIONAL_REVIEW_WEEK"]
        deadline = db.session.execute(
            select(WeekDeadline).where(WeekDeadline.team_id == team_id, WeekDeadline.week_number == week)
        ).scalar_one_or_none()
        if deadline is None or today < deadline.deadline:
            raise ConflictError(
                f"Optional reviews open after the week {week} deadline",
                details={"week": week, "deadline": deadline.deadline.isoformat() if deadline else None},
            )
        return "optional_review"

    if completed >= 2:
        raise ConflictError("Both regular reviews are already completed",
                            details={"completed_reviews": completed})
    title = "1st_review" if completed == 0 else "2nd_review"
    gate = current_app.config["REVIEW_GATE_WEEKS"][title]
    if not _week_verified(team_id, gate):
        raise ConflictError(
            f"Week {gate} logs must be verified before requesting {title}",
            details={"week": gate, "review_title": title},
        )
    return title


def request_review(
    leader_reg: str,
    review_date,
    start_time,
    file_ref: str,
    *,
    is_optional: bool = False,
    today: date | None = None,
) -> dict:
    """Propose a review slot to the team's guide and expert."""
    today = today or date.today()
    review_date = parse_date(review_date, "review_date")
    start_time = parse_time(start_time, "start_time")
    file_ref = (file_ref or "").strip() if isinstance(file_ref, str) else ""
    missing = [name for name, value in (("review_date", review_date), ("start_time", start_time),
                                        ("file_ref", file_ref)) if not value]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}",
                              details={m: "required" for m in missing}, code="ERR_VALIDATION_REQUIRED")
    if review_date < today:
        raise ValidationError("Review date cannot be in the past", details={"review_date": "past"})

    with atomic("review.request"):
        team = team_led_by(leader_reg)
        if not team.guide_reg_num or not team.expert_reg_num:
            raise ConflictError("The team needs both a guide and an expert before requesting a review",
                                details={"team_id": team.team_id})

        completed = completed_review_count(team.team_id)
        title = _review_title(team.team_id, completed, bool(is_optional), today)

        live = db.session.execute(
            select(ReviewRequest).where(ReviewRequest.team_id == team.team_id)
        ).scalars().all()
        live = [r for r in live if r.state != STATE_DEAD]
        if any(r.review_title == title for r in live):
            raise DuplicateRequestError(f"A {title} request is already pending",
                                        details={"review_title": title})
        slot_taken = any(
            r.review_date == review_date and r.start_time == start_time
            and r.guide_reg_num == team.guide_reg_num and r.expert_reg_num == team.expert_reg_num
            for r in live
        ) or db.session.execute(
            select(ScheduledReview.review_id).where(
                ScheduledReview.team_id == team.team_id,
                ScheduledReview.review_date == review_date,
                ScheduledReview.start_time == start_time,
            )
        ).first() is not None
        if slot_taken:
            raise DuplicateRequestError("This slot is already requested for the team",
                                        details={"review_date": review_date.isoformat(),
                                                 "start_time": start_time.isoformat()})

        row = ReviewRequest(
            team_id=team.team_id,
            project_name=team.project_name,
            team_lead=leader_reg,
            review_title=title,
            is_optional=bool(is_optional),
            review_date=review_date,
            start_time=start_time,
            guide_reg_num=team.guide_reg_num,
            expert_reg_num=team.expert_reg_num,
            guide_status="interested",
            expert_status="interested",
            file_ref=file_ref,
        )
        db.session.add(row)

    logger.info("Review request %s for %s on %s %s", title, row.team_id, review_date, start_time,
                extra={"team_id": row.team_id, "reg_num": leader_reg})

    context = {"team_id": row.team_id, "review_title": title,
               "review_date": review_date.isoformat(), "start_time": start_time.isoformat()}
    notified = {
        party: notify(getattr(row, f"{party}_reg_num"), "review_request", context,
                      entity_type="review_request", entity_id=row.request_id)
        for party in ("guide", "expert")
    }
    return dict(row.to_dict(), notified=notified)


def _materialize(row: ReviewRequest) -> ScheduledReview:
    review = ScheduledReview(
        team_id=row.team_id,
        source_request_id=row.request_id,
        project_name=row.project_name,
        team_lead=row.team_lead,
        review_title=row.review_title,
        review_date=row.review_date,
        start_time=row.start_time,
        guide_reg_num=row.guide_reg_num,
        expert_reg_num=row.expert_reg_num,
        meeting_link=row.meeting_link,
        file_ref=row.file_ref,
    )
    db.session.add(review)
    db.session.flush()
    db.session.delete(row)
    return review


def confirm(
    request_id: int,
    party: str,
    actor: str,
    decision,
    *,
    reason: str | None = None,
    meeting_link: str | None = None,
) -> dict:
    """
    Record one party's decision on a review request.

    Returns ``{"outcome", "request", "review"}`` where outcome is one of
    rejected, waiting_on_counterparty, counterparty_rejected, materialized.
    """
    if party not in REVIEW_PARTIES:
        raise ValidationError("party must be 'guide' or 'expert'", details={"party": "invalid"})
    decision = normalise_decision(decision)
    if decision == "reject":
        reason = require_reason(reason)
    meeting_link = meeting_link.strip() if isinstance(meeting_link, str) and meeting_link.strip() else None
    if decision == "accept" and party == "expert" and not meeting_link:
        raise ValidationError("meeting_link is required when the expert accepts",
                              details={"meeting_link": "required"}, code="ERR_VALIDATION_REQUIRED")

    other = "expert" if party == "guide" else "guide"
    review = None

    with atomic(f"review.confirm.{party}"):
        row = lock_one(select(ReviewRequest).where(ReviewRequest.request_id == request_id))
        if row is None:
            raise NotFoundError(resource="ReviewRequest", resource_id=request_id)
        if getattr(row, f"{party}_reg_num") != actor:
            raise ForbiddenError(f"Only the assigned {party} can confirm this review",
                                 details={"request_id": request_id})
        if getattr(row, f"{party}_status") != "interested":
            raise ConflictError(f"The {party} has already responded to this review request",
                                details={"status": getattr(row, f"{party}_status")})

        setattr(row, f"{party}_status", decision)
        if decision == "reject":
            setattr(row, f"{party}_reason", reason)
            outcome = OUTCOME_REJECTED
        else:
            setattr(row, f"{party}_meeting_link", meeting_link)
            counterparty = getattr(row, f"{other}_status")
            if counterparty == "accept":
                review = _materialize(row)
                outcome = OUTCOME_MATERIALIZED
            elif counterparty == "reject":
                outcome = OUTCOME_DEAD
            else:
                outcome = OUTCOME_WAITING

        request_snapshot = row.to_dict()

    logger.info("Review request %s: %s %s → %s", request_id, party, decision, outcome,
                extra={"reg_num": actor, "team_id": request_snapshot["team_id"], "family": "review"})

    result = {"outcome": outcome, "request": request_snapshot, "review": None}
    if review is not None:
        result["review"] = review.to_dict()
        context = dict(result["review"])
        context["meeting_link"] = context["meeting_link"] or "to be shared"
        for reg_num in {review.team_lead, review.guide_reg_num, review.expert_reg_num}:
            notify(reg_num, "review_scheduled", context,
                   entity_type="scheduled_review", entity_id=review.review_id)
    return result


# ── Views ────────────────────────────────────────────────────────────────


def pending_for_staff(staff_reg: str, party: str) -> list[dict]:
    """Requests still waiting on this staff member as ``party``."""
    if party not in REVIEW_PARTIES:
        raise ValidationError("party must be 'guide' or 'expert'", details={"party": "invalid"})
    other = "expert" if party == "guide" else "guide"
    rows = db.session.execute(
        select(ReviewRequest)
        .where(
            getattr(ReviewRequest, f"{party}_reg_num") == staff_reg,
            getattr(ReviewRequest, f"{party}_status") == "interested",
            getattr(ReviewRequest, f"{other}_status") != "reject",
        )
        .order_by(ReviewRequest.review_date, ReviewRequest.start_time)
    ).scalars().all()
    return [r.to_dict() for r in rows]


def requests_for_team(team_id: str) -> list[dict]:
    get_team(team_id)
    rows = db.session.execute(
        select(ReviewRequest).where(ReviewRequest.team_id == team_id).order_by(ReviewRequest.request_id)
    ).scalars().all()
    return [r.to_dict() for r in rows]


def _upcoming(criteria, now: datetime | None) -> list[dict]:
    now = now or datetime.now()
    earliest = now - UPCOMING_GRACE
    rows = db.session.execute(
        select(ScheduledReview)
        .where(criteria, ScheduledReview.attendance.is_(None),
               ScheduledReview.review_date >= earliest.date())
        .order_by(ScheduledReview.review_date, ScheduledReview.start_time)
    ).scalars().all()
    return [r.to_dict() for r in rows if r.starts_at >= earliest]


def upcoming_for_staff(staff_reg: str, now: datetime | None = None) -> list[dict]:
    return _upcoming(
        or_(ScheduledReview.guide_reg_num == staff_reg, ScheduledReview.expert_reg_num == staff_reg),
        now,
    )


def upcoming_for_team(team_id: str, now: datetime | None = None) -> list[dict]:
    get_team(team_id)
    return _upcoming(ScheduledReview.team_id == team_id, now)


def completed_for_team(team_id: str) -> list[dict]:
    get_team(team_id)
    rows = db.session.execute(
        select(ScheduledReview)
        .where(ScheduledReview.team_id == team_id, ScheduledReview.attendance.is_not(None))
        .order_by(ScheduledReview.review_date)
    ).scalars().all()
    return [r.to_dict() for r in rows]
