"""
Weekly progress and log verification.

A member submits progress text per week.  When the last member of the team
submits, a WeeklyLogVerification row for (team, week) is created (or
re-opened after a rejection) and the guide is notified.  The guide then
accepts (remarks required) or rejects (reason required; every member's
progress for that week is cleared so the whole team resubmits).
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import delete, func, select

from capstone.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from capstone.models import db
from capstone.models.progress import WeekDeadline, WeeklyLogVerification, WeeklyProgress
from capstone.services.email_service import notify
from capstone.services.helpers.queries import get_team, membership_of
from capstone.services.helpers.transaction import atomic, lock_one
from capstone.services.request_lifecycle import normalise_decision, require_reason, utcnow
from capstone.utils.helpers import parse_date

logger = logging.getLogger(__name__)


def _check_week(week) -> int:
    weeks = current_app.config["PROGRESS_WEEKS"]
    try:
        week = int(week)
    except (TypeError, ValueError):
        week = 0
    if not 1 <= week <= weeks:
        raise ValidationError(f"week must be between 1 and {weeks}", details={"week": "out_of_range"})
    return week


def _verification(team_id: str, week: int, *, lock: bool = False):
    stmt = select(WeeklyLogVerification).where(
        WeeklyLogVerification.team_id == team_id,
        WeeklyLogVerification.week_number == week,
    )
    if lock:
        return lock_one(stmt)
    return db.session.execute(stmt).scalar_one_or_none()


def submit_progress(reg_num: str, week, progress: str) -> dict:
    """Record a member's progress; open verification once the whole team submitted."""
    week = _check_week(week)
    text = (progress or "").strip() if isinstance(progress, str) else ""
    if not text:
        raise ValidationError("progress is required", details={"progress": "required"},
                              code="ERR_VALIDATION_REQUIRED")

    member = membership_of(reg_num)
    if member is None:
        raise NotFoundError(resource="Team membership", resource_id=reg_num)
    team = member.team

    ready = False
    with atomic("progress.submit"):
        verification = _verification(team.team_id, week, lock=True)
        if verification is not None and verification.is_verified:
            raise ConflictError(f"Week {week} is already verified", details={"week": week})

        existing = db.session.execute(
            select(WeeklyProgress).where(
                WeeklyProgress.team_id == team.team_id,
                WeeklyProgress.reg_num == reg_num,
                WeeklyProgress.week_number == week,
            )
        ).scalar_one_or_none()
        if existing is not None:
            return {"status": "already_submitted", "progress": existing.to_dict(), "verification_open": False}

        entry = WeeklyProgress(team_id=team.team_id, reg_num=reg_num, week_number=week, progress=text)
        db.session.add(entry)
        db.session.flush()

        submitted = db.session.execute(
            select(func.count(WeeklyProgress.id)).where(
                WeeklyProgress.team_id == team.team_id,
                WeeklyProgress.week_number == week,
            )
        ).scalar_one()
        if submitted >= len(team.members):
            if verification is None:
                db.session.add(WeeklyLogVerification(team_id=team.team_id, week_number=week,
                                                     status="pending", is_verified=False))
            else:
                verification.status = "pending"
                verification.reason = None
            ready = True

    logger.info("Week %d progress from %s (%s)%s", week, reg_num, team.team_id,
                ", ready for verification" if ready else "",
                extra={"team_id": team.team_id, "reg_num": reg_num})

    notified = None
    if ready and team.guide_reg_num:
        notified = notify(team.guide_reg_num, "weekly_log_ready",
                          {"team_id": team.team_id, "week_number": week},
                          entity_type="weekly_log_verification", entity_id=f"{team.team_id}:{week}")
    return {"status": "submitted", "progress": entry.to_dict(), "verification_open": ready,
            "guide_notified": notified}


def verify_week(guide_reg: str, team_id: str, week, decision, *, remarks=None, reason=None) -> dict:
    """Guide accepts or rejects a team's submitted week."""
    week = _check_week(week)
    decision = normalise_decision(decision)
    if decision == "accept":
        remarks = (remarks or "").strip() if isinstance(remarks, str) else ""
        if not remarks:
            raise ValidationError("remarks are required when accepting", details={"remarks": "required"},
                                  code="ERR_VALIDATION_REQUIRED")
    else:
        reason = require_reason(reason)

    with atomic("progress.verify"):
        team = get_team(team_id)
        if team.guide_reg_num != guide_reg:
            raise ForbiddenError("Only the team's guide can verify weekly logs",
                                 details={"team_id": team_id})
        row = _verification(team_id, week, lock=True)
        if row is None:
            raise NotFoundError(resource="Weekly log verification", resource_id=f"{team_id}:{week}")
        if row.is_verified:
            raise ConflictError(f"Week {week} is already verified", details={"week": week})
        if row.status != "pending":
            raise ConflictError(f"Week {week} is awaiting resubmission", details={"week": week})

        row.verified_by = guide_reg
        row.verified_at = utcnow()
        if decision == "accept":
            row.status = "accept"
            row.is_verified = True
            row.remarks = remarks
        else:
            row.status = "reject"
            row.reason = reason
            db.session.execute(
                delete(WeeklyProgress)
                .where(WeeklyProgress.team_id == team_id, WeeklyProgress.week_number == week)
                .execution_options(synchronize_session="fetch")
            )

    logger.info("Week %d of %s %sed by %s", week, team_id, decision, guide_reg,
                extra={"team_id": team_id, "reg_num": guide_reg})
    return row.to_dict()


def log_status(team_id: str) -> dict:
    """Per-member submission grid and verification state per week."""
    team = get_team(team_id)
    weeks = current_app.config["PROGRESS_WEEKS"]
    submitted = {
        (p.reg_num, p.week_number)
        for p in db.session.execute(
            select(WeeklyProgress).where(WeeklyProgress.team_id == team_id)
        ).scalars()
    }
    verifications = {
        v.week_number: v
        for v in db.session.execute(
            select(WeeklyLogVerification).where(WeeklyLogVerification.team_id == team_id)
        ).scalars()
    }
    result = []
    for week in range(1, weeks + 1):
        v = verifications.get(week)
        result.append({
            "week_number": week,
            "members": {reg: (reg, week) in submitted for reg in team.member_reg_nums()},
            "verification": v.to_dict() if v else None,
        })
    return {"team_id": team_id, "weeks": result}


def verified_week_count(team_id: str) -> int:
    get_team(team_id)
    return db.session.execute(
        select(func.count(WeeklyLogVerification.id)).where(
            WeeklyLogVerification.team_id == team_id,
            WeeklyLogVerification.is_verified.is_(True),
        )
    ).scalar_one()


def set_deadline(team_id: str, week, deadline) -> dict:
    week = _check_week(week)
    deadline = parse_date(deadline, "deadline")
    if deadline is None:
        raise ValidationError("deadline is required", details={"deadline": "required"},
                              code="ERR_VALIDATION_REQUIRED")
    with atomic("progress.deadline"):
        get_team(team_id)
        row = db.session.execute(
            select(WeekDeadline).where(WeekDeadline.team_id == team_id, WeekDeadline.week_number == week)
        ).scalar_one_or_none()
        if row is None:
            row = WeekDeadline(team_id=team_id, week_number=week, deadline=deadline)
            db.session.add(row)
        else:
            row.deadline = deadline
    return row.to_dict()
