"""
Post-review annotation: attendance, end time, team marks and per-member
marks.

Time windows are measured from the scheduled start of the review:
    end time       REVIEW_END_TIME_WINDOW_HOURS
    guide marks    GUIDE_MARKS_WINDOW_HOURS
    expert marks   EXPERT_MARKS_WINDOW_HOURS

Schedule times are naive local times, so ``now`` is compared as a naive
local datetime as well.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import select

from capstone.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TimeWindowExceededError,
    ValidationError,
)
from capstone.models import db
from capstone.models.review import (
    ATTENDANCE_VALUES,
    INDIVIDUAL_CRITERIA,
    MARK_CRITERIA,
    REVIEW_PARTIES,
    IndividualReviewMarks,
    ReviewMarks,
    ScheduledReview,
)
from capstone.services.helpers.queries import membership_of
from capstone.services.helpers.transaction import atomic, lock_one
from capstone.services.request_lifecycle import utcnow
from capstone.utils.helpers import parse_time

logger = logging.getLogger(__name__)


def _locked_review(review_id: int) -> ScheduledReview:
    review = lock_one(select(ScheduledReview).where(ScheduledReview.review_id == review_id))
    if review is None:
        raise NotFoundError(resource="ScheduledReview", resource_id=review_id)
    return review


def _check_participant(review: ScheduledReview, actor: str) -> str:
    if actor == review.guide_reg_num:
        return "guide"
    if actor == review.expert_reg_num:
        return "expert"
    raise ForbiddenError("Only the review's guide or expert can annotate it",
                         details={"review_id": review.review_id})


def _check_window(review: ScheduledReview, hours: int, now: datetime, what: str) -> None:
    if now < review.starts_at:
        raise ValidationError(f"The review has not started yet; {what} cannot be recorded",
                              details={"starts_at": review.starts_at.isoformat()})
    closes = review.starts_at + timedelta(hours=hours)
    if now > closes:
        raise TimeWindowExceededError(
            f"{what.capitalize()} can only be recorded within {hours} hours of the review start",
            details={"starts_at": review.starts_at.isoformat(), "closed_at": closes.isoformat()},
        )


def _marks_window(party: str) -> int:
    return current_app.config["GUIDE_MARKS_WINDOW_HOURS" if party == "guide" else "EXPERT_MARKS_WINDOW_HOURS"]

def record_attendance(review_id: int, actor: str, attendance: str) -> dict:
    value = (attendance or "").strip().lower() if isinstance(attendance, str) else ""
    if value not in ATTENDANCE_VALUES:
        raise ValidationError("attendance must be 'present' or 'absent'",
                              details={"attendance": "invalid"})

    with atomic("review.attendance"):
        review = _locked_review(review_id)
        _check_participant(review, actor)
        if review.attendance is not None:
            raise ConflictError("Attendance is already recorded",
                                details={"attendance": review.attendance})
        review.attendance = value

    logger.info("Attendance for review %s: %s (by %s)", review_id, value, actor,
                extra={"team_id": review.team_id, "reg_num": actor})
    return review.to_dict()


def record_end_time(review_id: int, actor: str, end_time, now: datetime | None = None) -> dict:
    """End time is HH:MM:SS and may be set once, within the window after start."""
    now = now or datetime.now()
    end = parse_time(end_time, "end_time", strict=True)
    if end is None:
        raise ValidationError("end_time is required", details={"end_time": "required"},
                              code="ERR_VALIDATION_REQUIRED")

    with atomic("review.end_time"):
        review = _locked_review(review_id)
        _check_participant(review, actor)
        if review.end_time is not None:
            raise ConflictError("End time is already recorded",
                                details={"end_time": review.end_time.isoformat()})
        _check_window(review, current_app.config["REVIEW_END_TIME_WINDOW_HOURS"], now, "end time")
        if end <= review.start_time:
            raise ValidationError("end_time must be after the start time",
                                  details={"start_time": review.start_time.isoformat()})
        review.end_time = end

    logger.info("End time for review %s set to %s by %s", review_id, end, actor,
                extra={"team_id": review.team_id, "reg_num": actor})
    return review.to_dict()


def _validate_scores(scores, criteria=MARK_CRITERIA) -> dict:
    if not isinstance(scores, dict):
        raise ValidationError("scores must be an object", details={"scores": "invalid"})
    clean, problems = {}, {}
    for criterion in criteria:
        value = scores.get(criterion)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            problems[criterion] = "required non-negative integer"
        else:
            clean[criterion] = value
    if problems:
        raise ValidationError("Every criterion needs a non-negative integer score", details=problems)
    return clean


def enter_marks(
    review_id: int,
    party: str,
    actor: str,
    scores,
    remarks: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Store one party's marks; each party may enter marks once."""
    if party not in REVIEW_PARTIES:
        raise ValidationError("party must be 'guide' or 'expert'", details={"party": "invalid"})
    now = now or datetime.now()
    clean = _validate_scores(scores)
    window = _marks_window(party)

    with atomic(f"review.marks.{party}"):
        review = _locked_review(review_id)
        if getattr(review, f"{party}_reg_num") != actor:
            raise ForbiddenError(f"Only the review's {party} can enter {party} marks",
                                 details={"review_id": review_id})
        _check_window(review, window, now, f"{party} marks")

        marks = db.session.execute(
            select(ReviewMarks).where(ReviewMarks.review_id == review_id)
        ).scalar_one_or_none()
        if marks is None:
            marks = ReviewMarks(review_id=review_id, team_id=review.team_id,
                                review_title=review.review_title)
            db.session.add(marks)
        elif getattr(marks, f"{party}_total") is not None:
            raise ConflictError(f"{party.capitalize()} marks are already entered",
                                details={"review_id": review_id})

        setattr(marks, f"{party}_reg_num", actor)
        setattr(marks, f"{party}_scores", clean)
        setattr(marks, f"{party}_total", sum(clean.values()))
        setattr(marks, f"{party}_remarks", remarks)
        setattr(marks, f"{party}_entered_at", utcnow())

    logger.info("%s marks for review %s entered by %s: %d", party, review_id, actor,
                marks.guide_total if party == "guide" else marks.expert_total,
                extra={"team_id": marks.team_id, "reg_num": actor})
    return marks.to_dict()


def get_marks(review_id: int) -> dict:
    marks = db.session.execute(
        select(ReviewMarks).where(ReviewMarks.review_id == review_id)
    ).scalar_one_or_none()
    if marks is None:
        raise NotFoundError(resource="ReviewMarks", resource_id=review_id)
    return marks.to_dict()


def enter_individual_marks(
    review_id: int,
    party: str,
    actor: str,
    student_reg: str,
    scores,
    remarks,
    now: datetime | None = None,
) -> dict:
    """Store one party's marks for one team member; once per party per member."""
    if party not in REVIEW_PARTIES:
        raise ValidationError("party must be 'guide' or 'expert'", details={"party": "invalid"})
    now = now or datetime.now()
    clean = _validate_scores(scores, INDIVIDUAL_CRITERIA)
    remarks = remarks.strip() if isinstance(remarks, str) else ""
    if not remarks:
        raise ValidationError("remarks are required", details={"remarks": "required"},
                              code="ERR_VALIDATION_REQUIRED")

    with atomic(f"review.individual_marks.{party}"):
        review = _locked_review(review_id)
        if getattr(review, f"{party}_reg_num") != actor:
            raise ForbiddenError(f"Only the review's {party} can enter {party} marks",
                                 details={"review_id": review_id})
        member = membership_of(student_reg)
        if member is None or member.team_id != review.team_id:
            raise ValidationError(f"{student_reg} is not a member of team {review.team_id}",
                                  details={"student_reg_num": "not_a_member"})
        _check_window(review, _marks_window(party), now, f"{party} marks")

        marks = db.session.execute(
            select(IndividualReviewMarks).where(
                IndividualReviewMarks.review_id == review_id,
                IndividualReviewMarks.student_reg_num == student_reg,
            )
        ).scalar_one_or_none()
        if marks is None:
            marks = IndividualReviewMarks(review_id=review_id, team_id=review.team_id,
                                          review_title=review.review_title,
                                          student_reg_num=student_reg)
            db.session.add(marks)
        elif getattr(marks, f"{party}_total") is not None:
            raise ConflictError(f"{party.capitalize()} marks for {student_reg} are already entered",
                                details={"review_id": review_id, "student_reg_num": student_reg})

        setattr(marks, f"{party}_reg_num", actor)
        setattr(marks, f"{party}_scores", clean)
        setattr(marks, f"{party}_total", sum(clean.values()))
        setattr(marks, f"{party}_remarks", remarks)
        setattr(marks, f"{party}_entered_at", utcnow())

    logger.info("%s marks for %s in review %s entered by %s", party, student_reg, review_id, actor,
                extra={"team_id": marks.team_id, "reg_num": actor})
    return marks.to_dict()


def get_individual_marks(review_id: int) -> list[dict]:
    """Per-member marks of a review, ordered by registration id."""
    if db.session.get(ScheduledReview, review_id) is None:
        raise NotFoundError(resource="ScheduledReview", resource_id=review_id)
    rows = db.session.execute(
        select(IndividualReviewMarks)
        .where(IndividualReviewMarks.review_id == review_id)
        .order_by(IndividualReviewMarks.student_reg_num)
    ).scalars().all()
    return [r.to_dict() for r in rows]
