"""
Capstone Workflow Service
Review scheduling models.

Models:
    - ReviewRequest: two-phase slot proposal awaiting guide AND expert accept
    - ScheduledReview: materialized review (immutable schedule, later annotated)
    - ReviewMarks: guide / expert team marks for one scheduled review
    - IndividualReviewMarks: guide / expert marks for one member of the team
"""

from datetime import datetime, timezone

from capstone.models import db


# ── Constants ────────────────────────────────────────────────────────────────

REVIEW_TITLES = ("1st_review", "2nd_review", "optional_review")
REVIEW_PARTIES = frozenset({"guide", "expert"})
ATTENDANCE_VALUES = frozenset({"present", "absent"})

# Coordinator states derived from the two independent status fields
STATE_BOTH_PENDING = "both_pending"
STATE_GUIDE_ACCEPTED = "guide_accepted"
STATE_EXPERT_ACCEPTED = "expert_accepted"
STATE_MATERIALIZED = "materialized"
STATE_DEAD = "dead"

MARK_CRITERIA = (
    "literature_survey",
    "aim",
    "scope",
    "need_for_study",
    "proposed_methodology",
    "work_plan",
)

INDIVIDUAL_CRITERIA = (
    "oral_presentation",
    "viva_voce_and_ppt",
    "contributions",
)


class ReviewRequest(db.Model):
    """
    Review slot proposal.

    guide_status and expert_status move independently from "interested" to
    "accept" or "reject".  Both "accept" → materialized into ScheduledReview
    and this row is deleted.  Any "reject" → dead; the row stays as history.
    """

    __tablename__ = "review_requests"

    request_id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_name = db.Column(db.String(300), nullable=True)
    team_lead = db.Column(db.String(50), nullable=False)
    review_title = db.Column(db.String(30), nullable=False)
    is_optional = db.Column(db.Boolean, nullable=False, default=False)

    review_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)

    guide_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)
    expert_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)

    guide_status = db.Column(db.String(20), nullable=False, default="interested")
    expert_status = db.Column(db.String(20), nullable=False, default="interested")
    guide_reason = db.Column(db.Text, nullable=True)
    expert_reason = db.Column(db.Text, nullable=True)
    guide_meeting_link = db.Column(db.String(500), nullable=True)
    expert_meeting_link = db.Column(db.String(500), nullable=True)

    file_ref = db.Column(db.String(500), nullable=False, comment="Opaque stored-file path / URI")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Materialized rows are deleted; ids must not be handed out again.
    __table_args__ = {"sqlite_autoincrement": True}

    @property
    def state(self) -> str:
        if "reject" in (self.guide_status, self.expert_status):
            return STATE_DEAD
        if self.guide_status == "accept" and self.expert_status == "accept":
            return STATE_MATERIALIZED
        if self.guide_status == "accept":
            return STATE_GUIDE_ACCEPTED
        if self.expert_status == "accept":
            return STATE_EXPERT_ACCEPTED
        return STATE_BOTH_PENDING

    @property
    def meeting_link(self) -> str | None:
        """Expert's link wins when both parties recorded one."""
        return self.expert_meeting_link or self.guide_meeting_link

    def to_dict(self):
        return {
            "request_id": self.request_id,
            "team_id": self.team_id,
            "project_name": self.project_name,
            "team_lead": self.team_lead,
            "review_title": self.review_title,
            "is_optional": self.is_optional,
            "review_date": self.review_date.isoformat() if self.review_date else None,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "guide_reg_num": self.guide_reg_num,
            "expert_reg_num": self.expert_reg_num,
            "guide_status": self.guide_status,
            "expert_status": self.expert_status,
            "guide_reason": self.guide_reason,
            "expert_reason": self.expert_reason,
            "file_ref": self.file_ref,
            "state": self.state,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ReviewRequest {self.request_id} {self.team_id} {self.review_title} {self.state}>"


class ScheduledReview(db.Model):
    """
    Materialized review.

    Schedule fields are written once at materialization.  attendance and
    end_time are the only columns annotated afterwards.
    """

    __tablename__ = "scheduled_reviews"

    review_id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    source_request_id = db.Column(db.Integer, nullable=True, unique=True,
                                  comment="request_id of the materialized ReviewRequest")
    project_name = db.Column(db.String(300), nullable=True)
    team_lead = db.Column(db.String(50), nullable=False)
    review_title = db.Column(db.String(30), nullable=False)
    review_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    guide_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)
    expert_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)
    meeting_link = db.Column(db.String(500), nullable=True)
    file_ref = db.Column(db.String(500), nullable=True)

    attendance = db.Column(db.String(20), nullable=True, comment="present | absent")
    end_time = db.Column(db.Time, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("team_id", "review_date", "start_time", name="uq_scheduled_reviews_team_slot"),
    )

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.review_date, self.start_time)

    def schedule_dict(self):
        """Schedule fields only; identical for any confirmation order."""
        return {
            "team_id": self.team_id,
            "project_name": self.project_name,
            "team_lead": self.team_lead,
            "review_title": self.review_title,
            "review_date": self.review_date.isoformat(),
            "start_time": self.start_time.isoformat(),
            "guide_reg_num": self.guide_reg_num,
            "expert_reg_num": self.expert_reg_num,
            "meeting_link": self.meeting_link,
            "file_ref": self.file_ref,
        }

    def to_dict(self):
        d = {"review_id": self.review_id, "source_request_id": self.source_request_id}
        d.update(self.schedule_dict())
        d["attendance"] = self.attendance
        d["end_time"] = self.end_time.isoformat() if self.end_time else None
        return d

    def __repr__(self):
        return f"<ScheduledReview {self.review_id} {self.team_id} {self.review_title}>"


class ReviewMarks(db.Model):
    """Team marks for one scheduled review; guide and expert halves entered separately."""

    __tablename__ = "review_marks"

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(
        db.Integer, db.ForeignKey("scheduled_reviews.review_id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    team_id = db.Column(db.String(20), nullable=False, index=True)
    review_title = db.Column(db.String(30), nullable=False)

    guide_reg_num = db.Column(db.String(50), nullable=True)
    guide_scores = db.Column(db.JSON, nullable=True)
    guide_total = db.Column(db.Integer, nullable=True)
    guide_remarks = db.Column(db.Text, nullable=True)
    guide_entered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    expert_reg_num = db.Column(db.String(50), nullable=True)
    expert_scores = db.Column(db.JSON, nullable=True)
    expert_total = db.Column(db.Integer, nullable=True)
    expert_remarks = db.Column(db.Text, nullable=True)
    expert_entered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def total_marks(self) -> int:
        return (self.guide_total or 0) + (self.expert_total or 0)

    def to_dict(self):
        return {
            "id": self.id,
            "review_id": self.review_id,
            "team_id": self.team_id,
            "review_title": self.review_title,
            "guide": {
                "reg_num": self.guide_reg_num,
                "scores": self.guide_scores,
                "total": self.guide_total,
                "remarks": self.guide_remarks,
            },
            "expert": {
                "reg_num": self.expert_reg_num,
                "scores": self.expert_scores,
                "total": self.expert_total,
                "remarks": self.expert_remarks,
            },
            "total_marks": self.total_marks,
        }


class IndividualReviewMarks(db.Model):
    """Per-member marks for one scheduled review; guide and expert halves entered separately."""

    __tablename__ = "review_marks_individual"

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(
        db.Integer, db.ForeignKey("scheduled_reviews.review_id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    team_id = db.Column(db.String(20), nullable=False, index=True)
    review_title = db.Column(db.String(30), nullable=False)
    student_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False)

    guide_reg_num = db.Column(db.String(50), nullable=True)
    guide_scores = db.Column(db.JSON, nullable=True)
    guide_total = db.Column(db.Integer, nullable=True)
    guide_remarks = db.Column(db.Text, nullable=True)
    guide_entered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    expert_reg_num = db.Column(db.String(50), nullable=True)
    expert_scores = db.Column(db.JSON, nullable=True)
    expert_total = db.Column(db.Integer, nullable=True)
    expert_remarks = db.Column(db.Text, nullable=True)
    expert_entered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("review_id", "student_reg_num", name="uq_individual_marks_review_student"),
    )

    @property
    def total_marks(self) -> int:
        return (self.guide_total or 0) + (self.expert_total or 0)

    def to_dict(self):
        return {
            "id": self.id,
            "review_id": self.review_id,
            "team_id": self.team_id,
            "review_title": self.review_title,
            "student_reg_num": self.student_reg_num,
            "guide": {
                "reg_num": self.guide_reg_num,
                "scores": self.guide_scores,
                "total": self.guide_total,
                "remarks": self.guide_remarks,
            },
            "expert": {
                "reg_num": self.expert_reg_num,
                "scores": self.expert_scores,
                "total": self.expert_total,
                "remarks": self.expert_remarks,
            },
            "total_marks": self.total_marks,
        }
