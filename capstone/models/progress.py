"""
Capstone Workflow Service
Weekly progress models.

Models:
    - WeeklyProgress: one member's progress text for one week
    - WeeklyLogVerification: per (team, week) guide verification, created once
      every member has submitted
    - WeekDeadline: per (team, week) deadline set by an admin
"""

from datetime import datetime, timezone

from capstone.models import db


VERIFICATION_STATUSES = ("pending", "accept", "reject")


class WeeklyProgress(db.Model):
    __tablename__ = "weekly_progress"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False)
    week_number = db.Column(db.Integer, nullable=False)
    progress = db.Column(db.Text, nullable=False)
    submitted_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("team_id", "reg_num", "week_number", name="uq_weekly_progress_member_week"),
    )

    def to_dict(self):
        return {
            "team_id": self.team_id,
            "reg_num": self.reg_num,
            "week_number": self.week_number,
            "progress": self.progress,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }


class WeeklyLogVerification(db.Model):
    """
    Guide verification of a team's week.

    Rejection clears every member's WeeklyProgress for the week and leaves
    this row in status "reject"; it is re-opened to "pending" when all
    members have resubmitted.
    """

    __tablename__ = "weekly_log_verifications"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    week_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | accept | reject")
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_by = db.Column(db.String(50), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    remarks = db.Column(db.Text, nullable=True)
    reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("team_id", "week_number", name="uq_log_verification_team_week"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "team_id": self.team_id,
            "week_number": self.week_number,
            "status": self.status,
            "is_verified": self.is_verified,
            "verified_by": self.verified_by,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "remarks": self.remarks,
            "reason": self.reason,
        }


class WeekDeadline(db.Model):
    __tablename__ = "week_deadlines"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    week_number = db.Column(db.Integer, nullable=False)
    deadline = db.Column(db.Date, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("team_id", "week_number", name="uq_week_deadline_team_week"),
    )

    def to_dict(self):
        return {
            "team_id": self.team_id,
            "week_number": self.week_number,
            "deadline": self.deadline.isoformat(),
        }
