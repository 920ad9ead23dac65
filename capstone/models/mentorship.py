"""
Capstone Workflow Service
Mentorship request models.

Models:
    - GuideRequest: team → candidate guide
    - ExpertRequest: team → candidate subject expert

Both tables share one shape (MentorRequestMixin) so the request lifecycle
engine can drive them through a single code path.  team_semester is copied
from the team at creation time and is the capacity-accounting key.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from capstone.models import db


class MentorRequestMixin:
    """Columns shared by guide and expert request rows."""

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def team_id(cls):
        return db.Column(
            db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"),
            nullable=False, index=True,
        )

    @declared_attr
    def staff_reg_num(cls):
        return db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)

    team_semester = db.Column(db.Integer, nullable=False, comment="Semester track: 5 | 7")
    project_name = db.Column(db.String(300), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="interested",
                       comment="interested | accept | reject")
    reason = db.Column(db.Text, nullable=True)
    notified = db.Column(db.Boolean, nullable=True,
                         comment="None until dispatch is attempted; False when delivery failed")
    assigned_by = db.Column(db.String(50), nullable=True,
                            comment="Admin reg_num for direct assignments")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "team_id": self.team_id,
            "staff_reg_num": self.staff_reg_num,
            "team_semester": self.team_semester,
            "project_name": self.project_name,
            "status": self.status,
            "reason": self.reason,
            "notified": self.notified,
            "assigned_by": self.assigned_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }


class GuideRequest(MentorRequestMixin, db.Model):
    __tablename__ = "guide_requests"
    __table_args__ = (
        db.Index("ix_guide_requests_staff_status", "staff_reg_num", "status", "team_semester"),
    )

    def __repr__(self):
        return f"<GuideRequest {self.team_id}→{self.staff_reg_num} {self.status}>"


class ExpertRequest(MentorRequestMixin, db.Model):
    __tablename__ = "expert_requests"
    __table_args__ = (
        db.Index("ix_expert_requests_staff_status", "staff_reg_num", "status", "team_semester"),
    )

    def __repr__(self):
        return f"<ExpertRequest {self.team_id}→{self.staff_reg_num} {self.status}>"
