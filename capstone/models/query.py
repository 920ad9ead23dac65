"""
Capstone Workflow Service
Student → guide question thread.

Models:
    - StudentQuery: one question raised by a team member, answered once by
      the team's guide
"""

from datetime import datetime, timezone

from capstone.models import db


class StudentQuery(db.Model):
    __tablename__ = "student_queries"

    query_id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_name = db.Column(db.String(300), nullable=True)
    team_member = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False)
    guide_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)
    question = db.Column(db.Text, nullable=False)
    reply = db.Column(db.Text, nullable=True)
    replied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def answered(self) -> bool:
        return self.reply is not None

    def to_dict(self):
        return {
            "query_id": self.query_id,
            "team_id": self.team_id,
            "project_name": self.project_name,
            "team_member": self.team_member,
            "guide_reg_num": self.guide_reg_num,
            "question": self.question,
            "reply": self.reply,
            "answered": self.answered,
            "replied_at": self.replied_at.isoformat() if self.replied_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StudentQuery {self.query_id} {self.team_id} answered={self.answered}>"
