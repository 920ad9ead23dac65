"""
Capstone Workflow Service
Team domain models.

Models:
    - Team: confirmed team with its assigned guide / expert and project record
    - TeamMember: one row per member, exactly one flagged leader
    - TeamJoinRequest: directed invitation edge between two students
"""

from datetime import datetime, timezone

from capstone.models import db


# ── Constants ────────────────────────────────────────────────────────────────

REQUEST_STATUSES = ("interested", "accept", "reject")
TERMINAL_STATUSES = frozenset({"accept", "reject"})
DECISIONS = frozenset({"accept", "reject"})

TEAM_ID_PREFIX = "TEAM"
HARDWARE_SOFTWARE = frozenset({"hardware", "software"})


def format_team_id(number: int) -> str:
    """Sequential team identifier: 1 → TEAM-0001."""
    return f"{TEAM_ID_PREFIX}-{number:04d}"


class Team(db.Model):
    """
    A confirmed team.

    Membership is fixed by ConfirmTeam and never changes afterwards.
    guide_reg_num / expert_reg_num are team-level assignments written only
    by the mentorship engine (or the admin direct-assignment path).
    """

    __tablename__ = "teams"

    team_id = db.Column(db.String(20), primary_key=True)
    semester = db.Column(db.Integer, nullable=False)
    leader_reg_num = db.Column(
        db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True,
    )

    guide_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=True, index=True)
    expert_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=True, index=True)

    # Project record (registered by the leader after confirmation)
    project_name = db.Column(db.String(300), nullable=True)
    project_type = db.Column(db.String(20), nullable=True, comment="internal | external")
    company_name = db.Column(db.String(200), nullable=True)
    cluster = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)
    outcome = db.Column(db.Text, nullable=True)
    hard_soft = db.Column(db.String(20), nullable=True, comment="hardware | software")
    project_registered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    members = db.relationship(
        "TeamMember", backref="team", lazy="select",
        cascade="all, delete-orphan", order_by="TeamMember.id",
    )

    @property
    def has_project(self) -> bool:
        return bool(self.project_name)

    @property
    def leader(self):
        return next((m for m in self.members if m.is_leader), None)

    def member_reg_nums(self) -> list[str]:
        return [m.reg_num for m in self.members]

    def to_dict(self, include_members: bool = True):
        d = {
            "team_id": self.team_id,
            "semester": self.semester,
            "leader_reg_num": self.leader_reg_num,
            "guide_reg_num": self.guide_reg_num,
            "expert_reg_num": self.expert_reg_num,
            "project": {
                "name": self.project_name,
                "type": self.project_type,
                "company_name": self.company_name,
                "cluster": self.cluster,
                "description": self.description,
                "outcome": self.outcome,
                "hard_soft": self.hard_soft,
                "registered_at": (
                    self.project_registered_at.isoformat() if self.project_registered_at else None
                ),
            } if self.has_project else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_members:
            d["members"] = [m.to_dict() for m in self.members]
            d["size"] = len(self.members)
        return d

    def __repr__(self):
        return f"<Team {self.team_id} sem={self.semester}>"


class TeamMember(db.Model):
    """
    Team membership row.

    reg_num is globally unique: a student belongs to at most one confirmed
    team.  The partial unique index allows a single leader per team.
    """

    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.String(20), db.ForeignKey("teams.team_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, unique=True)
    is_leader = db.Column(db.Boolean, nullable=False, default=False)
    joined_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index(
            "uq_team_members_single_leader",
            "team_id",
            unique=True,
            postgresql_where=db.text("is_leader IS TRUE"),
            sqlite_where=db.text("is_leader = 1"),
        ),
    )

    def to_dict(self):
        return {
            "team_id": self.team_id,
            "reg_num": self.reg_num,
            "is_leader": self.is_leader,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


class TeamJoinRequest(db.Model):
    """
    Directed invitation edge from_reg_num → to_reg_num.

    Lifecycle: interested → accept | reject (both terminal).
    Accepted edges are stamped with team_id and team_conformed=True when the
    inviter confirms the team; every other edge touching the members is
    purged at that point.
    """

    __tablename__ = "team_join_requests"

    id = db.Column(db.Integer, primary_key=True)
    from_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)
    to_reg_num = db.Column(db.String(50), db.ForeignKey("users.reg_num"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="interested",
                       comment="interested | accept | reject")
    reason = db.Column(db.Text, nullable=True)

    team_id = db.Column(db.String(20), db.ForeignKey("teams.team_id", ondelete="SET NULL"), nullable=True)
    team_conformed = db.Column(db.Boolean, nullable=False, default=False)
    notified = db.Column(db.Boolean, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index("ix_join_requests_pair", "from_reg_num", "to_reg_num"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "from_reg_num": self.from_reg_num,
            "to_reg_num": self.to_reg_num,
            "status": self.status,
            "reason": self.reason,
            "team_id": self.team_id,
            "team_conformed": self.team_conformed,
            "notified": self.notified,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self):
        return f"<TeamJoinRequest {self.from_reg_num}→{self.to_reg_num} {self.status}>"
