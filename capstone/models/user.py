"""
Capstone Workflow Service
Identity domain model.

Models:
    - User: student / staff / admin directory entry keyed by registration id
"""

from datetime import datetime, timezone

from capstone.models import db


# ── Constants ────────────────────────────────────────────────────────────────

USER_ROLES = frozenset({"student", "staff", "admin"})
PROJECT_TYPES = frozenset({"internal", "external"})


class User(db.Model):
    """
    Directory entry for a student, staff member or administrator.

    Business rules:
    - reg_num is the identity key used by every workflow table.
    - available is flipped to False by the mentorship engine when a staff
      member fills their last capacity slot; only set_availability() in the
      user service turns it back on.
    - company_name is meaningful only when project_type == "external".
    """

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    reg_num = db.Column(db.String(50), nullable=False, unique=True, index=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="student",
                     comment="student | staff | admin")
    department = db.Column(db.String(100), nullable=True)
    semester = db.Column(db.Integer, nullable=True)

    available = db.Column(db.Boolean, nullable=False, default=True)
    unavailable_reason = db.Column(db.String(255), nullable=True)

    project_type = db.Column(db.String(20), nullable=True, comment="internal | external")
    company_name = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def is_staff(self) -> bool:
        return self.role == "staff"

    def mark_unavailable(self, reason: str) -> None:
        """Capacity-driven transition: the staff member stops receiving requests."""
        self.available = False
        self.unavailable_reason = reason

    def mark_available(self) -> None:
        self.available = True
        self.unavailable_reason = None

    def to_dict(self):
        return {
            "id": self.id,
            "reg_num": self.reg_num,
            "name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
            "role": self.role,
            "department": self.department,
            "semester": self.semester,
            "available": self.available,
            "unavailable_reason": self.unavailable_reason,
            "project_type": self.project_type,
            "company_name": self.company_name,
        }

    def __repr__(self):
        return f"<User {self.reg_num} ({self.role})>"
