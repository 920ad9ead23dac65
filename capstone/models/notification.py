"""
Capstone Workflow Service
Outbound notification audit model.

Models:
    - EmailLog: one row per email the notification sink attempted
"""

from datetime import datetime, timezone

from capstone.models import db


EMAIL_STATUSES = {"queued", "sent", "failed"}


class EmailLog(db.Model):
    """
    Outbound email audit log.

    Written after the workflow transaction has committed, so a failed
    delivery never rolls back the state change that triggered it.
    """

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True,
                              comment="Email template used")
    category = db.Column(db.String(30), default="workflow")
    status = db.Column(db.String(20), default="queued",
                       comment="queued, sent, failed")
    error_message = db.Column(db.Text, nullable=True)

    # Linkage to the workflow entity that triggered the mail
    entity_type = db.Column(db.String(40), nullable=True)
    entity_id = db.Column(db.String(40), nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "template_name": self.template_name,
            "category": self.category,
            "status": self.status,
            "error_message": self.error_message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<EmailLog {self.id}: {self.subject[:40]} → {self.recipient_email}>"
