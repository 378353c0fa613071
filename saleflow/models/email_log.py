"""Email send log (dedupe table).

One row per logical email, keyed by dedupe_key. A row with
delivery_status="sent" blocks any further send for the same
(profile_id, email_type, dedupe_key). error_message only ever holds a
fixed, non-sensitive string; raw transport errors stay in the logs.
"""

import uuid

from saleflow.extensions import db


class EmailLog(db.Model):
    __tablename__ = "email_log"

    DELIVERY_STATUSES = ["sent", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    profile_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True, index=True
    )
    email_type = db.Column(db.String(100), nullable=False)
    to_email = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(500), nullable=False)
    dedupe_key = db.Column(db.String(255), unique=True, nullable=True)
    delivery_status = db.Column(db.String(20), nullable=False, default="sent")
    error_message = db.Column(db.String(500), nullable=True)
    meta = db.Column(db.JSON, default=dict)
    sent_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<EmailLog {self.email_type} {self.dedupe_key} ({self.delivery_status})>"
