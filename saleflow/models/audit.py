"""Audit event model.

Logs significant state changes (sale published, promotion requested,
activated or canceled, webhook replays) for support and debugging.
"""

import uuid

from saleflow.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    action = db.Column(db.String(255), nullable=False)  # e.g. "sale.published"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, "metadata" is reserved on declarative models
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    actor = db.relationship("User", back_populates="audit_events")

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
