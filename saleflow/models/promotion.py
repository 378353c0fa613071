"""Promotion model.

Record of intent to pay for featured placement. Bridges a Draft and the
Sale it becomes:

    pending (draft_key set, sale_id NULL)
        -> pending + stripe_checkout_session_id   (session created)
        -> active  (sale_id set)                  (payment finalized)
    pending -> canceled                           (session failed / expired)

active and canceled are terminal; a promotion never regresses from
active. draft_key is a plain string rather than a foreign key because the
draft row is deleted on finalization while the promotion lives on.
"""

import uuid

from saleflow.extensions import db


class Promotion(db.Model):
    __tablename__ = "promotions"

    STATUSES = ["pending", "active", "canceled"]
    TIERS = ["featured_week"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    draft_key = db.Column(db.String(64), nullable=True, index=True)
    sale_id = db.Column(
        db.String(36), db.ForeignKey("sales.id"), unique=True, nullable=True
    )
    status = db.Column(
        db.String(20), nullable=False, default="pending"
    )  # pending | active | canceled
    tier = db.Column(db.String(50), nullable=False, default="featured_week")
    amount_cents = db.Column(db.Integer, nullable=True)
    stripe_checkout_session_id = db.Column(
        db.String(255), unique=True, nullable=True
    )
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    activated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    sale = db.relationship("Sale")

    @property
    def is_terminal(self):
        return self.status in ("active", "canceled")

    def __repr__(self):
        return f"<Promotion {self.id} ({self.status})>"
