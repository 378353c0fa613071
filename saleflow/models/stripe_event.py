"""Stripe webhook event ledger (idempotency table).

One row per distinct Stripe event id, inserted *before* any work is done.
The unique constraint on event_id is the only thing that decides which
worker processes an event: the insert that wins does the work, every
other delivery of the same id is acknowledged without side effects.

    processed_at  set once the handler ran to completion
    error_message set when finalization failed; the row then waits for
                  an operator replay (see finalize_service.replay_event)
"""

import uuid

from saleflow.extensions import db


class StripeWebhookEvent(db.Model):
    __tablename__ = "stripe_webhook_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "checkout.session.completed"
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    error_message = db.Column(db.String(500), nullable=True)
    replay_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    @property
    def is_errored(self):
        return self.processed_at is None and self.error_message is not None

    def __repr__(self):
        return f"<StripeWebhookEvent {self.event_id} ({self.event_type})>"
