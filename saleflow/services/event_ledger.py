"""Event ledger — exactly-once claims on Stripe event ids.

claim_event() inserts the ledger row *before* any work happens. The
unique constraint on stripe_webhook_events.event_id decides the race:
exactly one concurrent claimant commits, every other one hits an
IntegrityError and is told it lost. No in-process locking is involved,
so any number of stateless workers can share the ledger.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from saleflow.extensions import db
from saleflow.models.stripe_event import StripeWebhookEvent

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


def claim_event(event_id, event_type):
    """Try to claim an event id.

    Returns True if this caller is the first claimant and must process
    the event, False if the id was already claimed (processed, errored,
    or in flight on another worker).
    """
    db.session.add(StripeWebhookEvent(event_id=event_id, event_type=event_type))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"Event {event_id} already claimed, skipping")
        return False
    return True


def get_event_row(event_id):
    return StripeWebhookEvent.query.filter_by(event_id=event_id).first()


def mark_processed(event_id):
    """Stamp processed_at and clear any previous error."""
    row = get_event_row(event_id)
    if row is None:
        logger.warning(f"mark_processed: no ledger row for event {event_id}")
        return None
    row.processed_at = datetime.now(timezone.utc)
    row.error_message = None
    db.session.commit()
    return row


def mark_errored(event_id, message):
    """Record a failure. processed_at stays NULL so the row can be replayed."""
    row = get_event_row(event_id)
    if row is None:
        logger.warning(f"mark_errored: no ledger row for event {event_id}")
        return None
    row.error_message = (message or "unknown error")[:MAX_ERROR_LENGTH]
    row.processed_at = None
    db.session.commit()
    return row


def describe_error(exc):
    """Short, payload-free description of an exception for the ledger."""
    return f"{exc.__class__.__name__}: {exc}"[:MAX_ERROR_LENGTH]
