"""Finalize service — Stripe webhook handling for promoted drafts.

Responsible for:
- Claiming each Stripe event exactly once (event ledger)
- Dispatching to event-specific handlers
- Turning a paid draft into a featured sale (finalize_draft_promotion)
- Canceling promotions whose checkout expired
- Operator replay of events whose finalization failed

There is no transaction spanning draft, promotion, sale, ledger and
email log. finalize_draft_promotion() is a fixed sequence of steps, and
each step either checks its own idempotency guard or is safe to redo:

    1. claim event id            ledger unique constraint
    2. promotion already has a sale?  -> done, nothing to do
    3. draft still active?            -> no: already consumed, nothing to do
    4. insert sale + items        one commit; failure leaves everything as-is
    5. activate promotion         conditional UPDATE ... WHERE sale_id IS NULL
    6. delete draft               irreversible; without a promotion row the
                                  worker whose delete removes it keeps its sale
    7. confirmation email         best effort, deduped by payment id

Finalization failures are recorded on the ledger row and acknowledged
with a 200 so Stripe does not retry a possibly persistent bug; the row
is replayed by an operator instead (replay_event).
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from saleflow.errors import FinalizationError, ValidationError
from saleflow.extensions import db
from saleflow.models.promotion import Promotion
from saleflow.models.sale import Sale
from saleflow.models.user import User
from saleflow.services.audit_service import log_audit
from saleflow.services.draft_service import delete_draft, load_active_draft
from saleflow.services.email_log_service import (
    SALE_CREATED_PROMOTION,
    SEND_FAILED_MESSAGE,
    can_send_email,
    record_email_send,
    sale_created_promotion_dedupe_key,
)
from saleflow.services.email_service import (
    build_sale_created_subject,
    redact_email,
    send_sale_created_email,
)
from saleflow.services.event_ledger import (
    claim_event,
    describe_error,
    get_event_row,
    mark_errored,
    mark_processed,
)
from saleflow.services.listing_service import materialize_sale
from saleflow.services.payment_metadata import DraftPromotionMetadata
from saleflow.services.stripe_service import get_payments_client

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Entry points
# ──────────────────────────────────────────────

def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    Returns (success: bool, message: str). success=False means the
    ledger row was marked errored; the HTTP layer still answers 200.
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Outer idempotency gate ---
    if not claim_event(event_id, event_type):
        return True, "already_processed"

    return _process_claimed_event(event)


def replay_event(event_id):
    """Re-run an event whose finalization errored.

    Only rows with an error and no processed_at are eligible; the event
    body is re-fetched from Stripe. Returns (success, message).
    Raises ValueError if the event id was never received.
    """
    row = get_event_row(event_id)
    if row is None:
        raise ValueError(f"No ledger row for event {event_id}")
    if row.processed_at is not None:
        return True, "already_processed"
    if row.error_message is None:
        return False, "not_errored"

    event = get_payments_client().retrieve_event(event_id)

    row.replay_count = (row.replay_count or 0) + 1
    log_audit("webhook.replayed", {
        "event_id": event_id,
        "event_type": row.event_type,
        "replay_count": row.replay_count,
    })
    db.session.commit()

    logger.info(f"Replaying event {event_id} (attempt {row.replay_count})")
    return _process_claimed_event(event)


def _process_claimed_event(event):
    event_id = event["id"]
    event_type = event["type"]

    handler = _HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled Stripe event type {event_type} ({event_id})")
        mark_processed(event_id)
        return True, "ignored"

    try:
        message = handler(event)
    except Exception as e:
        db.session.rollback()
        code = e.code if isinstance(e, FinalizationError) else "FINALIZATION_ERROR"
        logger.error(
            f"Error handling {event_type} ({event_id}): {describe_error(e)}",
            exc_info=not isinstance(e, FinalizationError),
        )
        mark_errored(event_id, describe_error(e))
        return False, code

    mark_processed(event_id)
    return True, message


# ──────────────────────────────────────────────
# Event handlers
# ──────────────────────────────────────────────

def _payment_id_from(event_type, obj):
    """PaymentIntent id for the payment behind this event, or None."""
    if event_type.startswith("payment_intent."):
        return obj.get("id")
    payment_intent = obj.get("payment_intent")
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = payment_intent.get("id")  # expanded object
    return payment_intent


def _handle_payment_succeeded(event):
    """checkout.session.completed / async_payment_succeeded / payment_intent.succeeded."""
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "checkout.session.completed" and obj.get("payment_status") == "unpaid":
        # Delayed payment method; checkout.session.async_payment_succeeded follows.
        logger.info(f"Checkout {obj.get('id')} completed unpaid, awaiting async payment")
        return "awaiting_payment"

    metadata = DraftPromotionMetadata.from_stripe(obj.get("metadata"))
    payment_id = _payment_id_from(event_type, obj)

    return finalize_draft_promotion(metadata, payment_id, event_id=event["id"])


def _handle_checkout_expired(event):
    """checkout.session.expired / async_payment_failed: cancel a pending promotion."""
    obj = event["data"]["object"]
    metadata = obj.get("metadata") or {}

    promotion_id = metadata.get("promotion_id")
    if not promotion_id and obj.get("id"):
        promotion = Promotion.query.filter_by(
            stripe_checkout_session_id=obj["id"]
        ).first()
        promotion_id = promotion.id if promotion else None

    if not promotion_id:
        logger.warning(f"{event['type']} without a promotion ({event['id']})")
        return "no_promotion"

    updated = (
        Promotion.query
        .filter(
            Promotion.id == promotion_id,
            Promotion.status == "pending",
            Promotion.sale_id.is_(None),
        )
        .update(
            {"status": "canceled", "canceled_at": datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    if updated:
        log_audit("promotion.canceled", {
            "promotion_id": promotion_id,
            "reason": event["type"],
            "event_id": event["id"],
        })
    db.session.commit()

    if updated:
        logger.info(f"Promotion {promotion_id} canceled ({event['type']})")
        return "promotion_canceled"
    return "promotion_unchanged"


def _handle_payment_failed(event):
    """payment_intent.payment_failed: the buyer can still retry in the session."""
    obj = event["data"]["object"]
    promotion_id = (obj.get("metadata") or {}).get("promotion_id")
    logger.info(f"Payment attempt failed for promotion {promotion_id} ({event['id']})")
    return "payment_failed_logged"


_HANDLERS = {
    "checkout.session.completed": _handle_payment_succeeded,
    "checkout.session.async_payment_succeeded": _handle_payment_succeeded,
    "payment_intent.succeeded": _handle_payment_succeeded,
    "checkout.session.expired": _handle_checkout_expired,
    "checkout.session.async_payment_failed": _handle_checkout_expired,
    "payment_intent.payment_failed": _handle_payment_failed,
}


# ──────────────────────────────────────────────
# Finalization
# ──────────────────────────────────────────────

def finalize_draft_promotion(metadata, payment_id, event_id=None):
    """Materialize the sale for a paid draft. Returns a status string.

    Raises FinalizationError when the sale can't be created; draft and
    promotion are left exactly as they were.
    """
    log_ctx = (
        f"event={event_id} draft_key={metadata.draft_key} "
        f"promotion={metadata.promotion_id}"
    )

    # --- Business idempotency gate ---
    promotion = None
    if metadata.promotion_id:
        promotion = db.session.get(Promotion, metadata.promotion_id)
        if promotion is None:
            raise FinalizationError(
                "Promotion not found", code="PROMOTION_NOT_FOUND"
            )
        if promotion.sale_id is not None or promotion.status == "active":
            logger.info(f"Promotion already finalized, skipping ({log_ctx})")
            return "already_finalized"
        if promotion.is_terminal:
            raise FinalizationError(
                "Payment received for a canceled promotion",
                code="PROMOTION_CANCELED",
            )
        if promotion.draft_key and promotion.draft_key != metadata.draft_key:
            raise FinalizationError(
                "Promotion does not belong to this draft",
                code="PROMOTION_MISMATCH",
            )

    # --- Draft lookup ---
    draft = load_active_draft(metadata.draft_key)
    if draft is None:
        logger.info(f"Draft not found, already consumed ({log_ctx})")
        return "draft_not_found"

    owner_id = draft.user_id
    draft_key = draft.draft_key
    if promotion is not None and promotion.owner_id != owner_id:
        raise FinalizationError(
            "Promotion owner does not match draft owner",
            code="PROMOTION_MISMATCH",
        )

    # --- Materialize ---
    try:
        sale = materialize_sale(owner_id, draft.payload, is_featured=metadata.is_featured)
    except ValidationError as e:
        raise FinalizationError(
            f"Draft payload not publishable: {e.code}", code="INVALID_DRAFT"
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"Sale insert failed ({log_ctx})")
        raise FinalizationError("Failed to create sale", code="SALE_CREATE_FAILED") from e
    sale_id = sale.id

    # --- Activate ---
    if promotion is not None:
        if not _activate_promotion(promotion.id, sale_id, payment_id):
            # Another worker activated it between our gate and now.
            logger.warning(f"Lost promotion activation race, discarding sale {sale_id} ({log_ctx})")
            _discard_sale(sale_id)
            return "already_finalized"
        promotion_id = promotion.id
    else:
        promotion_id = _create_active_promotion(
            owner_id, metadata.draft_key, sale_id, metadata.tier, payment_id
        )

    # --- Consume ---
    try:
        consumed = delete_draft(draft_key)
    except SQLAlchemyError:
        db.session.rollback()
        consumed = None
        logger.error(f"Draft delete failed after sale {sale_id} ({log_ctx})")

    if consumed is False and promotion is None:
        # No pending promotion to race on; whoever deleted the draft won.
        logger.warning(f"Draft consumed by another worker, discarding sale {sale_id} ({log_ctx})")
        _discard_sale(sale_id)
        return "already_finalized"

    logger.info(f"Sale {sale_id} created with promotion {promotion_id} ({log_ctx})")

    # --- Notify ---
    try:
        _notify_owner(owner_id, sale_id, payment_id, is_featured=True)
    except Exception:
        # The sale is committed; a notify failure must not error the event.
        db.session.rollback()
        logger.exception(f"Confirmation email step failed for sale {sale_id} ({log_ctx})")

    return "processed"


def _featured_window():
    now = datetime.now(timezone.utc)
    days = current_app.config.get("FEATURED_DURATION_DAYS", 7)
    return now, now + timedelta(days=days)


def _activate_promotion(promotion_id, sale_id, payment_id):
    """Conditional pending -> active. Returns False if someone got there first."""
    now, ends_at = _featured_window()
    values = {
        "sale_id": sale_id,
        "status": "active",
        "activated_at": now,
        "starts_at": now,
        "ends_at": ends_at,
    }
    if payment_id:
        values["stripe_payment_intent_id"] = payment_id

    try:
        updated = (
            Promotion.query
            .filter(
                Promotion.id == promotion_id,
                Promotion.sale_id.is_(None),
                Promotion.status == "pending",
            )
            .update(values, synchronize_session=False)
        )
        if updated:
            log_audit("promotion.activated", {
                "promotion_id": promotion_id,
                "sale_id": sale_id,
            })
        db.session.commit()
    except SQLAlchemyError:
        # sale_id is unique on promotions; treat a violation as a lost race.
        db.session.rollback()
        return False
    return bool(updated)


def _create_active_promotion(owner_id, draft_key, sale_id, tier, payment_id):
    """Sessions without a promotion_id (created before promotions were
    recorded up front) get their promotion row at finalization."""
    now, ends_at = _featured_window()
    promotion = Promotion(
        owner_id=owner_id,
        draft_key=draft_key,
        sale_id=sale_id,
        status="active",
        tier=tier,
        stripe_payment_intent_id=payment_id,
        activated_at=now,
        starts_at=now,
        ends_at=ends_at,
    )
    db.session.add(promotion)
    db.session.flush()
    log_audit("promotion.activated", {
        "promotion_id": promotion.id,
        "sale_id": sale_id,
        "created_at_finalization": True,
    })
    db.session.commit()
    return promotion.id


def _discard_sale(sale_id):
    """Remove a sale that lost a finalization race, with any promotion bound to it."""
    Promotion.query.filter_by(sale_id=sale_id).delete(synchronize_session=False)
    sale = db.session.get(Sale, sale_id)
    if sale is not None:
        db.session.delete(sale)
    db.session.commit()


def _notify_owner(owner_id, sale_id, payment_id, is_featured):
    """Send the sale-created confirmation once per payment."""
    if not payment_id:
        logger.warning(f"No payment id for sale {sale_id}, skipping confirmation email")
        return

    owner = db.session.get(User, owner_id)
    if owner is None or not (owner.email or "").strip():
        logger.warning(f"No owner email for sale {sale_id}, skipping confirmation email")
        return

    dedupe_key = sale_created_promotion_dedupe_key(payment_id)
    if not can_send_email(owner.id, SALE_CREATED_PROMOTION, dedupe_key):
        return

    sale = db.session.get(Sale, sale_id)
    try:
        ok, error = send_sale_created_email(sale, owner, is_featured, dedupe_key)
    except Exception as e:
        ok, error = False, str(e)

    if not ok:
        logger.warning(
            f"Sale-created email to {redact_email(owner.email)} failed "
            f"for sale {sale_id}: {error}"
        )

    record_email_send(
        profile_id=owner.id,
        email_type=SALE_CREATED_PROMOTION,
        to_email=owner.email,
        subject=build_sale_created_subject(sale.title),
        dedupe_key=dedupe_key,
        delivery_status="sent" if ok else "failed",
        error_message=None if ok else SEND_FAILED_MESSAGE,
        meta={"sale_id": sale_id, "is_featured": is_featured},
    )
