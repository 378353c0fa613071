"""Publish service — turns an active draft into a sale or a checkout.

Two paths, chosen by wants_promotion:

- immediate: validate, insert Sale + Items, delete the draft, return the
  sale id.
- promoted: validate, record a pending Promotion, open a Stripe Checkout
  Session carrying {draft_key, promotion_id, tier}, return the checkout
  URL. The sale is created later by finalize_service when Stripe reports
  the payment.

Rollback policy on the promoted path: if the session can't be created,
only the speculative Promotion is canceled. The draft is never touched
on that path.
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from saleflow.errors import (
    ProcessorError,
    PromotionsDisabledError,
    PublishFailedError,
)
from saleflow.extensions import db
from saleflow.models.promotion import Promotion
from saleflow.services.audit_service import log_audit
from saleflow.services.draft_service import delete_draft, get_owned_draft
from saleflow.services.listing_service import materialize_sale, validate_draft_payload
from saleflow.services.payment_metadata import DraftPromotionMetadata
from saleflow.services.stripe_service import get_payments_client

logger = logging.getLogger(__name__)

DEFAULT_TIER = "featured_week"


def publish_draft(user, draft_key, wants_promotion=False):
    """Publish the caller's draft.

    Returns {"saleId": ...} or {"checkoutUrl", "sessionId", "promotionId"}.
    Raises a SaleflowError subclass on any caller-facing failure.
    """
    draft = get_owned_draft(user.id, draft_key)

    if wants_promotion:
        return _start_promoted_checkout(user, draft)
    return _publish_immediately(user, draft)


# ──────────────────────────────────────────────
# Immediate publish
# ──────────────────────────────────────────────

def _publish_immediately(user, draft):
    draft_key = draft.draft_key
    try:
        sale = materialize_sale(user.id, draft.payload, is_featured=False)
    except SQLAlchemyError as e:
        logger.error(f"Sale insert failed for draft {draft_key}: {e}")
        raise PublishFailedError("Failed to create sale") from e

    sale_id = sale.id
    log_audit("sale.published", {
        "sale_id": sale_id,
        "draft_key": draft_key,
        "promoted": False,
    }, actor_user_id=user.id)
    db.session.commit()

    try:
        delete_draft(draft_key)
    except SQLAlchemyError as e:
        # Sale is live; a leftover draft is cosmetic.
        db.session.rollback()
        logger.error(f"Draft {draft_key} delete failed after sale {sale_id}: {e}")

    return {"saleId": sale_id}


# ──────────────────────────────────────────────
# Promoted publish
# ──────────────────────────────────────────────

def _start_promoted_checkout(user, draft):
    if not current_app.config.get("PROMOTIONS_ENABLED"):
        raise PromotionsDisabledError("Promoted listings are not available right now")

    # An unpublishable draft would only fail later inside the webhook.
    validate_draft_payload(draft.payload)

    payments = get_payments_client()

    promotion = Promotion(
        owner_id=user.id,
        draft_key=draft.draft_key,
        sale_id=None,
        status="pending",
        tier=DEFAULT_TIER,
        amount_cents=payments.featured_amount_cents,
    )
    db.session.add(promotion)
    db.session.flush()
    log_audit("promotion.requested", {
        "promotion_id": promotion.id,
        "draft_key": draft.draft_key,
        "tier": promotion.tier,
    }, actor_user_id=user.id)
    db.session.commit()
    promotion_id = promotion.id

    metadata = DraftPromotionMetadata(
        draft_key=draft.draft_key,
        promotion_id=promotion_id,
        tier=promotion.tier,
    )

    try:
        session = payments.create_session(
            metadata.to_stripe(), customer_email=user.email
        )
    except Exception as e:
        logger.error(
            f"Checkout session failed for promotion {promotion_id} "
            f"(draft {draft.draft_key}): {e.__class__.__name__}"
        )
        _cancel_promotion(promotion, reason="session_create_failed")
        raise ProcessorError("Payment processing is temporarily unavailable") from e

    promotion.stripe_checkout_session_id = session.session_id
    db.session.commit()

    logger.info(
        f"Checkout session {session.session_id} opened for promotion "
        f"{promotion_id} (draft {draft.draft_key})"
    )
    return {
        "checkoutUrl": session.url,
        "sessionId": session.session_id,
        "promotionId": promotion_id,
    }


def _cancel_promotion(promotion, reason):
    promotion.status = "canceled"
    promotion.canceled_at = datetime.now(timezone.utc)
    log_audit("promotion.canceled", {
        "promotion_id": promotion.id,
        "draft_key": promotion.draft_key,
        "reason": reason,
    }, actor_user_id=promotion.owner_id)
    db.session.commit()
