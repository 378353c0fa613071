"""Webhooks blueprint — /webhooks/payment

Receives Stripe webhook events. CSRF-exempt.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, request, jsonify

from saleflow.services.finalize_service import handle_webhook_event
from saleflow.services.stripe_service import get_payments_client

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.route("/payment", methods=["POST"])
def payment_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via stripe_webhook_events)
    4. Return 200 — always, once the signature checks out

    Finalization failures are reported in the body only. A non-2xx would
    make Stripe retry automatically; failed events are replayed by an
    operator instead (flask replay-webhook-event).

    CSRF is exempted for this blueprint in create_app().
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return jsonify(ok=False, error="Missing signature"), 400

    # --- Verify signature ---
    try:
        event = get_payments_client().construct_event(payload, sig_header)
    except Exception as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return jsonify(ok=False, error="Invalid signature"), 400

    # --- Process event (idempotent) ---
    success, message = handle_webhook_event(event)

    if success:
        return jsonify(ok=True, status=message), 200
    logger.error(f"Webhook processing failed for {event['id']}: {message}")
    return jsonify(ok=False, error=message), 200
