"""Webhook payload builders shared by the webhook and replay tests."""


def stripe_event(event_id, event_type, obj):
    """Build a webhook event dict shaped like stripe.Webhook.construct_event's."""
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def checkout_completed(event_id, draft_key, promotion_id=None,
                       payment_intent="pi_test_001", session_id="cs_test_001",
                       payment_status="paid"):
    metadata = {"draft_key": draft_key, "tier": "featured_week", "wants_promotion": "true"}
    if promotion_id:
        metadata["promotion_id"] = promotion_id
    return stripe_event(event_id, "checkout.session.completed", {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "payment_intent": payment_intent,
        "metadata": metadata,
    })


def post_webhook(client):
    return client.post(
        "/webhooks/payment",
        data="{}",
        content_type="application/json",
        headers={"Stripe-Signature": "valid_sig"},
    )
