"""Stripe service — the payment collaborator.

Responsible for:
- Creating Stripe Checkout Sessions for promoted drafts
- Verifying webhook signatures and constructing events
- Re-fetching events for operator replay

A single StripeCheckoutClient is built in create_app() and stored in
app.extensions["payments"]. It holds its own API key and passes it per
call, so the module-level stripe.api_key is never touched.
"""

import logging
from dataclasses import dataclass

import stripe
from flask import current_app

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


class StripeCheckoutClient:
    """Thin, stateless wrapper around the Stripe SDK calls we make."""

    def __init__(self, api_key, webhook_secret, app_base_url,
                 featured_price_id=None, featured_amount_cents=299):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._app_base_url = app_base_url
        self._featured_price_id = featured_price_id
        self._featured_amount_cents = featured_amount_cents

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            app_base_url=config.get("APP_BASE_URL", "http://localhost:5000"),
            featured_price_id=config.get("STRIPE_FEATURED_WEEK_PRICE_ID"),
            featured_amount_cents=config.get("FEATURED_WEEK_AMOUNT_CENTS", 299),
        )

    @property
    def featured_amount_cents(self):
        return self._featured_amount_cents

    def _line_item(self):
        if self._featured_price_id:
            return {"price": self._featured_price_id, "quantity": 1}
        return {
            "price_data": {
                "currency": "usd",
                "unit_amount": self._featured_amount_cents,
                "product_data": {"name": "Featured listing (1 week)"},
            },
            "quantity": 1,
        }

    def create_session(self, metadata, customer_email=None):
        """Create a one-time payment Checkout Session.

        metadata is copied onto both the session and its PaymentIntent so
        that either completion event carries the draft/promotion refs.

        Returns a CheckoutSession.
        Raises stripe.StripeError on API failures.
        """
        params = {
            "mode": "payment",
            "line_items": [self._line_item()],
            "success_url": (
                f"{self._app_base_url}/promotions/success"
                f"?session_id={{CHECKOUT_SESSION_ID}}"
            ),
            "cancel_url": f"{self._app_base_url}/promotions/cancel",
            "metadata": dict(metadata),
            "payment_intent_data": {"metadata": dict(metadata)},
        }
        if customer_email:
            params["customer_email"] = customer_email

        session = stripe.checkout.Session.create(api_key=self._api_key, **params)
        return CheckoutSession(session_id=session.id, url=session.url)

    def construct_event(self, payload, sig_header):
        """Verify Stripe webhook signature and construct the event.

        Raises stripe.SignatureVerificationError on invalid signature.
        """
        return stripe.Webhook.construct_event(
            payload, sig_header, self._webhook_secret
        )

    def retrieve_event(self, event_id):
        """Fetch an event from Stripe (used for operator replay)."""
        return stripe.Event.retrieve(event_id, api_key=self._api_key)


def get_payments_client():
    """Return the collaborator registered on the current app."""
    return current_app.extensions["payments"]
