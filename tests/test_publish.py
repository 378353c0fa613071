"""Tests for POST /drafts/publish — the two publish paths.

Covers:
- Immediate publish creates sale + items and deletes the draft
- Promoted publish creates a pending promotion and a checkout session,
  and leaves the draft untouched (no sale yet)
- Checkout session failure cancels the promotion, keeps the draft
- Validation errors carry specific codes and change nothing
- Promotions kill switch
- Ownership and auth checks
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import stripe

from saleflow.extensions import db
from saleflow.models.audit import AuditEvent
from saleflow.models.draft import SaleDraft
from saleflow.models.promotion import Promotion
from saleflow.models.sale import Item, Sale


def _publish(client, draft_key, wants_promotion=False):
    return client.post("/drafts/publish", json={
        "draftKey": draft_key,
        "wantsPromotion": wants_promotion,
    })


def _fake_session(session_id="cs_test_001", url="https://checkout.stripe.com/c/pay/cs_test_001"):
    session = MagicMock()
    session.id = session_id
    session.url = url
    return session


class TestImmediatePublish:
    """wantsPromotion=false: sale now, draft consumed."""

    def test_creates_sale_and_deletes_draft(self, client, seed_data, login, app):
        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["ok"] is True
        sale_id = data["saleId"]

        with app.app_context():
            sale = db.session.get(Sale, sale_id)
            assert sale.owner_id == seed_data["seller_id"]
            assert sale.is_featured is False
            assert sale.status == "published"
            assert sale.title == "Big Moving Sale"
            assert sale.time_start == "08:00"  # snapped to 30 min
            assert sale.cover_image_url == "https://images.example.com/cover.jpg"
            assert sale.images == ["https://images.example.com/table.jpg"]
            assert sale.tags == ["furniture", "tools"]
            assert [i.name for i in sale.items] == ["Oak table", "Drill"]
            assert sale.items[1].price == Decimal("15.50")

            assert SaleDraft.query.filter_by(draft_key=seed_data["draft_key"]).first() is None
            assert Promotion.query.count() == 0
            assert AuditEvent.query.filter_by(action="sale.published").count() == 1

    def test_publishing_twice_is_not_found(self, client, seed_data, login, app):
        login("seller@example.com")
        assert _publish(client, seed_data["draft_key"]).status_code == 200

        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "DRAFT_NOT_FOUND"
        with app.app_context():
            assert Sale.query.count() == 1

    @patch("saleflow.services.publish_service.materialize_sale")
    def test_insert_failure_keeps_draft(self, mock_materialize, client, seed_data, login, app):
        from sqlalchemy.exc import OperationalError

        mock_materialize.side_effect = OperationalError("INSERT", {}, Exception("db down"))

        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 500
        assert resp.get_json()["code"] == "PUBLISH_FAILED"

        with app.app_context():
            assert SaleDraft.query.filter_by(draft_key=seed_data["draft_key"]).first() is not None
            assert Sale.query.count() == 0


class TestValidation:
    """Unpublishable drafts fail with a specific code and change nothing."""

    def _set_payload(self, app, draft_key, payload):
        with app.app_context():
            draft = SaleDraft.query.filter_by(draft_key=draft_key).first()
            draft.payload = payload
            db.session.commit()

    def test_missing_fields(self, client, seed_data, login, app, make_payload):
        self._set_payload(app, seed_data["draft_key"], make_payload(city="", date_start=None))
        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 400
        data = resp.get_json()
        assert data["code"] == "MISSING_FIELDS"
        assert "city" in data["details"]
        assert "date_start" in data["details"]

    def test_missing_location(self, client, seed_data, login, app, make_payload):
        self._set_payload(app, seed_data["draft_key"], make_payload(lng="not-a-number"))
        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "MISSING_LOCATION"

    def test_non_finite_price_rejected(self, client, seed_data, login, app, make_payload):
        payload = make_payload()
        payload["items"][0]["price"] = "NaN"
        self._set_payload(app, seed_data["draft_key"], payload)
        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 400
        data = resp.get_json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["details"] == {"items[0]": "Invalid item price"}

        with app.app_context():
            assert Sale.query.count() == 0
            assert SaleDraft.query.count() == 1

    def test_unparseable_start_time_rejected(self, client, seed_data, login, app, make_payload):
        self._set_payload(app, seed_data["draft_key"], make_payload(time_start="banana time"))
        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "MISSING_FIELDS"
        assert "time_start" in resp.get_json()["details"]

    def test_insecure_image_url(self, client, seed_data, login, app, make_payload):
        payload = make_payload()
        payload["photos"] = ["http://images.example.com/cover.jpg"]
        self._set_payload(app, seed_data["draft_key"], payload)
        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"], wants_promotion=True)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_IMAGE_URL"

        with app.app_context():
            assert Sale.query.count() == 0
            assert Promotion.query.count() == 0

    def test_wants_promotion_must_be_bool(self, client, seed_data, login):
        login("seller@example.com")
        resp = client.post("/drafts/publish", json={
            "draftKey": seed_data["draft_key"],
            "wantsPromotion": "yes",
        })
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_INPUT"

    def test_missing_draft_key(self, client, seed_data, login):
        login("seller@example.com")
        resp = client.post("/drafts/publish", json={"wantsPromotion": False})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_INPUT"


class TestOwnership:

    def test_requires_login(self, client, seed_data):
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "AUTH_REQUIRED"

    def test_other_users_draft_forbidden(self, client, seed_data, login, app):
        login("other@example.com")
        resp = _publish(client, seed_data["draft_key"])
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "FORBIDDEN"
        with app.app_context():
            assert Sale.query.count() == 0
            assert SaleDraft.query.count() == 1

    def test_unknown_draft(self, client, seed_data, login):
        login("seller@example.com")
        resp = _publish(client, "no-such-draft")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "DRAFT_NOT_FOUND"


class TestPromotedPublish:
    """wantsPromotion=true: pending promotion + checkout, no sale yet."""

    @patch("saleflow.services.stripe_service.stripe.checkout.Session.create")
    def test_returns_checkout_and_keeps_draft(self, mock_create, client, seed_data, login, app):
        mock_create.return_value = _fake_session()

        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"], wants_promotion=True)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["checkoutUrl"] == "https://checkout.stripe.com/c/pay/cs_test_001"
        assert data["sessionId"] == "cs_test_001"
        assert "saleId" not in data

        with app.app_context():
            promotion = db.session.get(Promotion, data["promotionId"])
            assert promotion.status == "pending"
            assert promotion.sale_id is None
            assert promotion.draft_key == seed_data["draft_key"]
            assert promotion.stripe_checkout_session_id == "cs_test_001"
            assert promotion.amount_cents == 299

            draft = SaleDraft.query.filter_by(draft_key=seed_data["draft_key"]).first()
            assert draft is not None
            assert draft.payload == seed_data["payload"]
            assert Sale.query.count() == 0

    @patch("saleflow.services.stripe_service.stripe.checkout.Session.create")
    def test_session_metadata_carries_draft_reference(self, mock_create, client, seed_data, login):
        mock_create.return_value = _fake_session()

        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"], wants_promotion=True)
        promotion_id = resp.get_json()["promotionId"]

        kwargs = mock_create.call_args.kwargs
        expected = {
            "draft_key": seed_data["draft_key"],
            "promotion_id": promotion_id,
            "tier": "featured_week",
            "wants_promotion": "true",
        }
        assert kwargs["metadata"] == expected
        assert kwargs["payment_intent_data"] == {"metadata": expected}
        assert kwargs["mode"] == "payment"
        assert kwargs["api_key"] == "sk_test_fake"
        assert kwargs["customer_email"] == "seller@example.com"
        assert "sale_id" not in kwargs["metadata"]

    @patch("saleflow.services.stripe_service.stripe.checkout.Session.create")
    def test_session_failure_cancels_promotion(self, mock_create, client, seed_data, login, app):
        mock_create.side_effect = stripe.APIConnectionError("network down")

        login("seller@example.com")
        resp = _publish(client, seed_data["draft_key"], wants_promotion=True)
        assert resp.status_code == 502
        assert resp.get_json()["code"] == "PROCESSOR_ERROR"

        with app.app_context():
            promotion = Promotion.query.one()
            assert promotion.status == "canceled"
            assert promotion.canceled_at is not None
            draft = SaleDraft.query.filter_by(draft_key=seed_data["draft_key"]).first()
            assert draft is not None
            assert draft.payload == seed_data["payload"]
            assert Sale.query.count() == 0

    def test_promotions_disabled(self, client, seed_data, login, app):
        app.config["PROMOTIONS_ENABLED"] = False
        try:
            login("seller@example.com")
            resp = _publish(client, seed_data["draft_key"], wants_promotion=True)
        finally:
            app.config["PROMOTIONS_ENABLED"] = True

        assert resp.status_code == 403
        assert resp.get_json()["code"] == "PROMOTIONS_DISABLED"
        with app.app_context():
            assert Promotion.query.count() == 0
            assert SaleDraft.query.count() == 1

    def test_promotions_disabled_leaves_immediate_path(self, client, seed_data, login, app):
        app.config["PROMOTIONS_ENABLED"] = False
        try:
            login("seller@example.com")
            resp = _publish(client, seed_data["draft_key"])
        finally:
            app.config["PROMOTIONS_ENABLED"] = True
        assert resp.status_code == 200
        assert "saleId" in resp.get_json()


class TestItems:

    def test_items_keep_their_order(self, client, seed_data, login, app):
        login("seller@example.com")
        sale_id = _publish(client, seed_data["draft_key"]).get_json()["saleId"]
        with app.app_context():
            positions = [
                (i.position, i.name)
                for i in Item.query.filter_by(sale_id=sale_id).order_by(Item.position)
            ]
            assert positions == [(0, "Oak table"), (1, "Drill")]
