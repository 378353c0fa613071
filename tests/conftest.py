"""Shared test fixtures for the Saleflow test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: two sellers plus an active, publishable draft owned by the first
- make_payload: factory for valid draft payloads
- login: log the test client in
"""

import copy

import pytest
from werkzeug.security import generate_password_hash

from saleflow import create_app
from saleflow.extensions import db as _db
from saleflow.models.draft import SaleDraft
from saleflow.models.user import User
from saleflow.services.draft_service import hash_draft_content

SELLER_PASSWORD = "seller-pass-123"

VALID_PAYLOAD = {
    "formData": {
        "title": "Big Moving Sale",
        "description": "Furniture, tools and kitchen stuff.",
        "address": "12 Elm St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62704",
        "lat": 39.7817,
        "lng": -89.6501,
        "date_start": "2026-11-07",
        "time_start": "08:10",
        "date_end": "2026-11-07",
        "time_end": "14:00",
        "tags": ["furniture", "tools"],
        "pricing_mode": "negotiable",
    },
    "photos": [
        "https://images.example.com/cover.jpg",
        "https://images.example.com/table.jpg",
    ],
    "items": [
        {"name": "Oak table", "price": "40", "category": "furniture"},
        {"name": "Drill", "price": 15.5, "category": "tools"},
    ],
    "currentStep": 4,
}


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def make_payload():
    """Return a deep copy of a valid draft payload, with formData overrides."""

    def _make(**form_overrides):
        payload = copy.deepcopy(VALID_PAYLOAD)
        payload["formData"].update(form_overrides)
        return payload

    return _make


@pytest.fixture
def seed_data(app, db_session, make_payload):
    """Seed two sellers and one active draft owned by the first.

    Returns plain ids so tests can use them across app contexts.
    """
    with app.app_context():
        seller = User(
            email="seller@example.com",
            password_hash=generate_password_hash(SELLER_PASSWORD),
            full_name="Sam Seller",
        )
        other = User(
            email="other@example.com",
            password_hash=generate_password_hash(SELLER_PASSWORD),
            full_name="Olive Other",
        )
        _db.session.add_all([seller, other])
        _db.session.flush()

        payload = make_payload()
        draft = SaleDraft(
            user_id=seller.id,
            draft_key="draft-key-abc123",
            title=payload["formData"]["title"],
            status="active",
            payload=payload,
            content_hash=hash_draft_content(payload),
        )
        _db.session.add(draft)
        _db.session.commit()

        return {
            "seller_id": seller.id,
            "seller_email": seller.email,
            "other_id": other.id,
            "other_email": other.email,
            "draft_id": draft.id,
            "draft_key": draft.draft_key,
            "payload": payload,
        }


@pytest.fixture
def login(client):
    """Log the test client in as the given email."""

    def _login(email, password=SELLER_PASSWORD):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp

    return _login
