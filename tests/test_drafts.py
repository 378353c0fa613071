"""Tests for the draft store and the /drafts API.

Covers:
- Creating a draft (server-generated key)
- Unchanged content detected by canonical hash (no write)
- Updating content changes the hash
- Another user's draft key is rejected
- Listing only returns the caller's active drafts
- Publishability is reported with blocking errors
"""

from saleflow.extensions import db
from saleflow.models.draft import SaleDraft
from saleflow.services.draft_service import canonicalize_payload, hash_draft_content


class TestContentHash:
    """Pure hashing helpers."""

    def test_ui_state_does_not_change_hash(self, make_payload):
        a = make_payload()
        b = make_payload()
        b["currentStep"] = 1
        b["wantsPromotion"] = True
        assert hash_draft_content(a) == hash_draft_content(b)

    def test_ordering_does_not_change_hash(self, make_payload):
        a = make_payload()
        b = make_payload(tags=["tools", "furniture"])
        b["items"].reverse()
        b["photos"].reverse()
        assert hash_draft_content(a) == hash_draft_content(b)

    def test_content_change_changes_hash(self, make_payload):
        assert hash_draft_content(make_payload()) != hash_draft_content(
            make_payload(title="Estate Sale")
        )

    def test_empty_values_dropped(self, make_payload):
        canonical = canonicalize_payload(make_payload(description="", zip_code=None))
        assert "description" not in canonical["formData"]
        assert "zip_code" not in canonical["formData"]


class TestSaveDraft:
    """POST /drafts."""

    def test_create_draft(self, client, seed_data, login, make_payload):
        login("seller@example.com")
        resp = client.post("/drafts", json={"payload": make_payload(title="Yard Sale")})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["changed"] is True
        assert data["data"]["draft_key"]
        assert data["data"]["title"] == "Yard Sale"
        assert data["data"]["publishability"]["isPublishable"] is True

    def test_unchanged_content_is_not_rewritten(self, client, seed_data, login):
        login("seller@example.com")
        payload = dict(seed_data["payload"], currentStep=2)
        resp = client.post("/drafts", json={
            "draftKey": seed_data["draft_key"],
            "payload": payload,
        })
        assert resp.status_code == 200
        assert resp.get_json()["changed"] is False

    def test_update_changes_hash(self, client, seed_data, login, make_payload, app):
        login("seller@example.com")
        resp = client.post("/drafts", json={
            "draftKey": seed_data["draft_key"],
            "payload": make_payload(title="Bigger Moving Sale"),
        })
        assert resp.status_code == 200
        assert resp.get_json()["changed"] is True

        with app.app_context():
            draft = SaleDraft.query.filter_by(draft_key=seed_data["draft_key"]).first()
            assert draft.title == "Bigger Moving Sale"
            assert draft.content_hash == hash_draft_content(
                make_payload(title="Bigger Moving Sale")
            )

    def test_other_users_key_forbidden(self, client, seed_data, login, make_payload, app):
        login("other@example.com")
        resp = client.post("/drafts", json={
            "draftKey": seed_data["draft_key"],
            "payload": make_payload(title="Hijacked"),
        })
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "FORBIDDEN"

        with app.app_context():
            draft = SaleDraft.query.filter_by(draft_key=seed_data["draft_key"]).first()
            assert draft.title == "Big Moving Sale"

    def test_payload_must_be_object(self, client, seed_data, login):
        login("seller@example.com")
        resp = client.post("/drafts", json={"payload": ["not", "a", "dict"]})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_invalid_json_body(self, client, seed_data, login):
        login("seller@example.com")
        resp = client.post("/drafts", data="nope", content_type="application/json")
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_JSON"


class TestReadDrafts:
    """GET /drafts and GET /drafts/<key>."""

    def test_list_only_own_drafts(self, client, seed_data, login, app, make_payload):
        with app.app_context():
            db.session.add(SaleDraft(
                user_id=seed_data["other_id"],
                draft_key="someone-elses-draft",
                status="active",
                payload=make_payload(),
            ))
            db.session.commit()

        login("seller@example.com")
        resp = client.get("/drafts")
        assert resp.status_code == 200
        keys = [d["draft_key"] for d in resp.get_json()["data"]]
        assert keys == [seed_data["draft_key"]]

    def test_get_reports_blocking_errors(self, client, seed_data, login, app, make_payload):
        payload = make_payload(title="", lat=None)
        with app.app_context():
            draft = SaleDraft.query.filter_by(draft_key=seed_data["draft_key"]).first()
            draft.payload = payload
            db.session.commit()

        login("seller@example.com")
        resp = client.get(f"/drafts/{seed_data['draft_key']}")
        assert resp.status_code == 200
        publishability = resp.get_json()["data"]["publishability"]
        assert publishability["isPublishable"] is False
        assert "title" in publishability["blockingErrors"]
        assert "location" in publishability["blockingErrors"]

    def test_get_unknown_key_404(self, client, seed_data, login):
        login("seller@example.com")
        resp = client.get("/drafts/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "DRAFT_NOT_FOUND"

    def test_get_other_users_draft_403(self, client, seed_data, login):
        login("other@example.com")
        resp = client.get(f"/drafts/{seed_data['draft_key']}")
        assert resp.status_code == 403
