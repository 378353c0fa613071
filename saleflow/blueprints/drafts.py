"""Drafts blueprint — /drafts/*

JSON API for the sell wizard.

Routes:
- GET  /drafts              — the caller's active drafts (newest first)
- GET  /drafts/<draft_key>  — one draft + publishability
- POST /drafts              — save (create or update) a draft
- POST /drafts/publish      — publish now, or start a promoted checkout
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from saleflow.errors import SaleflowError
from saleflow.extensions import limiter
from saleflow.services import draft_service
from saleflow.services.listing_service import compute_publishability
from saleflow.services.publish_service import publish_draft

drafts_bp = Blueprint("drafts", __name__, url_prefix="/drafts")


@drafts_bp.errorhandler(SaleflowError)
def handle_saleflow_error(e):
    return jsonify(e.to_dict()), e.status


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def _serialize(draft):
    data = draft.to_dict()
    errors = compute_publishability(draft.payload)
    data["publishability"] = {
        "isPublishable": not errors,
        "blockingErrors": errors,
    }
    return data


# ──────────────────────────────────────────────
# GET /drafts
# ──────────────────────────────────────────────

@drafts_bp.route("", methods=["GET"])
@login_required
def list_drafts():
    drafts = draft_service.list_drafts(current_user.id)
    return jsonify(ok=True, data=[_serialize(d) for d in drafts])


@drafts_bp.route("/<draft_key>", methods=["GET"])
@login_required
def get_draft(draft_key):
    draft = draft_service.get_owned_draft(current_user.id, draft_key)
    return jsonify(ok=True, data=_serialize(draft))


# ──────────────────────────────────────────────
# POST /drafts
# ──────────────────────────────────────────────

@drafts_bp.route("", methods=["POST"])
@login_required
@limiter.limit("60 per minute")
def save_draft():
    """Save a draft. Body: {draftKey?, payload}.

    Unchanged content (same canonical hash) is acknowledged without a write.
    """
    data = _json_body()
    if data is None:
        return jsonify(ok=False, code="INVALID_JSON", error="Invalid JSON in request body"), 400

    payload = data.get("payload")
    draft_key = data.get("draftKey")
    if draft_key is not None and not isinstance(draft_key, str):
        return jsonify(ok=False, code="INVALID_INPUT", error="draftKey must be a string"), 400

    draft, changed = draft_service.save_draft(current_user.id, payload, draft_key=draft_key)
    return jsonify(ok=True, data=_serialize(draft), changed=changed)


# ──────────────────────────────────────────────
# POST /drafts/publish
# ──────────────────────────────────────────────

@drafts_bp.route("/publish", methods=["POST"])
@login_required
@limiter.limit("20 per hour")
def publish():
    """Publish a draft. Body: {draftKey, wantsPromotion}.

    Returns:
        {ok: true, saleId}                                  — published now
        {ok: true, checkoutUrl, sessionId, promotionId}    — pay first
        {ok: false, code, error}                            — nothing changed
    """
    data = _json_body()
    if data is None:
        return jsonify(ok=False, code="INVALID_JSON", error="Invalid JSON in request body"), 400

    draft_key = data.get("draftKey")
    if not draft_key or not isinstance(draft_key, str):
        return jsonify(ok=False, code="INVALID_INPUT", error="draftKey is required"), 400

    wants_promotion = data.get("wantsPromotion", False)
    if not isinstance(wants_promotion, bool):
        return jsonify(ok=False, code="INVALID_INPUT", error="wantsPromotion must be a boolean"), 400

    result = publish_draft(current_user, draft_key, wants_promotion=wants_promotion)
    return jsonify(ok=True, **result)
