"""Draft service — the draft store.

Responsible for:
- Saving drafts (upsert by draft_key, skipped when content is unchanged)
- Canonical content hashing for change detection
- Loading a user's active drafts
- Deleting a draft once it has been published
"""

import hashlib
import json
import logging
import secrets

from saleflow.errors import AuthorizationError, DraftNotFoundError, ValidationError
from saleflow.extensions import db
from saleflow.models.draft import SaleDraft

logger = logging.getLogger(__name__)

MAX_LISTED_DRAFTS = 50

_FORM_FIELDS = (
    "title", "description", "address", "city", "state", "zip_code",
    "lat", "lng", "date_start", "time_start", "date_end", "time_end",
    "duration_hours", "tags", "pricing_mode",
)
_ITEM_FIELDS = ("name", "price", "description", "image_url", "category")


def _present(value):
    return value not in (None, "", [])


def canonicalize_payload(payload):
    """Reduce a payload to the fields that represent real content.

    UI state (currentStep, temporary item ids, wantsPromotion) is dropped,
    empty values are removed, and tags, photos and items are sorted so the
    hash doesn't change when only their order does.
    """
    payload = payload or {}
    form = payload.get("formData") or {}

    canonical_form = {}
    for field in _FORM_FIELDS:
        value = form.get(field)
        if not _present(value):
            continue
        if field == "tags" and isinstance(value, list):
            value = sorted(value)
        canonical_form[field] = value

    items = []
    for item in payload.get("items") or []:
        if not isinstance(item, dict):
            continue
        items.append({k: item[k] for k in _ITEM_FIELDS if _present(item.get(k))})
    items.sort(key=lambda i: (str(i.get("name", "")), str(i.get("category", ""))))

    return {
        "formData": canonical_form,
        "photos": sorted(p for p in (payload.get("photos") or []) if isinstance(p, str)),
        "items": items,
    }


def hash_draft_content(payload):
    raw = json.dumps(
        canonicalize_payload(payload), sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def generate_draft_key():
    return secrets.token_urlsafe(24)


def _title_from(payload):
    title = ((payload or {}).get("formData") or {}).get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()[:255]
    return None


def save_draft(user_id, payload, draft_key=None):
    """Create or update a draft for user_id.

    Returns (draft, changed). changed is False when the content hash
    matched the stored one and nothing was written.
    Raises AuthorizationError if the key belongs to another user.
    """
    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object")

    content_hash = hash_draft_content(payload)

    draft = None
    if draft_key:
        draft = SaleDraft.query.filter_by(draft_key=draft_key).first()
        if draft is not None and draft.user_id != user_id:
            raise AuthorizationError("Draft belongs to another user")
        if draft is not None and draft.status != "active":
            raise DraftNotFoundError("Draft is no longer editable")

    if draft is None:
        draft = SaleDraft(
            user_id=user_id,
            draft_key=draft_key or generate_draft_key(),
            status="active",
            payload=payload,
            title=_title_from(payload),
            content_hash=content_hash,
        )
        db.session.add(draft)
        db.session.commit()
        logger.info(f"Draft {draft.draft_key} created for user {user_id}")
        return draft, True

    if draft.content_hash == content_hash:
        return draft, False

    draft.payload = payload
    draft.title = _title_from(payload)
    draft.content_hash = content_hash
    db.session.commit()
    return draft, True


def list_drafts(user_id):
    return (
        SaleDraft.query
        .filter_by(user_id=user_id, status="active")
        .order_by(SaleDraft.updated_at.desc())
        .limit(MAX_LISTED_DRAFTS)
        .all()
    )


def load_active_draft(draft_key):
    """Load an active draft by key regardless of owner (webhook path)."""
    if not draft_key:
        return None
    return SaleDraft.query.filter_by(draft_key=draft_key, status="active").first()


def get_owned_draft(user_id, draft_key):
    """Load an active draft and check ownership.

    Raises DraftNotFoundError / AuthorizationError.
    """
    draft = load_active_draft(draft_key)
    if draft is None:
        raise DraftNotFoundError("Draft not found")
    if draft.user_id != user_id:
        raise AuthorizationError("Draft belongs to another user")
    return draft


def delete_draft(draft_key):
    """Hard-delete a published draft. Returns True if this call removed it.

    Takes the key rather than the instance so a caller whose copy went
    stale can still race for the delete.
    """
    deleted = (
        SaleDraft.query
        .filter_by(draft_key=draft_key)
        .delete(synchronize_session="fetch")
    )
    db.session.commit()
    if deleted:
        logger.info(f"Draft {draft_key} deleted after publication")
    return bool(deleted)
