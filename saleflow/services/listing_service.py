"""Listing service — draft payload validation and sale materialization.

Shared by both publish paths (immediate and payment-finalized), so the
rules for what makes a draft publishable live in one place:

- title, city, state, date_start, time_start are required
- lat/lng are required (set by address autocomplete on the client)
- photo and item image URLs must be https (and on an allowed host, if
  ALLOWED_IMAGE_HOSTS is configured)
- time_start is snapped to 30-minute increments
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse

from flask import current_app

from saleflow.errors import ValidationError
from saleflow.extensions import db
from saleflow.models.sale import Item, Sale

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "city", "state", "date_start", "time_start")
MAX_ITEM_PRICE = Decimal("100000000")


def _text(value):
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def is_allowed_image_url(url):
    """https only; host must be on ALLOWED_IMAGE_HOSTS when it's set."""
    if not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    if parsed.scheme != "https" or not parsed.netloc:
        return False
    allowed = current_app.config.get("ALLOWED_IMAGE_HOSTS") or []
    if not allowed:
        return True
    host = (parsed.hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in allowed)


def normalize_time_start(value):
    """Snap "HH:MM" to the nearest half hour. 10:50 -> 11:00, 23:50 -> 00:00."""
    if not value or ":" not in value:
        return value
    hours, _, minutes = value.partition(":")
    try:
        h = int(hours or 0)
        m = int(minutes[:2] or 0)
    except ValueError:
        return value
    snapped = round(m / 30) * 30
    if snapped == 60:
        h, snapped = (h + 1) % 24, 0
    return f"{h:02d}:{snapped:02d}"


def normalize_tags(raw):
    if isinstance(raw, list):
        return [t.strip() for t in raw if isinstance(t, str) and t.strip()]
    if isinstance(raw, str):
        return [t.strip() for t in raw.split(",") if t.strip()]
    return []


def _parse_coordinate(value, limit):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or abs(number) > limit:  # NaN or out of range
        return None
    return number


def _parse_price(value):
    if value in (None, ""):
        return None
    try:
        price = Decimal(str(value))
        if not price.is_finite():
            return "invalid"
        price = price.quantize(Decimal("0.01"))
    except InvalidOperation:
        return "invalid"
    # Numeric(10, 2) on items.price
    if price < 0 or price >= MAX_ITEM_PRICE:
        return "invalid"
    return price


def compute_publishability(payload):
    """Return a dict of field -> blocking error. Empty dict = publishable.

    Pure: no DB access, never raises.
    """
    errors = {}
    if not isinstance(payload, dict):
        return {"draft": "Draft payload is missing"}

    form = payload.get("formData")
    if not isinstance(form, dict):
        return {"formData": "Form data is missing"}

    for field in REQUIRED_FIELDS:
        if not _text(form.get(field)):
            errors[field] = f"{field.replace('_', ' ').capitalize()} is required"

    if "date_start" not in errors:
        try:
            datetime.strptime(_text(form.get("date_start")), "%Y-%m-%d")
        except ValueError:
            errors["date_start"] = "Start date must be YYYY-MM-DD"

    if "time_start" not in errors:
        try:
            datetime.strptime(_text(form.get("time_start")), "%H:%M")
        except ValueError:
            errors["time_start"] = "Start time must be HH:MM"

    if _parse_coordinate(form.get("lat"), 90) is None or \
            _parse_coordinate(form.get("lng"), 180) is None:
        errors["location"] = "Location (lat/lng) is required"

    photos = payload.get("photos") or []
    if not isinstance(photos, list):
        errors["photos"] = "Photos must be a list"
    elif any(not is_allowed_image_url(p) for p in photos):
        errors["photos"] = "Invalid image URL"

    items = payload.get("items") or []
    if not isinstance(items, list):
        errors["items"] = "Items must be a list"
    else:
        for i, item in enumerate(items):
            if not isinstance(item, dict) or not _text(item.get("name")):
                errors[f"items[{i}]"] = "Item name is required"
            elif item.get("image_url") and not is_allowed_image_url(item["image_url"]):
                errors[f"items[{i}]"] = "Invalid item image URL"
            elif _parse_price(item.get("price")) == "invalid":
                errors[f"items[{i}]"] = "Invalid item price"

    pricing_mode = form.get("pricing_mode")
    if pricing_mode and pricing_mode not in Sale.PRICING_MODES:
        errors["pricing_mode"] = "Unknown pricing mode"

    return errors


def validate_draft_payload(payload):
    """Raise ValidationError with a specific code if the draft can't publish."""
    errors = compute_publishability(payload)
    if not errors:
        return

    if "draft" in errors or "formData" in errors:
        code = "VALIDATION_ERROR"
    elif any(f in errors for f in REQUIRED_FIELDS):
        code = "MISSING_FIELDS"
    elif "location" in errors:
        code = "MISSING_LOCATION"
    elif "photos" in errors or any(
        k.startswith("items[") and "image" in v for k, v in errors.items()
    ):
        code = "INVALID_IMAGE_URL"
    else:
        code = "VALIDATION_ERROR"
    raise ValidationError("Draft is not publishable", code=code, details=errors)


def build_sale(owner_id, payload, is_featured=False):
    """Build (but don't add) a Sale + Items from a validated payload."""
    form = payload["formData"]
    photos = payload.get("photos") or []

    sale = Sale(
        owner_id=owner_id,
        title=_text(form.get("title")),
        description=_text(form.get("description")),
        address=_text(form.get("address")),
        city=_text(form.get("city")),
        state=_text(form.get("state")),
        zip_code=_text(form.get("zip_code")),
        lat=float(form["lat"]),
        lng=float(form["lng"]),
        date_start=_text(form.get("date_start")),
        time_start=normalize_time_start(_text(form.get("time_start"))),
        date_end=_text(form.get("date_end")),
        time_end=_text(form.get("time_end")),
        cover_image_url=photos[0] if photos else None,
        images=photos[1:] if len(photos) > 1 else None,
        tags=normalize_tags(form.get("tags")),
        pricing_mode=form.get("pricing_mode") or "negotiable",
        privacy_mode="exact",
        is_featured=bool(is_featured),
        status="published",
    )

    for position, item in enumerate(payload.get("items") or []):
        sale.items.append(Item(
            name=_text(item.get("name")),
            description=_text(item.get("description")),
            price=_parse_price(item.get("price")),
            category=_text(item.get("category")),
            image_url=_text(item.get("image_url")),
            position=position,
        ))

    return sale


def materialize_sale(owner_id, payload, is_featured=False):
    """Validate, then insert Sale + Items in one commit.

    Raises ValidationError for bad payloads, SQLAlchemyError if the insert
    fails (the session is rolled back first, nothing is left behind).
    """
    validate_draft_payload(payload)
    sale = build_sale(owner_id, payload, is_featured=is_featured)
    db.session.add(sale)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(
        f"Sale {sale.id} created for owner {owner_id} "
        f"(featured={sale.is_featured}, items={len(sale.items)})"
    )
    return sale
