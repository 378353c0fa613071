"""Metadata exchanged with Stripe for promoted drafts.

Stripe metadata is a flat string->string bag. We only ever write one
shape into it, DraftPromotionMetadata, and decode it defensively on the
way back: anything missing or unknown raises FinalizationError instead
of blowing up the webhook handler.

A sale id is never part of this bag; no sale exists when the session is
created.
"""

from dataclasses import dataclass

from saleflow.errors import FinalizationError
from saleflow.models.promotion import Promotion

FEATURED_TIERS = frozenset(Promotion.TIERS)


@dataclass(frozen=True)
class DraftPromotionMetadata:
    draft_key: str
    promotion_id: str | None
    tier: str

    def to_stripe(self):
        data = {
            "draft_key": self.draft_key,
            "tier": self.tier,
            "wants_promotion": "true",
        }
        if self.promotion_id:
            data["promotion_id"] = self.promotion_id
        return data

    @property
    def is_featured(self):
        return self.tier in FEATURED_TIERS

    @classmethod
    def from_stripe(cls, metadata):
        """Decode a Stripe metadata bag.

        promotion_id is optional: sessions created before promotions were
        recorded up front only carry draft_key.
        """
        if metadata is None:
            metadata = {}
        if not hasattr(metadata, "get"):
            raise FinalizationError(
                "Payment metadata is not a mapping", code="INVALID_METADATA"
            )

        draft_key = _clean(metadata.get("draft_key"))
        if not draft_key:
            raise FinalizationError(
                "Payment metadata missing draft_key", code="INVALID_METADATA"
            )

        wants_promotion = _clean(metadata.get("wants_promotion"))
        if wants_promotion is not None and wants_promotion.lower() != "true":
            raise FinalizationError(
                "Payment metadata is not a promotion", code="INVALID_METADATA"
            )

        tier = _clean(metadata.get("tier")) or "featured_week"
        if tier not in FEATURED_TIERS:
            raise FinalizationError(
                f"Unknown promotion tier: {tier}", code="INVALID_METADATA"
            )

        return cls(
            draft_key=draft_key,
            promotion_id=_clean(metadata.get("promotion_id")),
            tier=tier,
        )


def _clean(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise FinalizationError(
            "Payment metadata values must be strings", code="INVALID_METADATA"
        )
    value = value.strip()
    return value or None
