"""Sale draft model.

An unpublished, owner-editable listing payload keyed by a unique
draft_key. Created on first save and hard-deleted exactly once when the
draft is published (immediately or by payment finalization). A deleted
draft is what "consumed" means; any later notification that references
its key is a no-op.

payload shape:
    {
        "formData": {title, description, address, city, state, zip_code,
                     lat, lng, date_start, time_start, date_end, time_end,
                     tags, pricing_mode},
        "photos": [url, ...],
        "items": [{name, description, price, category, image_url}, ...],
    }
"""

import uuid

from saleflow.extensions import db


class SaleDraft(db.Model):
    __tablename__ = "sale_drafts"

    STATUSES = ["active", "consumed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    draft_key = db.Column(db.String(64), unique=True, nullable=False)
    title = db.Column(db.String(255), nullable=True)  # denormalized from payload
    status = db.Column(
        db.String(20), nullable=False, default="active"
    )  # active | consumed
    payload = db.Column(db.JSON, nullable=False, default=dict)
    content_hash = db.Column(db.String(64), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="drafts")

    def to_dict(self):
        return {
            "id": self.id,
            "draft_key": self.draft_key,
            "title": self.title,
            "status": self.status,
            "payload": self.payload,
            "content_hash": self.content_hash,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<SaleDraft {self.draft_key} ({self.status})>"
