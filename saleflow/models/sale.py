"""Sale + Item models.

A Sale is the published, publicly visible listing. It is created exactly
once per draft, either by the immediate publish path or by the payment
finalizer (which sets is_featured from the promotion tier).
"""

import uuid

from saleflow.extensions import db


class Sale(db.Model):
    __tablename__ = "sales"

    PRICING_MODES = ["negotiable", "firm", "best_offer", "free"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(255), nullable=False)
    state = db.Column(db.String(64), nullable=False)
    zip_code = db.Column(db.String(16), nullable=True)
    lat = db.Column(db.Float, nullable=False)
    lng = db.Column(db.Float, nullable=False)
    date_start = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    time_start = db.Column(db.String(5), nullable=False)   # HH:MM, 30-min steps
    date_end = db.Column(db.String(10), nullable=True)
    time_end = db.Column(db.String(5), nullable=True)
    cover_image_url = db.Column(db.String(1000), nullable=True)
    images = db.Column(db.JSON, nullable=True)  # photos after the cover
    tags = db.Column(db.JSON, default=list)
    pricing_mode = db.Column(db.String(20), nullable=False, default="negotiable")
    privacy_mode = db.Column(db.String(20), nullable=False, default="exact")
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default="published")
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    owner = db.relationship("User", back_populates="sales")
    items = db.relationship(
        "Item",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="Item.position",
    )

    def __repr__(self):
        return f"<Sale {self.title!r} featured={self.is_featured}>"


class Item(db.Model):
    __tablename__ = "items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    sale_id = db.Column(
        db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)
    category = db.Column(db.String(100), nullable=True)
    image_url = db.Column(db.String(1000), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    sale = db.relationship("Sale", back_populates="items")

    def __repr__(self):
        return f"<Item {self.name!r}>"
