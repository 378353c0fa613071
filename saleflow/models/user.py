"""User model.

Stores authentication credentials and profile info. Every draft,
promotion and sale is owned by a user.
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from saleflow.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    drafts = db.relationship("SaleDraft", back_populates="user", lazy="dynamic")
    sales = db.relationship("Sale", back_populates="owner", lazy="dynamic")
    audit_events = db.relationship(
        "AuditEvent", back_populates="actor", lazy="dynamic"
    )

    def __repr__(self):
        return f"<User {self.email}>"
