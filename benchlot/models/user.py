"""User model.

Buyers and sellers share one table. Seller state mirrors the user's
Stripe Connect Express account:

- stripe_account_status: none | minimal | verification_needed | pending
  | active | rejected (see connect_service.derive_account_status)
- onboarding_progress: not_started | started | in_progress | completed
- verification_requirements: {currently_due, eventually_due,
  pending_verification} as last reported by Stripe
"""

import uuid

from benchlot.extensions import db


class User(db.Model):
    __tablename__ = "users"

    ACCOUNT_STATUSES = [
        "none",
        "minimal",
        "verification_needed",
        "pending",
        "active",
        "rejected",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255))

    # --- Stripe Connect ---
    stripe_account_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # e.g. "acct_1Abc..." (or "mock_acct_..." in local dev)
    stripe_account_status = db.Column(
        db.String(50), nullable=False, default="none"
    )
    stripe_details_submitted = db.Column(db.Boolean, default=False)
    is_seller = db.Column(db.Boolean, default=False)
    verification_requirements = db.Column(db.JSON, nullable=True)
    last_requirements_check = db.Column(db.DateTime(timezone=True), nullable=True)
    onboarding_progress = db.Column(
        db.String(50), nullable=False, default="not_started"
    )
    seller_since = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tools = db.relationship("Tool", back_populates="seller", lazy="dynamic")
    orders = db.relationship("Order", back_populates="user", lazy="dynamic")
    payouts = db.relationship(
        "SellerPayout", back_populates="seller", lazy="dynamic"
    )

    def __repr__(self):
        return f"<User {self.email}>"
