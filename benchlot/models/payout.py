"""Seller payout model.

One row per (order, seller) once a payment has succeeded. The unique
constraint is what makes webhook redelivery safe: a second
payment_intent.succeeded for the same order finds the row and skips the
transfer instead of paying the seller twice.

status: completed | failed. Failed rows keep the reason and are only
retried via `flask retry-failed-payouts`.
"""

import uuid

from benchlot.extensions import db


class SellerPayout(db.Model):
    __tablename__ = "seller_payouts"

    STATUSES = ["completed", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    seller_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id"), nullable=False
    )
    amount_cents = db.Column(db.Integer, nullable=False)  # seller's net share
    platform_fee_cents = db.Column(db.Integer, nullable=False)
    stripe_transfer_id = db.Column(db.String(255), unique=True, nullable=True)
    status = db.Column(db.String(50), nullable=False)
    failure_reason = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "order_id", "seller_id", name="uq_seller_payouts_order_seller"
        ),
    )

    # --- Relationships ---
    seller = db.relationship("User", back_populates="payouts")
    order = db.relationship("Order", back_populates="payouts")

    def __repr__(self):
        return f"<SellerPayout order={self.order_id} seller={self.seller_id} ({self.status})>"
