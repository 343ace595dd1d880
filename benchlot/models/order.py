"""Order models.

- Order: one per checkout whose payment intent reached "succeeded".
  status / payment_status are moved forward by the Stripe webhooks.
- OrderItem: one per cart line, stamped with the seller and the fee split
  at the time of purchase. Never modified afterwards; payouts are computed
  from these rows.
"""

import uuid

from benchlot.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    STATUSES = ["pending", "paid", "processing", "payment_failed"]
    PAYMENT_STATUSES = ["pending", "paid", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )  # null for guest checkout
    total_cents = db.Column(db.Integer, nullable=False)
    payment_intent_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "pi_3Abc..."
    transfer_group = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(50), nullable=False, default="pending")
    payment_status = db.Column(db.String(50), nullable=False, default="pending")
    shipping_address = db.Column(db.JSON, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="orders")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )
    payouts = db.relationship("SellerPayout", back_populates="order")

    def __repr__(self):
        return f"<Order {self.id} ({self.status})>"


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id = db.Column(
        db.String(36),
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tool_id = db.Column(
        db.String(36), db.ForeignKey("tools.id"), nullable=False
    )
    seller_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    platform_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    seller_amount_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    order = db.relationship("Order", back_populates="items")
    tool = db.relationship("Tool")

    @property
    def line_total_cents(self):
        return self.price_cents * self.quantity

    def __repr__(self):
        return f"<OrderItem tool={self.tool_id} seller={self.seller_id}>"
