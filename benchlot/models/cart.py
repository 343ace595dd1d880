"""Cart models.

A cart belongs to a signed-in user (user_id) or to a guest browser
session (session_id, generated client-side). Guest carts are never
shared between sessions; they are merged into the user's cart on login.
"""

import uuid

from benchlot.extensions import db


class Cart(db.Model):
    __tablename__ = "carts"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), unique=True, nullable=True
    )
    session_id = db.Column(db.String(64), unique=True, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    items = db.relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

    def __repr__(self):
        owner = self.user_id or f"session:{self.session_id}"
        return f"<Cart {owner}>"


class CartItem(db.Model):
    __tablename__ = "cart_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    cart_id = db.Column(
        db.String(36),
        db.ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
    )
    tool_id = db.Column(
        db.String(36), db.ForeignKey("tools.id"), nullable=False
    )
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.UniqueConstraint("cart_id", "tool_id", name="uq_cart_items_cart_tool"),
    )

    # --- Relationships ---
    cart = db.relationship("Cart", back_populates="items")
    tool = db.relationship("Tool")

    def __repr__(self):
        return f"<CartItem tool={self.tool_id} x{self.quantity}>"
