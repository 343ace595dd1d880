"""Cart service — checkout cart lines and persisted buyer carts.

Responsible for:
- Validating the cart lines a client sends at checkout (parse_cart_items)
- Grouping lines by the seller who owns each tool (group_by_seller)
- Totalling the payment intent amount in integer cents
- The carts / cart_items tables: one cart per user or guest session
"""

import logging
from collections import namedtuple

from benchlot.errors import NotFoundError, ValidationError
from benchlot.extensions import db
from benchlot.models.cart import Cart, CartItem
from benchlot.models.tool import Tool
from benchlot.money import format_dollars, to_cents

logger = logging.getLogger(__name__)


class CartLine(namedtuple("CartLine", "tool_id quantity price_cents seller_id")):
    """One checkout line. seller_id is filled in by group_by_seller()."""

    __slots__ = ()

    @property
    def line_total_cents(self):
        return self.price_cents * self.quantity


# ──────────────────────────────────────────────
# Checkout lines
# ──────────────────────────────────────────────

def parse_quantity(value):
    """Positive whole-number quantity from JSON input.

    Accepts 2, 2.0 and "2". Rejects booleans, 2.7, "2.7" and anything
    below 1 with ValueError.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Invalid quantity: {value!r}")
        value = int(value)
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid quantity: {value!r}")
    if quantity < 1:
        raise ValueError(f"Invalid quantity: {value!r}")
    return quantity


def parse_cart_items(raw_items):
    """Validate the cartItems array from a checkout request.

    Each item needs tool_id, a positive integer quantity, and a
    non-negative dollar price. Returns a list of CartLine.
    Raises ValidationError on the first bad line.
    """
    if not isinstance(raw_items, list) or len(raw_items) == 0:
        raise ValidationError("Cart is empty")

    lines = []
    for index, item in enumerate(raw_items):
        if not isinstance(item, dict):
            raise ValidationError(f"Cart item {index} is not an object")

        tool_id = item.get("tool_id")
        if not tool_id:
            raise ValidationError(f"Cart item {index} is missing tool_id")

        try:
            quantity = parse_quantity(item.get("quantity", 1))
        except ValueError:
            raise ValidationError(f"Cart item {index} has an invalid quantity")

        try:
            price_cents = to_cents(item.get("price"))
        except ValueError:
            raise ValidationError(f"Cart item {index} has an invalid price")
        if price_cents < 0:
            raise ValidationError(f"Cart item {index} has an invalid price")

        lines.append(CartLine(str(tool_id), quantity, price_cents, None))

    return lines


def group_by_seller(lines):
    """Group checkout lines by seller.

    Returns {seller_id: {"amount_cents": int, "items": [CartLine, ...]}}
    in first-seen order, with each CartLine's seller_id filled in.
    Raises ValidationError if any tool can't be found.
    """
    tool_ids = {line.tool_id for line in lines}
    tools = {
        tool.id: tool
        for tool in Tool.query.filter(Tool.id.in_(tool_ids)).all()
    }

    groups = {}
    for line in lines:
        tool = tools.get(line.tool_id)
        if tool is None:
            logger.warning(f"Checkout references unknown tool {line.tool_id}")
            raise ValidationError("Error fetching tool information")

        group = groups.setdefault(tool.seller_id, {"amount_cents": 0, "items": []})
        group["amount_cents"] += line.line_total_cents
        group["items"].append(line._replace(seller_id=tool.seller_id))

    return groups


def compute_intent_amount(lines):
    """Total charge for the cart, in integer cents."""
    return sum(line.line_total_cents for line in lines)


# ──────────────────────────────────────────────
# Persisted carts
# ──────────────────────────────────────────────

def get_cart(user_id=None, session_id=None, create=False):
    """Find the cart for a user or guest session.

    Returns None when there is no cart and create is False.
    """
    if not user_id and not session_id:
        raise ValidationError("Missing userId or sessionId")

    if user_id:
        cart = Cart.query.filter_by(user_id=user_id).first()
    else:
        cart = Cart.query.filter_by(session_id=session_id).first()

    if cart is None and create:
        cart = Cart(user_id=user_id or None, session_id=None if user_id else session_id)
        db.session.add(cart)
        db.session.flush()
    return cart


def add_item(cart, tool_id, quantity=1):
    """Add a tool to the cart at its listed price, or bump its quantity."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    tool = db.session.get(Tool, tool_id)
    if tool is None:
        raise NotFoundError("Tool not found")
    if tool.is_sold:
        raise ValidationError("This tool has already been sold")
    if cart.user_id and cart.user_id == tool.seller_id:
        raise ValidationError("You cannot buy your own listing")

    item = CartItem.query.filter_by(cart_id=cart.id, tool_id=tool.id).first()
    if item:
        item.quantity += quantity
    else:
        item = CartItem(
            cart_id=cart.id,
            tool_id=tool.id,
            quantity=quantity,
            price_cents=tool.price_cents,
        )
        db.session.add(item)

    db.session.flush()
    return item


def remove_item(cart, tool_id):
    """Remove a tool from the cart. Returns True if something was removed."""
    item = CartItem.query.filter_by(cart_id=cart.id, tool_id=tool_id).first()
    if item is None:
        return False
    db.session.delete(item)
    db.session.flush()
    return True


def clear_cart(user_id=None, session_id=None):
    """Empty a cart (flush only; the caller owns the transaction)."""
    if not user_id and not session_id:
        return 0
    cart = get_cart(user_id=user_id, session_id=session_id)
    if cart is None:
        return 0

    removed = len(cart.items)
    cart.items.clear()
    db.session.flush()
    return removed


def merge_guest_cart(session_id, user_id):
    """Move a guest session's items into the user's cart, then drop the guest cart."""
    guest = get_cart(session_id=session_id)
    user_cart = get_cart(user_id=user_id, create=True)
    if guest is None:
        return user_cart

    for guest_item in list(guest.items):
        existing = CartItem.query.filter_by(
            cart_id=user_cart.id, tool_id=guest_item.tool_id
        ).first()
        if existing:
            existing.quantity += guest_item.quantity
        else:
            db.session.add(CartItem(
                cart_id=user_cart.id,
                tool_id=guest_item.tool_id,
                quantity=guest_item.quantity,
                price_cents=guest_item.price_cents,
            ))

    db.session.delete(guest)
    db.session.flush()
    logger.info(f"Merged guest cart {session_id} into cart for user {user_id}")
    return user_cart


def cart_to_dict(cart):
    items = cart.items if cart else []
    subtotal = sum(item.price_cents * item.quantity for item in items)
    return {
        "id": cart.id if cart else None,
        "items": [
            {
                "tool_id": item.tool_id,
                "name": item.tool.name if item.tool else None,
                "seller_id": item.tool.seller_id if item.tool else None,
                "quantity": item.quantity,
                "price_cents": item.price_cents,
                "price": format_dollars(item.price_cents),
            }
            for item in items
        ],
        "item_count": sum(item.quantity for item in items),
        "subtotal_cents": subtotal,
        "subtotal": format_dollars(subtotal),
    }
