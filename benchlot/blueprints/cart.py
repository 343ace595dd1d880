"""Cart blueprint — /api/cart/*

Persisted carts, addressed by ?userId= for signed-in buyers or
?sessionId= for guests.

Routes:
- GET    /api/cart                  — current cart
- POST   /api/cart/items            — add a tool {toolId, quantity}
- DELETE /api/cart/items/<tool_id>  — remove a tool
- POST   /api/cart/merge            — move a guest cart into a user cart on login
"""

from flask import Blueprint, jsonify, request

from benchlot.errors import ValidationError
from benchlot.extensions import db
from benchlot.services import cart_service

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _owner(data=None):
    data = data or {}
    user_id = request.args.get("userId") or data.get("userId")
    session_id = request.args.get("sessionId") or data.get("sessionId")
    if not user_id and not session_id:
        raise ValidationError("Missing userId or sessionId")
    return user_id, session_id


@cart_bp.route("", methods=["GET"])
def get_cart():
    user_id, session_id = _owner()
    cart = cart_service.get_cart(user_id=user_id, session_id=session_id)
    return jsonify(cart_service.cart_to_dict(cart))


@cart_bp.route("/items", methods=["POST"])
def add_item():
    data = request.get_json(silent=True) or {}
    user_id, session_id = _owner(data)

    tool_id = data.get("toolId") or data.get("tool_id")
    if not tool_id:
        raise ValidationError("Missing toolId")
    try:
        quantity = cart_service.parse_quantity(data.get("quantity", 1))
    except ValueError:
        raise ValidationError("Invalid quantity")

    cart = cart_service.get_cart(user_id=user_id, session_id=session_id, create=True)
    cart_service.add_item(cart, tool_id, quantity)
    db.session.commit()
    return jsonify(cart_service.cart_to_dict(cart)), 201


@cart_bp.route("/items/<tool_id>", methods=["DELETE"])
def remove_item(tool_id):
    user_id, session_id = _owner()
    cart = cart_service.get_cart(user_id=user_id, session_id=session_id)
    if cart is not None:
        cart_service.remove_item(cart, tool_id)
        db.session.commit()
    return jsonify(cart_service.cart_to_dict(cart))


@cart_bp.route("/merge", methods=["POST"])
def merge():
    data = request.get_json(silent=True) or {}
    user_id = data.get("userId")
    session_id = data.get("sessionId")
    if not user_id or not session_id:
        raise ValidationError("Missing userId or sessionId")

    cart = cart_service.merge_guest_cart(session_id, user_id)
    db.session.commit()
    return jsonify(cart_service.cart_to_dict(cart))
