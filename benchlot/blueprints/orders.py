"""Orders blueprint — /api/orders/*

Read-only order views for buyers.
"""

from flask import Blueprint, jsonify, request

from benchlot.errors import NotFoundError, ValidationError
from benchlot.extensions import db
from benchlot.models.order import Order
from benchlot.services.payment_service import order_to_dict

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("/<order_id>", methods=["GET"])
def get_order(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return jsonify(order_to_dict(order))


@orders_bp.route("", methods=["GET"])
def list_orders():
    """Order history for ?userId=, newest first."""
    user_id = request.args.get("userId")
    if not user_id:
        raise ValidationError("Missing userId parameter")

    orders = (
        Order.query
        .filter_by(user_id=user_id)
        .order_by(Order.created_at.desc())
        .all()
    )
    return jsonify({"orders": [order_to_dict(o) for o in orders]})
