"""Payments blueprint — /api/stripe/payments/*

Checkout. Buyer-facing: Stripe errors surface as a generic message.

Routes:
- POST /api/stripe/payments/create-payment-intent  — PaymentIntent for a cart
- POST /api/stripe/payments/confirm-payment        — write the order once paid
"""

import logging

from flask import Blueprint, jsonify, request

from benchlot.extensions import limiter
from benchlot.services.cart_service import parse_cart_items
from benchlot.services.payment_service import (
    confirm_and_persist,
    create_intent,
    order_to_dict,
)

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/stripe/payments")


@payments_bp.route("/create-payment-intent", methods=["POST"])
@limiter.limit("20 per minute")
def create_payment_intent():
    """Body: {cartItems: [{tool_id, quantity, price}], customerId, paymentMethodId}."""
    data = request.get_json(silent=True) or {}
    lines = parse_cart_items(data.get("cartItems"))

    result = create_intent(
        lines,
        customer_id=data.get("customerId"),
        payment_method_id=data.get("paymentMethodId"),
    )
    return jsonify({
        "clientSecret": result["clientSecret"],
        "paymentIntentId": result["paymentIntentId"],
    })


@payments_bp.route("/confirm-payment", methods=["POST"])
@limiter.limit("20 per minute")
def confirm_payment():
    """Body: {paymentIntentId, cartItems, userId, shippingDetails, sessionId}."""
    data = request.get_json(silent=True) or {}
    lines = parse_cart_items(data.get("cartItems"))

    order = confirm_and_persist(
        data.get("paymentIntentId"),
        lines,
        user_id=data.get("userId"),
        shipping_details=data.get("shippingDetails"),
        session_id=data.get("sessionId"),
    )
    return jsonify({"success": True, "order": order_to_dict(order)})
