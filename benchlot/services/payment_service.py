"""Payment service — checkout payment intents and order creation.

Responsible for:
- Creating the PaymentIntent for a cart (amount in cents, transfer_group)
- Confirming a succeeded intent and writing the order, its items, and the
  cart clear in a single database transaction
- Back-filling the real order id into the intent's metadata

Seller transfers normally happen when Stripe delivers
payment_intent.succeeded (see payout_service / webhook_service). The one
exception is an event that arrived before the order was written: the
order is then settled right after it commits.
"""

import logging
import time
import uuid

import stripe
from flask import current_app

from benchlot.errors import PaymentNotCompleted, ProviderError, ValidationError
from benchlot.extensions import db
from benchlot.models.order import Order, OrderItem
from benchlot.money import format_dollars, split_platform_fee
from benchlot.services import email_service
from benchlot.services.cart_service import (
    clear_cart,
    compute_intent_amount,
    group_by_seller,
)
from benchlot.services.stripe_helpers import bind_api_key, field
from benchlot.services.webhook_service import settle_paid_order, succeeded_event_recorded

logger = logging.getLogger(__name__)

# Buyer-facing: don't leak Stripe's wording to shoppers.
CHECKOUT_FAILED_MESSAGE = "Failed to process order"


def new_transfer_group():
    return f"order_{uuid.uuid4().hex}"


# ──────────────────────────────────────────────
# Payment intents
# ──────────────────────────────────────────────

def create_intent(lines, customer_id=None, payment_method_id=None):
    """Create a PaymentIntent for the cart.

    Fails fast (ValidationError) if any tool in the cart can't be resolved
    to a seller. Returns {"clientSecret", "paymentIntentId", "amount"}.
    """
    if not lines:
        raise ValidationError("Cart is empty")

    groups = group_by_seller(lines)
    amount_cents = compute_intent_amount(lines)
    if amount_cents <= 0:
        raise ValidationError("Cart total must be greater than zero")

    transfer_group = new_transfer_group()
    params = {
        "amount": amount_cents,
        "currency": current_app.config["CURRENCY"],
        # Placeholder until confirm_and_persist writes the real order id
        "metadata": {
            "order_id": f"order_{int(time.time() * 1000)}",
            "transfer_group": transfer_group,
            "seller_count": str(len(groups)),
        },
        "transfer_group": transfer_group,
    }
    if customer_id:
        params["customer"] = customer_id
    if payment_method_id:
        params["payment_method"] = payment_method_id

    bind_api_key()
    try:
        intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError as e:
        logger.error(f"Failed to create payment intent: {e}")
        raise ProviderError(CHECKOUT_FAILED_MESSAGE)

    logger.info(
        f"Created payment intent {field(intent, 'id')} for {amount_cents} cents "
        f"across {len(groups)} seller(s)"
    )
    return {
        "clientSecret": field(intent, "client_secret"),
        "paymentIntentId": field(intent, "id"),
        "amount": amount_cents,
    }


# ──────────────────────────────────────────────
# Order creation
# ──────────────────────────────────────────────

def _build_order_items(order, groups, fee_bps):
    items = []
    for seller_id, group in groups.items():
        for line in group["items"]:
            seller_amount, platform_fee = split_platform_fee(
                line.line_total_cents, fee_bps
            )
            items.append(OrderItem(
                order_id=order.id,
                tool_id=line.tool_id,
                seller_id=seller_id,
                price_cents=line.price_cents,
                quantity=line.quantity,
                platform_fee_cents=platform_fee,
                seller_amount_cents=seller_amount,
            ))
    return items


def confirm_and_persist(intent_id, lines, user_id=None, shipping_details=None,
                        session_id=None):
    """Write the order for a succeeded PaymentIntent.

    - Intent not succeeded: PaymentNotCompleted, nothing written.
    - Order already exists for the intent: returned as-is.
    - Cart total differs from what Stripe charged: ValidationError,
      nothing written.
    - Otherwise order + items + cart clear commit together or not at all.

    Returns the Order.
    """
    if not intent_id:
        raise ValidationError("Missing paymentIntentId")

    bind_api_key()
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as e:
        logger.error(f"Failed to retrieve payment intent {intent_id}: {e}")
        raise ProviderError(CHECKOUT_FAILED_MESSAGE)

    intent_status = field(intent, "status")
    if intent_status != "succeeded":
        logger.info(f"Payment intent {intent_id} is {intent_status}, not creating order")
        raise PaymentNotCompleted(intent_status=intent_status)

    existing = Order.query.filter_by(payment_intent_id=intent_id).first()
    if existing:
        logger.info(f"Order {existing.id} already exists for payment intent {intent_id}")
        return existing

    groups = group_by_seller(lines)
    charged_cents = field(intent, "amount")
    cart_cents = compute_intent_amount(lines)
    if cart_cents != charged_cents:
        logger.warning(
            f"Cart total {cart_cents} does not match amount {charged_cents} "
            f"charged on payment intent {intent_id}, not creating order"
        )
        raise ValidationError("Cart does not match the amount charged")

    metadata = field(intent, "metadata") or {}
    transfer_group = field(intent, "transfer_group") or field(metadata, "transfer_group")

    try:
        order = Order(
            id=str(uuid.uuid4()),
            user_id=user_id,
            total_cents=charged_cents,
            payment_intent_id=intent_id,
            transfer_group=transfer_group,
            status="paid",
            payment_status="paid",
            shipping_address=shipping_details,
        )
        db.session.add(order)
        db.session.add_all(
            _build_order_items(order, groups, current_app.config["PLATFORM_FEE_BPS"])
        )
        clear_cart(user_id=user_id, session_id=session_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Failed to write order for payment intent {intent_id}", exc_info=True)
        raise

    logger.info(
        f"Created order {order.id} ({format_dollars(order.total_cents)}) "
        f"for payment intent {intent_id}"
    )

    # Metadata is for auditability only; the webhook can also find the
    # order by payment_intent_id, so a failure here is not fatal.
    try:
        stripe.PaymentIntent.modify(intent_id, metadata={"order_id": order.id})
    except stripe.StripeError as e:
        logger.warning(f"Could not tag payment intent {intent_id} with order {order.id}: {e}")

    email_service.send_order_confirmation(order)
    email_service.send_product_sold(order)

    # payment_intent.succeeded can beat the order to the database; if it
    # did, the webhook found nothing to pay out and sellers are paid here.
    if succeeded_event_recorded(intent_id):
        try:
            settle_paid_order(order, intent)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.error(
                f"Failed to settle order {order.id} after early payment_intent.succeeded; "
                f"run `flask settle-order {order.id}`",
                exc_info=True,
            )

    return order


def order_to_dict(order):
    return {
        "id": order.id,
        "user_id": order.user_id,
        "total_cents": order.total_cents,
        "total_amount": format_dollars(order.total_cents),
        "payment_intent_id": order.payment_intent_id,
        "transfer_group": order.transfer_group,
        "status": order.status,
        "payment_status": order.payment_status,
        "shipping_address": order.shipping_address,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "items": [
            {
                "id": item.id,
                "tool_id": item.tool_id,
                "seller_id": item.seller_id,
                "quantity": item.quantity,
                "price_cents": item.price_cents,
                "price": format_dollars(item.price_cents),
                "platform_fee_cents": item.platform_fee_cents,
                "seller_amount_cents": item.seller_amount_cents,
            }
            for item in order.items
        ],
    }
