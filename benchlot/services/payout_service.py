"""Payout service — split a paid order into per-seller Stripe transfers.

For each seller in an order:
    amount         = sum(price * quantity) over the seller's order items
    platform_fee   = round_half_up(amount * PLATFORM_FEE_BPS / 10000)
    seller_amount  = amount - platform_fee
and one Transfer of seller_amount goes to the seller's connected account,
funded from the buyer's charge (source_transaction) and tagged with the
order's transfer_group.

At most one SellerPayout exists per (order, seller). A seller that already
has a row is skipped, and the transfer itself carries an idempotency key,
so a redelivered webhook can never pay a seller twice. One seller's
failure is recorded on its own row and doesn't stop the others.
"""

import logging

import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError

from benchlot.extensions import db
from benchlot.models.order import OrderItem
from benchlot.models.payout import SellerPayout
from benchlot.models.user import User
from benchlot.money import format_dollars, split_platform_fee
from benchlot.services import email_service
from benchlot.services.stripe_helpers import bind_api_key, field

logger = logging.getLogger(__name__)


def group_order_items(order):
    """Group an order's items by seller: {seller_id: {"amount_cents", "items"}}."""
    items = (
        OrderItem.query
        .filter_by(order_id=order.id)
        .order_by(OrderItem.created_at, OrderItem.id)
        .all()
    )
    groups = {}
    for item in items:
        group = groups.setdefault(item.seller_id, {"amount_cents": 0, "items": []})
        group["amount_cents"] += item.line_total_cents
        group["items"].append(item)
    return groups


def _idempotency_key(order_id, seller_id, attempt=1):
    key = f"payout-{order_id}-{seller_id}"
    return key if attempt == 1 else f"{key}-attempt-{attempt}"


def _create_transfer(order, seller, amount_cents, charge_id, transfer_group, attempt=1):
    """Issue the Stripe transfer. Returns the transfer id."""
    params = {
        "amount": amount_cents,
        "currency": current_app.config["CURRENCY"],
        "destination": seller.stripe_account_id,
        "metadata": {"order_id": order.id, "seller_id": seller.id},
        "idempotency_key": _idempotency_key(order.id, seller.id, attempt),
    }
    if transfer_group:
        params["transfer_group"] = transfer_group
    if charge_id:
        params["source_transaction"] = charge_id

    transfer = stripe.Transfer.create(**params)
    return field(transfer, "id")


def _transfer_to_seller(order, seller_id, amount_cents, charge_id, transfer_group):
    """Pay one seller and record the outcome. Returns the SellerPayout."""
    seller_amount, platform_fee = split_platform_fee(
        amount_cents, current_app.config["PLATFORM_FEE_BPS"]
    )
    payout = SellerPayout(
        seller_id=seller_id,
        order_id=order.id,
        amount_cents=seller_amount,
        platform_fee_cents=platform_fee,
        attempts=1,
    )

    seller = db.session.get(User, seller_id)
    if seller is None or not seller.stripe_account_id:
        logger.warning(f"Seller {seller_id} has no connected Stripe account, payout for order {order.id} not sent")
        payout.status = "failed"
        payout.failure_reason = "Seller has no connected Stripe account"
    elif seller_amount <= 0:
        payout.status = "completed"
    else:
        try:
            payout.stripe_transfer_id = _create_transfer(
                order, seller, seller_amount, charge_id, transfer_group
            )
            payout.status = "completed"
            logger.info(
                f"Transferred {format_dollars(seller_amount)} to seller {seller_id} "
                f"for order {order.id} (fee {format_dollars(platform_fee)})"
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create transfer to seller {seller_id} for order {order.id}: {e}")
            payout.status = "failed"
            payout.failure_reason = str(e)

    db.session.add(payout)
    db.session.flush()
    return payout


def distribute_order_payouts(order, charge_id=None, transfer_group=None):
    """Create one transfer + SellerPayout per seller in the order.

    Sellers that already have a payout row for this order are skipped.
    Returns the list of SellerPayout rows created by this call.
    """
    bind_api_key()
    transfer_group = transfer_group or order.transfer_group or f"order_{order.id}"
    groups = group_order_items(order)

    already_paid = {
        payout.seller_id
        for payout in SellerPayout.query.filter_by(order_id=order.id).all()
    }

    created = []
    for seller_id, group in groups.items():
        if seller_id in already_paid:
            logger.info(f"Payout for seller {seller_id} on order {order.id} already recorded, skipping")
            continue

        try:
            with db.session.begin_nested():
                payout = _transfer_to_seller(
                    order, seller_id, group["amount_cents"], charge_id, transfer_group
                )
        except IntegrityError:
            # A concurrent delivery recorded this seller first
            logger.warning(f"Payout for seller {seller_id} on order {order.id} recorded concurrently, skipping")
            continue
        created.append(payout)

    for payout in created:
        if payout.status == "completed" and payout.stripe_transfer_id:
            email_service.send_payout_processed(payout)

    return created


def retry_failed_payout(payout, charge_id=None):
    """Retry a failed payout's transfer in place. Returns the payout."""
    if payout.status != "failed":
        return payout

    bind_api_key()
    order = payout.order
    seller = db.session.get(User, payout.seller_id)
    payout.attempts = (payout.attempts or 1) + 1

    if seller is None or not seller.stripe_account_id:
        payout.failure_reason = "Seller has no connected Stripe account"
        db.session.flush()
        return payout

    try:
        payout.stripe_transfer_id = _create_transfer(
            order,
            seller,
            payout.amount_cents,
            charge_id,
            order.transfer_group or f"order_{order.id}",
            attempt=payout.attempts,
        )
        payout.status = "completed"
        payout.failure_reason = None
        logger.info(f"Retried payout {payout.id}: transferred {format_dollars(payout.amount_cents)} to seller {seller.id}")
    except stripe.StripeError as e:
        logger.error(f"Retry of payout {payout.id} failed: {e}")
        payout.failure_reason = str(e)

    db.session.flush()
    if payout.status == "completed":
        email_service.send_payout_processed(payout)
    return payout


def list_seller_payouts(seller_id):
    payouts = (
        SellerPayout.query
        .filter_by(seller_id=seller_id)
        .order_by(SellerPayout.created_at.desc())
        .all()
    )
    completed = [p for p in payouts if p.status == "completed"]
    return {
        "payouts": [payout_to_dict(p) for p in payouts],
        "total_paid_cents": sum(p.amount_cents for p in completed),
        "total_paid": format_dollars(sum(p.amount_cents for p in completed)),
        "failed_count": len(payouts) - len(completed),
    }


def payout_to_dict(payout):
    return {
        "id": payout.id,
        "order_id": payout.order_id,
        "seller_id": payout.seller_id,
        "amount_cents": payout.amount_cents,
        "amount": format_dollars(payout.amount_cents),
        "platform_fee_cents": payout.platform_fee_cents,
        "platform_fee": format_dollars(payout.platform_fee_cents),
        "stripe_transfer_id": payout.stripe_transfer_id,
        "status": payout.status,
        "failure_reason": payout.failure_reason,
        "attempts": payout.attempts,
        "created_at": payout.created_at.isoformat() if payout.created_at else None,
    }
