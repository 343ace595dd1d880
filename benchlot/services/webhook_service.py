"""Webhook service — Stripe signature verification and event dispatch.

Responsible for:
- Verifying the Stripe-Signature header against STRIPE_WEBHOOK_SECRET
- Idempotency via the stripe_events table (Stripe delivers at least once)
- Dispatching to event-specific handlers:
    payment_intent.succeeded       order -> processing, fan out seller payouts
    payment_intent.payment_failed  order -> payment_failed
    account.updated                seller status from the connected account
- Unknown event types are acknowledged and recorded, never retried
"""

import logging

import stripe
from flask import current_app

from benchlot.extensions import db
from benchlot.models.order import Order
from benchlot.models.stripe_event import StripeEvent
from benchlot.models.user import User
from benchlot.services.connect_service import apply_account_state, is_fully_onboarded
from benchlot.services.payout_service import distribute_order_payouts
from benchlot.services.stripe_helpers import extract_charge_id, field

logger = logging.getLogger(__name__)


def verify_webhook_signature(payload, sig_header):
    """Verify Stripe webhook signature and construct the event.

    Returns the verified Stripe event object.
    Raises stripe.SignatureVerificationError on invalid signature and
    ValueError on a body that is not JSON.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)


def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    Idempotency: checks stripe_events table before processing.
    If the event was already processed, returns immediately.

    Returns (success: bool, message: str).
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Idempotency check ---
    existing = StripeEvent.query.filter_by(
        stripe_event_id=event_id
    ).first()
    if existing:
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    # --- Route to handler ---
    handlers = {
        "payment_intent.succeeded": _handle_payment_succeeded,
        "payment_intent.payment_failed": _handle_payment_failed,
        "account.updated": _handle_account_updated,
    }

    handler = handlers.get(event_type)
    if handler:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            db.session.rollback()
            return False, str(e)
    else:
        logger.info(f"Unhandled event type: {event_type}")

    # --- Record event for idempotency ---
    stripe_event = StripeEvent(
        stripe_event_id=event_id,
        event_type=event_type,
        object_id=field(event["data"]["object"], "id"),
    )
    db.session.add(stripe_event)
    db.session.commit()

    return True, "processed"


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def find_order_for_intent(payment_intent):
    """Resolve the order behind a PaymentIntent.

    metadata.order_id is written after the order commits, so an early
    event may still carry the checkout placeholder; fall back to the
    intent id, which is stored on the order row.
    """
    metadata = field(payment_intent, "metadata") or {}
    order_id = field(metadata, "order_id")

    order = db.session.get(Order, order_id) if order_id else None
    if order is None:
        order = Order.query.filter_by(
            payment_intent_id=field(payment_intent, "id")
        ).first()
    return order


def _handle_payment_succeeded(event):
    """Handle payment_intent.succeeded.

    Moves the order to processing/paid, then pays each seller their
    share net of the platform fee.
    """
    payment_intent = event["data"]["object"]
    intent_id = field(payment_intent, "id")

    order = find_order_for_intent(payment_intent)
    if order is None:
        # Recorded with the intent id; confirm_and_persist settles the
        # order as soon as it is written.
        logger.warning(
            f"payment_intent.succeeded: no order found for intent {intent_id} yet, "
            f"payouts deferred to order creation"
        )
        return

    payouts = settle_paid_order(order, payment_intent)
    failed = [p for p in payouts if p.status == "failed"]
    logger.info(
        f"Order {order.id} paid via {intent_id}: {len(payouts)} payout(s) recorded, "
        f"{len(failed)} failed"
    )


def settle_paid_order(order, payment_intent):
    """Move a paid order to processing and pay out its sellers (flush only).

    Returns the SellerPayout rows created by this call.
    """
    order.status = "processing"
    order.payment_status = "paid"
    db.session.flush()

    charge_id = extract_charge_id(payment_intent)
    transfer_group = field(payment_intent, "transfer_group") or order.transfer_group
    return distribute_order_payouts(order, charge_id=charge_id, transfer_group=transfer_group)


def succeeded_event_recorded(intent_id):
    """True if payment_intent.succeeded for this intent was already handled."""
    existing = StripeEvent.query.filter_by(
        event_type="payment_intent.succeeded",
        object_id=intent_id,
    ).first()
    return existing is not None


def _handle_payment_failed(event):
    """Handle payment_intent.payment_failed.

    Marks the order failed. Order items are left untouched.
    """
    payment_intent = event["data"]["object"]

    order = find_order_for_intent(payment_intent)
    if order is None:
        logger.warning(
            f"payment_intent.payment_failed: no order found for intent {field(payment_intent, 'id')}"
        )
        return

    order.status = "payment_failed"
    order.payment_status = "failed"
    db.session.flush()
    logger.info(f"Order {order.id} marked payment_failed")


def _handle_account_updated(event):
    """Handle account.updated for a seller's connected account.

    Status comes from the shared derivation; is_seller follows full
    onboarding (details submitted, charges and payouts enabled).
    """
    account = event["data"]["object"]
    account_id = field(account, "id")

    user = User.query.filter_by(stripe_account_id=account_id).first()
    if not user:
        logger.warning(f"account.updated: no user found for Stripe account {account_id}")
        return

    status = apply_account_state(user, account)
    user.is_seller = is_fully_onboarded(account)
    db.session.flush()
    logger.info(f"Seller {user.id} account {account_id} is now {status} (is_seller={user.is_seller})")
