"""Tests for the operator CLI commands.

Covers:
- reconcile-sellers
- purge-stripe-tokens
- retry-failed-payouts
- settle-order
"""

from unittest.mock import patch

import stripe

from benchlot.extensions import db
from benchlot.models.order import Order, OrderItem
from benchlot.models.payout import SellerPayout
from benchlot.models.user import User


def _paid_order(seed_data):
    order = Order(
        user_id=seed_data["buyer_id"],
        total_cents=10000,
        payment_intent_id="pi_cli_123",
        transfer_group="order_tg_cli",
        status="paid",
        payment_status="paid",
    )
    db.session.add(order)
    db.session.flush()
    db.session.add(OrderItem(
        order_id=order.id,
        tool_id=seed_data["tool_a_id"],
        seller_id=seed_data["seller_x_id"],
        price_cents=10000,
        quantity=1,
        platform_fee_cents=500,
        seller_amount_cents=9500,
    ))
    db.session.commit()
    return order.id


PAID_INTENT = {
    "id": "pi_cli_123",
    "status": "succeeded",
    "transfer_group": "order_tg_cli",
    "latest_charge": "ch_cli_123",
}


class TestReconcileSellers:

    @patch("benchlot.services.connect_service.stripe.Account.retrieve")
    def test_updates_every_connected_seller(self, mock_retrieve, app, seed_data):
        mock_retrieve.side_effect = lambda account_id: {
            "id": account_id,
            "details_submitted": True,
            "charges_enabled": True,
            "payouts_enabled": account_id == "acct_seller_x",
            "requirements": {},
        }

        result = app.test_cli_runner().invoke(args=["reconcile-sellers"])

        assert result.exit_code == 0
        assert "Reconciled 2/2 seller(s)." in result.output
        assert db.session.get(User, seed_data["seller_x_id"]).stripe_account_status == "active"
        assert db.session.get(User, seed_data["seller_y_id"]).stripe_account_status == "pending"

    @patch("benchlot.services.connect_service.stripe.Account.retrieve")
    def test_stripe_error_reported_per_seller(self, mock_retrieve, app, seed_data):
        mock_retrieve.side_effect = stripe.APIConnectionError("network down")

        result = app.test_cli_runner().invoke(
            args=["reconcile-sellers", "--user-id", seed_data["seller_x_id"]]
        )

        assert result.exit_code == 0
        assert "ERROR" in result.output
        assert "Reconciled 0/1 seller(s)." in result.output


def test_purge_stripe_tokens(app, seed_data):
    result = app.test_cli_runner().invoke(args=["purge-stripe-tokens"])
    assert result.exit_code == 0
    assert "Purged 0 onboarding token(s)." in result.output


class TestRetryFailedPayouts:

    @patch("benchlot.services.payout_service.stripe.Transfer.create")
    @patch("stripe.PaymentIntent.retrieve")
    def test_retry_uses_new_idempotency_key(self, mock_intent, mock_transfer, app, seed_data):
        order_id = _paid_order(seed_data)
        db.session.add(SellerPayout(
            order_id=order_id,
            seller_id=seed_data["seller_x_id"],
            amount_cents=9500,
            platform_fee_cents=500,
            status="failed",
            failure_reason="Insufficient funds",
        ))
        db.session.commit()
        mock_intent.return_value = PAID_INTENT
        mock_transfer.return_value = {"id": "tr_retry_1"}

        result = app.test_cli_runner().invoke(args=["retry-failed-payouts"])

        assert result.exit_code == 0
        payout = SellerPayout.query.one()
        assert payout.status == "completed"
        assert payout.attempts == 2
        assert payout.failure_reason is None
        assert payout.stripe_transfer_id == "tr_retry_1"

        kwargs = mock_transfer.call_args.kwargs
        assert kwargs["idempotency_key"] == f"payout-{order_id}-{seed_data['seller_x_id']}-attempt-2"
        assert kwargs["source_transaction"] == "ch_cli_123"

    def test_nothing_to_retry(self, app, seed_data):
        result = app.test_cli_runner().invoke(args=["retry-failed-payouts"])
        assert "No failed payouts to retry." in result.output


class TestSettleOrder:

    @patch("benchlot.services.payout_service.stripe.Transfer.create")
    @patch("stripe.PaymentIntent.retrieve")
    def test_settles_once(self, mock_intent, mock_transfer, app, seed_data):
        order_id = _paid_order(seed_data)
        mock_intent.return_value = PAID_INTENT
        mock_transfer.return_value = {"id": "tr_settle_1"}
        runner = app.test_cli_runner()

        result = runner.invoke(args=["settle-order", order_id])
        assert result.exit_code == 0
        assert "1 new payout(s)" in result.output
        assert db.session.get(Order, order_id).status == "processing"

        result = runner.invoke(args=["settle-order", order_id])
        assert "0 new payout(s)" in result.output
        assert mock_transfer.call_count == 1

    def test_unknown_order(self, app, seed_data):
        result = app.test_cli_runner().invoke(args=["settle-order", "missing"])
        assert "not found" in result.output
