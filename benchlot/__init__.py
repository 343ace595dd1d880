import os
import logging

import click
import stripe
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from benchlot.config import config_by_name
from benchlot.errors import BenchlotError
from benchlot.extensions import db, migrate, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    # A payments service without its Stripe keys must not start.
    if config_name != "testing":
        config_by_name[config_name].validate()

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from benchlot import models  # noqa: F401

    # --- Register blueprints ---
    from benchlot.blueprints.webhooks import webhooks_bp
    from benchlot.blueprints.connect import connect_bp
    from benchlot.blueprints.payments import payments_bp
    from benchlot.blueprints.orders import orders_bp
    from benchlot.blueprints.cart import cart_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(connect_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cart_bp)

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok"})

    # --- Error handlers ---
    @app.errorhandler(BenchlotError)
    def handle_benchlot_error(e):
        if e.status_code >= 500:
            app.logger.error(f"{type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("reconcile-sellers")
    @click.option("--user-id", default=None, help="Only reconcile this user.")
    def reconcile_sellers(user_id):
        """Re-read connected accounts from Stripe and store their status.

        Covers account.updated webhooks that were missed or arrived while
        the service was down.

        Usage:
            flask reconcile-sellers
            flask reconcile-sellers --user-id <uuid>
        """
        from benchlot.models.user import User
        from benchlot.services.connect_service import reconcile

        query = User.query.filter(User.stripe_account_id.isnot(None))
        if user_id:
            query = query.filter(User.id == user_id)

        users = query.all()
        if not users:
            click.echo("No sellers with a Stripe account found.")
            return

        failures = 0
        for user in users:
            try:
                status = reconcile(user)
                click.echo(f"  {user.email}: {user.stripe_account_id} -> {status}")
            except BenchlotError as e:
                db.session.rollback()
                failures += 1
                click.echo(f"  {user.email}: ERROR {e.message}")

        click.echo(f"Reconciled {len(users) - failures}/{len(users)} seller(s).")

    @app.cli.command("purge-stripe-tokens")
    def purge_stripe_tokens():
        """Delete expired and used onboarding refresh tokens."""
        from benchlot.services.token_service import purge_stale_tokens

        removed = purge_stale_tokens()
        click.echo(f"Purged {removed} onboarding token(s).")

    @app.cli.command("retry-failed-payouts")
    @click.option("--order-id", default=None, help="Only retry payouts for this order.")
    def retry_failed_payouts(order_id):
        """Retry seller transfers that failed during webhook fan-out.

        Usage:
            flask retry-failed-payouts
            flask retry-failed-payouts --order-id <uuid>
        """
        from benchlot.models.payout import SellerPayout
        from benchlot.services.payout_service import retry_failed_payout
        from benchlot.services.stripe_helpers import bind_api_key, extract_charge_id

        query = SellerPayout.query.filter_by(status="failed")
        if order_id:
            query = query.filter_by(order_id=order_id)

        payouts = query.order_by(SellerPayout.created_at).all()
        if not payouts:
            click.echo("No failed payouts to retry.")
            return

        bind_api_key()
        charge_ids = {}
        for payout in payouts:
            intent_id = payout.order.payment_intent_id
            if intent_id not in charge_ids:
                try:
                    charge_ids[intent_id] = extract_charge_id(
                        stripe.PaymentIntent.retrieve(intent_id)
                    )
                except stripe.StripeError as e:
                    click.echo(f"  Could not load payment intent {intent_id}: {e}")
                    charge_ids[intent_id] = None

            retry_failed_payout(payout, charge_id=charge_ids[intent_id])
            db.session.commit()
            click.echo(
                f"  Payout {payout.id} (order {payout.order_id}, seller {payout.seller_id}): "
                f"{payout.status}"
                + (f" - {payout.failure_reason}" if payout.failure_reason else "")
            )

    @app.cli.command("settle-order")
    @click.argument("order_id")
    def settle_order(order_id):
        """Run the seller payout fan-out for a paid order.

        Fallback for orders whose automatic settlement failed. Sellers
        already paid are skipped.
        """
        from benchlot.models.order import Order
        from benchlot.services.stripe_helpers import bind_api_key, field
        from benchlot.services.webhook_service import settle_paid_order

        order = db.session.get(Order, order_id)
        if order is None:
            click.echo(f"Order {order_id} not found.")
            return

        bind_api_key()
        intent = stripe.PaymentIntent.retrieve(order.payment_intent_id)
        if field(intent, "status") != "succeeded":
            click.echo(f"Payment intent {order.payment_intent_id} is {field(intent, 'status')}, nothing to settle.")
            return

        payouts = settle_paid_order(order, intent)
        db.session.commit()

        click.echo(f"Order {order.id}: {len(payouts)} new payout(s).")
        for payout in payouts:
            click.echo(f"  seller {payout.seller_id}: {payout.status} ({payout.amount_cents} cents)")
