"""Connect blueprint — /api/stripe/connect/*

Seller onboarding on Stripe Connect Express. Seller-facing, so Stripe's
own error text is passed through.

Routes:
- GET /api/stripe/connect/onboard?userId=       — ensure account, onboarding URL
- GET /api/stripe/connect/refresh?token=        — fresh URL from a refresh_url token
- GET /api/stripe/connect/status?userId=        — account status (written through)
- GET /api/stripe/connect/dashboard?userId=     — Express dashboard login URL
- GET /api/stripe/connect/requirements?userId=  — verification checklist
- GET /api/stripe/connect/payouts?userId=       — seller payout history
"""

import logging

from flask import Blueprint, jsonify, request

from benchlot.extensions import limiter
from benchlot.services import connect_service
from benchlot.services.payout_service import list_seller_payouts

logger = logging.getLogger(__name__)

connect_bp = Blueprint("connect", __name__, url_prefix="/api/stripe/connect")


def _user_from_query():
    return connect_service.get_user(request.args.get("userId"))


@connect_bp.route("/onboard", methods=["GET"])
@limiter.limit("10 per minute")
def onboard():
    """Create or re-use the seller's Connect account and return an onboarding URL."""
    user = _user_from_query()
    logger.info(f"Creating onboarding link for user: {user.id}")
    url = connect_service.start_onboarding(user)
    return jsonify({"url": url})


@connect_bp.route("/refresh", methods=["GET"])
@limiter.limit("10 per minute")
def refresh():
    """Stripe sent the seller back to refresh_url; hand out a new link."""
    url = connect_service.refresh_onboarding(request.args.get("token"))
    return jsonify({"url": url})


@connect_bp.route("/status", methods=["GET"])
def status():
    user = _user_from_query()
    return jsonify(connect_service.get_status(user))


@connect_bp.route("/dashboard", methods=["GET"])
def dashboard():
    user = _user_from_query()
    return jsonify({"url": connect_service.create_dashboard_link(user)})


@connect_bp.route("/requirements", methods=["GET"])
def requirements():
    user = _user_from_query()
    return jsonify(connect_service.get_requirements(user))


@connect_bp.route("/payouts", methods=["GET"])
def payouts():
    user = _user_from_query()
    return jsonify(list_seller_payouts(user.id))
