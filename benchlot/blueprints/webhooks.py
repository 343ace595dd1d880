"""Webhooks blueprint — /api/stripe/webhooks

Stripe event intake. Responses:
- 200 {"received": true, "status": ...}   handled or already handled
- 400 {"received": false, "error": ...}   bad signature or payload, nothing written
- 500 {"received": false, "error": ...}   handler failed, Stripe will redeliver
"""

import logging

import stripe
from flask import Blueprint, jsonify, request

from benchlot.services.webhook_service import handle_webhook_event, verify_webhook_signature

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/stripe")


def _rejected(error, status_code):
    return jsonify({"received": False, "error": error}), status_code


@webhooks_bp.route("/webhooks", methods=["POST"])
def stripe_webhook():
    # Signature is computed over the raw body; read it before any parsing
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return _rejected("Missing signature", 400)

    try:
        event = verify_webhook_signature(payload, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return _rejected("Invalid signature", 400)
    except ValueError as e:
        logger.warning(f"Webhook payload could not be parsed: {e}")
        return _rejected("Invalid payload", 400)

    success, message = handle_webhook_event(event)
    if not success:
        logger.error(f"Webhook {event['id']} ({event['type']}) failed: {message}")
        return _rejected(message, 500)

    return jsonify({"received": True, "status": message}), 200
