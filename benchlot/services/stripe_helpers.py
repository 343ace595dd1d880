"""Small helpers shared by the Stripe-facing services."""

import stripe
from flask import current_app


def bind_api_key():
    """Point the Stripe SDK at the configured secret key."""
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]


def field(obj, name, default=None):
    """Read a field from a Stripe object or a plain dict.

    Webhook payloads arrive as dicts; SDK calls return StripeObjects.
    """
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def extract_charge_id(payment_intent):
    """Return the charge id backing a succeeded PaymentIntent, or None.

    Newer API versions expose it as latest_charge; older payloads nest it
    under charges.data[0].
    """
    latest = field(payment_intent, "latest_charge")
    if latest:
        # Expanded charge objects carry their own id
        return latest if isinstance(latest, str) else field(latest, "id")

    charges = field(payment_intent, "charges")
    data = field(charges, "data") or []
    if len(data) > 0:
        return field(data[0], "id")
    return None
