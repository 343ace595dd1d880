"""
Transactional email for the marketplace.

Sends templated HTML over SMTP (SendGrid's SMTP relay in production) from
a background thread so requests and webhooks never wait on delivery.

Usage:
    from benchlot.services.email_service import send_email

    send_email(
        to="buyer@example.com",
        subject="Your Benchlot order",
        template="emails/order_confirmation.html",
        context={"order_id": "..."},
    )
"""

import logging
import smtplib
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

from benchlot.extensions import db
from benchlot.models.user import User
from benchlot.money import format_dollars

logger = logging.getLogger(__name__)


def _send_smtp(app, msg):
    """Send an email via SMTP in a background thread (non-blocking)."""
    with app.app_context():
        host = app.config.get("MAIL_SMTP_HOST")
        port = app.config.get("MAIL_SMTP_PORT", 587)
        username = app.config.get("MAIL_USERNAME")
        password = app.config.get("MAIL_PASSWORD")

        if not username or not password:
            logger.warning("Email not sent — MAIL_USERNAME or MAIL_PASSWORD not configured.")
            return

        try:
            with smtplib.SMTP(host, port, timeout=30) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(username, password)
                server.send_message(msg)
            logger.info(f"Email sent to {msg['To']} — {msg['Subject']}")
        except Exception as e:
            logger.error(f"Failed to send email to {msg['To']}: {e}")


def build_message(to, subject, template, context=None):
    """Render the template and wrap it in a MIME message."""
    app = current_app._get_current_object()
    context = context or {}

    from_name = app.config.get("MAIL_FROM_NAME", "Benchlot")
    from_email = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME", "")

    html_body = render_template(template, **context)

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)
    msg.attach(MIMEText(html_body, "html"))
    return msg


def send_email(to, subject, template, context=None):
    """
    Send a templated HTML email.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        template:  Path to Jinja2 HTML template (relative to templates/).
        context:   Dict of variables to pass to the template.

    Returns the built message (also when sending is disabled).
    """
    app = current_app._get_current_object()
    msg = build_message(to, subject, template, context)

    if not app.config.get("MAIL_ENABLED", True):
        logger.debug(f"MAIL_ENABLED is off, not sending '{subject}' to {msg['To']}")
        return msg

    thread = threading.Thread(target=_send_smtp, args=(app, msg))
    thread.daemon = True
    thread.start()
    return msg


# ──────────────────────────────────────────────
# Marketplace notifications
# ──────────────────────────────────────────────

def _frontend_url():
    return (current_app.config.get("FRONTEND_URL") or "").rstrip("/")


def send_order_confirmation(order):
    """Tell the buyer their order went through."""
    try:
        buyer = db.session.get(User, order.user_id) if order.user_id else None
        if not buyer or not buyer.email:
            return
        send_email(
            to=buyer.email,
            subject="Your Benchlot order is confirmed",
            template="emails/order_confirmation.html",
            context={
                "buyer_name": buyer.full_name or "",
                "order_id": order.id,
                "order_amount": format_dollars(order.total_cents),
                "items": [
                    {
                        "name": item.tool.name if item.tool else item.tool_id,
                        "quantity": item.quantity,
                        "price": format_dollars(item.price_cents),
                    }
                    for item in order.items
                ],
                "order_url": f"{_frontend_url()}/orders/{order.id}",
            },
        )
    except Exception as e:
        # Never let email failure break the checkout flow
        logger.error(f"Failed to send order confirmation for order {order.id}: {e}")


def send_product_sold(order):
    """Tell each seller in the order which of their tools sold."""
    buyer = db.session.get(User, order.user_id) if order.user_id else None
    by_seller = {}
    for item in order.items:
        by_seller.setdefault(item.seller_id, []).append(item)

    for seller_id, items in by_seller.items():
        try:
            seller = db.session.get(User, seller_id)
            if not seller or not seller.email:
                continue
            send_email(
                to=seller.email,
                subject="You made a sale on Benchlot",
                template="emails/product_sold.html",
                context={
                    "seller_name": seller.full_name or "",
                    "buyer_name": (buyer.full_name if buyer else None) or "A buyer",
                    "listing_titles": [
                        item.tool.name if item.tool else item.tool_id for item in items
                    ],
                    "order_amount": format_dollars(
                        sum(item.seller_amount_cents for item in items)
                    ),
                    "order_id": order.id,
                    "order_url": f"{_frontend_url()}/seller/orders/{order.id}",
                },
            )
        except Exception as e:
            logger.error(f"Failed to send sale email to seller {seller_id} for order {order.id}: {e}")


def send_payout_processed(payout):
    """Tell a seller a transfer for their share of an order was sent."""
    try:
        seller = db.session.get(User, payout.seller_id)
        if not seller or not seller.email:
            return
        send_email(
            to=seller.email,
            subject="Your Benchlot payout is on its way",
            template="emails/payout_processed.html",
            context={
                "seller_name": seller.full_name or "",
                "payout_amount": format_dollars(payout.amount_cents),
                "platform_fee": format_dollars(payout.platform_fee_cents),
                "order_id": payout.order_id,
                "transaction_id": payout.stripe_transfer_id,
                "earnings_url": f"{_frontend_url()}/seller/earnings",
            },
        )
    except Exception as e:
        logger.error(f"Failed to send payout email for payout {payout.id}: {e}")
