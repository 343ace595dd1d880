"""Stripe event model (idempotency table).

Every webhook event is recorded by its Stripe event ID after it has been
handled. Before processing any event, the dispatcher checks this table.
If the event_id already exists, it returns 200 immediately — Stripe
delivers at least once, so redeliveries are expected.

object_id lets checkout tell that payment_intent.succeeded for an intent
was already handled before its order existed.
"""

import uuid

from benchlot.extensions import db


class StripeEvent(db.Model):
    __tablename__ = "stripe_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "payment_intent.succeeded"
    object_id = db.Column(
        db.String(255), nullable=True, index=True
    )  # id of data.object, e.g. "pi_3Abc..." or "acct_1Abc..."
    processed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<StripeEvent {self.stripe_event_id} ({self.event_type})>"
