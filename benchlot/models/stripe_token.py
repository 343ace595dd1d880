"""Onboarding token model.

Short-lived, single-use capability token embedded in the refresh_url of a
Stripe onboarding link. When Stripe sends the seller back to the refresh
URL (link expired or reused), the frontend trades the token for a fresh
link without needing the seller's session.
"""

from datetime import datetime, timezone

from benchlot.extensions import db


class StripeToken(db.Model):
    __tablename__ = "stripe_tokens"

    token = db.Column(db.String(96), primary_key=True)
    stripe_account_id = db.Column(db.String(255), nullable=False)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    @property
    def is_expired(self):
        now = datetime.now(timezone.utc)
        expires = self.expires_at
        # SQLite returns naive datetimes; Postgres returns aware ones.
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return now > expires

    @property
    def is_used(self):
        return self.used_at is not None

    @property
    def is_valid(self):
        return not self.is_expired and not self.is_used

    def __repr__(self):
        return f"<StripeToken token={self.token[:8]}... account={self.stripe_account_id}>"
