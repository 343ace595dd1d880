"""Onboarding token service — issue, redeem, and purge StripeToken rows.

Tokens ride along in the refresh_url of a Connect onboarding link:
- issue: create a token for (user, connected account) with a short TTL
- redeem: check it exists, is not expired, is not used, then mark it used
- purge: delete expired or used tokens (CLI housekeeping)
"""

import secrets
from datetime import datetime, timedelta, timezone

from benchlot.extensions import db
from benchlot.models.stripe_token import StripeToken


def issue_onboarding_token(user_id, stripe_account_id, ttl_minutes=60):
    """Create a single-use token for an onboarding link.

    Returns:
        StripeToken: the newly created row (flushed, not committed)
    """
    token = StripeToken(
        token=secrets.token_urlsafe(48),
        stripe_account_id=stripe_account_id,
        user_id=user_id,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes),
    )
    db.session.add(token)
    db.session.flush()
    return token


def redeem_onboarding_token(token):
    """Validate a token and consume it.

    Returns:
        tuple: (StripeToken, None) if valid, (None, "reason") otherwise
    """
    if not token:
        return None, "No onboarding token provided."

    row = db.session.get(StripeToken, token)

    if row is None:
        return None, "Invalid onboarding link."

    if row.is_used:
        return None, "This onboarding link has already been used."

    if row.is_expired:
        return None, "This onboarding link has expired."

    row.used_at = datetime.now(timezone.utc)
    db.session.flush()
    return row, None


def purge_stale_tokens():
    """Delete expired or already-used tokens. Returns the number removed."""
    removed = 0
    for row in StripeToken.query.all():
        if row.is_used or row.is_expired:
            db.session.delete(row)
            removed += 1
    db.session.commit()
    return removed
