"""Tests for onboarding refresh tokens."""

from datetime import datetime, timedelta, timezone

from benchlot.extensions import db
from benchlot.models.stripe_token import StripeToken
from benchlot.services.token_service import (
    issue_onboarding_token,
    purge_stale_tokens,
    redeem_onboarding_token,
)


def test_issue_and_redeem(seed_data):
    token = issue_onboarding_token(seed_data["seller_x_id"], "acct_seller_x")
    db.session.commit()
    assert len(token.token) >= 64

    row, error = redeem_onboarding_token(token.token)
    assert error is None
    assert row.stripe_account_id == "acct_seller_x"
    assert row.used_at is not None


def test_redeem_twice_fails(seed_data):
    token = issue_onboarding_token(seed_data["seller_x_id"], "acct_seller_x")
    redeem_onboarding_token(token.token)

    row, error = redeem_onboarding_token(token.token)
    assert row is None
    assert "already been used" in error


def test_expired_token_rejected(seed_data):
    token = issue_onboarding_token(seed_data["seller_x_id"], "acct_seller_x", ttl_minutes=-1)
    db.session.commit()

    row, error = redeem_onboarding_token(token.token)
    assert row is None
    assert "expired" in error


def test_missing_and_unknown_tokens(seed_data):
    assert redeem_onboarding_token(None) == (None, "No onboarding token provided.")
    assert redeem_onboarding_token("nope") == (None, "Invalid onboarding link.")


def test_purge_removes_used_and_expired(seed_data):
    live = issue_onboarding_token(seed_data["seller_x_id"], "acct_seller_x")
    used = issue_onboarding_token(seed_data["seller_x_id"], "acct_seller_x")
    used.used_at = datetime.now(timezone.utc)
    db.session.add(StripeToken(
        token="expired-token",
        stripe_account_id="acct_seller_y",
        user_id=seed_data["seller_y_id"],
        expires_at=datetime.now(timezone.utc) - timedelta(hours=2),
    ))
    db.session.commit()

    assert purge_stale_tokens() == 2
    assert [t.token for t in StripeToken.query.all()] == [live.token]
