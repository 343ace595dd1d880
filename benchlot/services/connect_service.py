"""Connect service — seller accounts on Stripe Connect Express.

Responsible for:
- Creating (or re-using) one connected account per seller
- Onboarding links (incremental: only eventually_due fields are collected)
- Express dashboard login links
- Deriving the seller's account status from Stripe and writing it back
  to the users row (reconcile)

derive_account_status() is the only place the status vocabulary is
computed; the status endpoint, the requirements endpoint, the reconcile
CLI and the account.updated webhook all go through it.
"""

import logging
import re
import secrets
from datetime import datetime, timezone

import stripe
from flask import current_app

from benchlot.errors import NotFoundError, ProviderError, ValidationError
from benchlot.extensions import db
from benchlot.models.user import User
from benchlot.services.stripe_helpers import bind_api_key, field
from benchlot.services.token_service import (
    issue_onboarding_token,
    redeem_onboarding_token,
)

logger = logging.getLogger(__name__)

MOCK_ACCOUNT_PREFIX = "mock_acct_"
MOCK_ONBOARDING_URL = "https://connect.stripe.com/setup/mock/test?dev_mode=true"
MOCK_DASHBOARD_URL = "https://connect.stripe.com/express/mock?dev_mode=true"


# ──────────────────────────────────────────────
# Lookups
# ──────────────────────────────────────────────

def get_user(user_id):
    """Load a user by id. Raises ValidationError / NotFoundError."""
    if not user_id:
        raise ValidationError("Missing userId parameter")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _require_account_id(user):
    if not user.stripe_account_id:
        raise NotFoundError("No Stripe account found for this user")
    return user.stripe_account_id


def _mocks_allowed():
    return bool(current_app.config.get("ALLOW_MOCK_CONNECT_ACCOUNTS"))


def _is_mock_account(account_id):
    return bool(account_id) and account_id.startswith(MOCK_ACCOUNT_PREFIX)


def _connect_not_enabled(exc):
    """Stripe's error when the platform itself hasn't enabled Connect."""
    return "signed up for Connect" in str(exc)


def _mock_account(account_id):
    return {
        "id": account_id,
        "details_submitted": False,
        "charges_enabled": False,
        "payouts_enabled": False,
        "requirements": {},
    }


def retrieve_account(user):
    """Fetch the user's connected account from Stripe."""
    account_id = _require_account_id(user)
    if _is_mock_account(account_id) and _mocks_allowed():
        return _mock_account(account_id)

    bind_api_key()
    try:
        return stripe.Account.retrieve(account_id)
    except stripe.StripeError as e:
        raise ProviderError.from_stripe(e)


# ──────────────────────────────────────────────
# Status derivation
# ──────────────────────────────────────────────

def extract_requirements(account):
    """Pull the three requirement lists out of a Stripe account."""
    requirements = field(account, "requirements") or {}
    return {
        "currently_due": list(field(requirements, "currently_due") or []),
        "eventually_due": list(field(requirements, "eventually_due") or []),
        "pending_verification": list(
            field(requirements, "pending_verification") or []
        ),
    }


def derive_account_status(account):
    """Map a Stripe account onto the seller status vocabulary.

    rejected             Stripe disabled the account (disabled_reason rejected.*)
    active               details submitted, charges and payouts enabled
    pending              details submitted, Stripe still enabling capabilities
    verification_needed  nothing submitted yet, something currently due
    minimal              account exists, nothing submitted, nothing due
    """
    requirements = field(account, "requirements") or {}
    disabled_reason = field(requirements, "disabled_reason") or ""
    if disabled_reason.startswith("rejected"):
        return "rejected"

    details_submitted = bool(field(account, "details_submitted"))
    charges_enabled = bool(field(account, "charges_enabled"))
    payouts_enabled = bool(field(account, "payouts_enabled"))

    if details_submitted and charges_enabled and payouts_enabled:
        return "active"
    if details_submitted:
        return "pending"
    if extract_requirements(account)["currently_due"]:
        return "verification_needed"
    return "minimal"


def is_fully_onboarded(account):
    return (
        bool(field(account, "details_submitted"))
        and bool(field(account, "charges_enabled"))
        and bool(field(account, "payouts_enabled"))
    )


def apply_account_state(user, account):
    """Write Stripe's view of the account onto the user row (flush only).

    Returns the derived status.
    """
    status = derive_account_status(account)
    now = datetime.now(timezone.utc)

    user.stripe_account_status = status
    user.stripe_details_submitted = bool(field(account, "details_submitted"))
    user.verification_requirements = extract_requirements(account)
    user.last_requirements_check = now
    user.onboarding_progress = "completed" if status == "active" else "in_progress"
    if status == "active" and user.seller_since is None:
        user.seller_since = now

    db.session.flush()
    return status


def reconcile(user, account=None):
    """Re-read the account from Stripe and persist its state.

    Every call hits Stripe; keep this off hot request paths.
    """
    if account is None:
        account = retrieve_account(user)
    status = apply_account_state(user, account)
    db.session.commit()
    logger.info(f"Reconciled Stripe account {user.stripe_account_id} for user {user.id}: {status}")
    return status


# ──────────────────────────────────────────────
# Account lifecycle
# ──────────────────────────────────────────────

def ensure_account(user):
    """Return (account_id, is_new) for the user's connected account.

    Re-uses the stored account when Stripe still knows it. A stored id
    that Stripe reports as resource_missing is replaced by a new account.
    """
    bind_api_key()
    allow_mock = _mocks_allowed()

    if user.stripe_account_id:
        if _is_mock_account(user.stripe_account_id) and allow_mock:
            return user.stripe_account_id, False
        try:
            stripe.Account.retrieve(user.stripe_account_id)
            logger.info(f"Using existing Stripe account {user.stripe_account_id} for user {user.id}")
            return user.stripe_account_id, False
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) != "resource_missing":
                raise ProviderError.from_stripe(e)
            logger.warning(
                f"Stripe account {user.stripe_account_id} for user {user.id} "
                f"no longer exists, creating a new one"
            )
        except stripe.StripeError as e:
            raise ProviderError.from_stripe(e)

    try:
        account = stripe.Account.create(
            type="express",
            email=user.email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            business_type="individual",
            settings={"payouts": {"schedule": {"interval": "manual"}}},
            metadata={"user_id": str(user.id)},
        )
        account_id = field(account, "id")
        logger.info(f"Created Stripe account {account_id} for user {user.id}")
    except stripe.StripeError as e:
        if not (allow_mock and _connect_not_enabled(e)):
            raise ProviderError.from_stripe(e)
        account_id = MOCK_ACCOUNT_PREFIX + secrets.token_hex(4)
        logger.warning(
            f"DEVELOPMENT MODE: Connect is not enabled, using mock account {account_id}"
        )

    # Sellers may list before verification finishes (incremental onboarding)
    user.stripe_account_id = account_id
    user.stripe_account_status = "minimal"
    user.is_seller = True
    user.onboarding_progress = "started"
    db.session.commit()

    return account_id, True


def create_onboarding_link(account_id, refresh_token=None):
    """Create an account_onboarding link that only collects eventually_due fields."""
    allow_mock = _mocks_allowed()
    if _is_mock_account(account_id) and allow_mock:
        return MOCK_ONBOARDING_URL

    frontend_url = current_app.config["FRONTEND_URL"].rstrip("/")
    refresh_url = f"{frontend_url}/seller/onboarding?refresh=true"
    if refresh_token:
        refresh_url += f"&token={refresh_token}"

    bind_api_key()
    try:
        link = stripe.AccountLink.create(
            account=account_id,
            refresh_url=refresh_url,
            return_url=f"{frontend_url}/seller/dashboard",
            type="account_onboarding",
            collection_options={"fields": "eventually_due"},
        )
    except stripe.StripeError as e:
        if allow_mock and _connect_not_enabled(e):
            logger.warning("DEVELOPMENT MODE: Connect is not enabled, using mock onboarding URL")
            return MOCK_ONBOARDING_URL
        raise ProviderError.from_stripe(e)

    return field(link, "url")


def start_onboarding(user):
    """Ensure the account exists and hand back an onboarding URL."""
    if not user.email:
        raise ValidationError("User email not found")

    account_id, is_new = ensure_account(user)
    token = issue_onboarding_token(
        user.id,
        account_id,
        ttl_minutes=current_app.config["ONBOARDING_TOKEN_TTL_MINUTES"],
    )
    url = create_onboarding_link(account_id, refresh_token=token.token)
    db.session.commit()

    logger.info(f"Created onboarding link for user {user.id} (new account: {is_new})")
    return url


def refresh_onboarding(token):
    """Trade a refresh_url token for a fresh onboarding link."""
    row, error = redeem_onboarding_token(token)
    if row is None:
        db.session.rollback()
        raise ValidationError(error)

    new_token = issue_onboarding_token(
        row.user_id,
        row.stripe_account_id,
        ttl_minutes=current_app.config["ONBOARDING_TOKEN_TTL_MINUTES"],
    )
    url = create_onboarding_link(row.stripe_account_id, refresh_token=new_token.token)
    db.session.commit()
    return url


def create_dashboard_link(user):
    """Login link into the seller's Express dashboard."""
    account_id = _require_account_id(user)
    if _is_mock_account(account_id) and _mocks_allowed():
        return MOCK_DASHBOARD_URL

    bind_api_key()
    try:
        link = stripe.Account.create_login_link(account_id)
    except stripe.StripeError as e:
        raise ProviderError.from_stripe(e)
    return field(link, "url")


# ──────────────────────────────────────────────
# Status / requirements views
# ──────────────────────────────────────────────

def get_status(user):
    """Current account status, written through to the user row."""
    account = retrieve_account(user)
    status = reconcile(user, account)
    requirements = extract_requirements(account)
    payouts_enabled = bool(field(account, "payouts_enabled"))

    return {
        "accountId": field(account, "id"),
        "detailsSubmitted": bool(field(account, "details_submitted")),
        "chargesEnabled": bool(field(account, "charges_enabled")),
        "payoutsEnabled": payouts_enabled,
        "requirements": requirements,
        "status": status,
        # Incremental onboarding: sellers can sell before verification completes
        "can_sell": True,
        "can_receive_funds": payouts_enabled,
        "currently_due_count": len(requirements["currently_due"]),
        "eventually_due_count": len(requirements["eventually_due"]),
    }


def format_requirement(requirement):
    """Turn "individual.dob.day" into "Individual Dob Day"."""
    text = requirement.replace(".", " ").replace("_", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), text)


def get_requirements(user):
    """Human-readable requirement lists for the onboarding checklist."""
    account = retrieve_account(user)
    requirements = extract_requirements(account)
    currently_due = requirements["currently_due"]
    eventually_due = [
        r for r in requirements["eventually_due"] if r not in currently_due
    ]

    formatted = {
        "currently_due": [format_requirement(r) for r in currently_due],
        "eventually_due": [format_requirement(r) for r in eventually_due],
        "pending_verification": [
            format_requirement(r) for r in requirements["pending_verification"]
        ],
    }

    reconcile(user, account)

    return {
        "account_id": field(account, "id"),
        "can_receive_payments": bool(field(account, "charges_enabled")),
        "can_receive_payouts": bool(field(account, "payouts_enabled")),
        "requirements": formatted,
        "verification_status": (
            "submitted" if field(account, "details_submitted") else "incomplete"
        ),
        "currently_due_count": len(formatted["currently_due"]),
        "eventually_due_count": len(formatted["eventually_due"]),
    }
