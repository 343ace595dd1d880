"""Tests for seller onboarding on Stripe Connect.

Covers:
- ensure_account: create once, re-use, replace a resource_missing account
- Mock accounts only when ALLOW_MOCK_CONNECT_ACCOUNTS is on
- Status derivation
- /api/stripe/connect routes: onboard, refresh, status, requirements, dashboard
"""

import json
from unittest.mock import patch

import pytest
import stripe

from benchlot.errors import ProviderError
from benchlot.extensions import db
from benchlot.models.stripe_token import StripeToken
from benchlot.models.user import User
from benchlot.services import connect_service


def _account(account_id="acct_new_seller", details_submitted=False,
             charges_enabled=False, payouts_enabled=False, **requirements):
    return {
        "id": account_id,
        "details_submitted": details_submitted,
        "charges_enabled": charges_enabled,
        "payouts_enabled": payouts_enabled,
        "requirements": requirements,
    }


def _connect_disabled_error():
    return stripe.InvalidRequestError(
        "You can only create new accounts if you've signed up for Connect",
        None,
    )


class TestDeriveAccountStatus:

    def test_active(self):
        account = _account(details_submitted=True, charges_enabled=True, payouts_enabled=True)
        assert connect_service.derive_account_status(account) == "active"

    def test_submitted_but_payouts_disabled_is_pending(self):
        account = _account(details_submitted=True, charges_enabled=True)
        assert connect_service.derive_account_status(account) == "pending"

    def test_currently_due_is_verification_needed(self):
        account = _account(currently_due=["individual.dob.day"])
        assert connect_service.derive_account_status(account) == "verification_needed"

    def test_nothing_submitted_nothing_due_is_minimal(self):
        assert connect_service.derive_account_status(_account()) == "minimal"

    def test_rejected_wins(self):
        account = _account(
            details_submitted=True,
            charges_enabled=True,
            payouts_enabled=True,
            disabled_reason="rejected.fraud",
        )
        assert connect_service.derive_account_status(account) == "rejected"


def test_format_requirement():
    assert connect_service.format_requirement("individual.dob.day") == "Individual Dob Day"
    assert connect_service.format_requirement("external_account") == "External Account"


class TestEnsureAccount:

    @patch("benchlot.services.connect_service.stripe.Account.create")
    def test_creates_account_once(self, mock_create, app, seed_data):
        mock_create.return_value = {"id": "acct_buyer_new"}
        user = db.session.get(User, seed_data["buyer_id"])

        account_id, is_new = connect_service.ensure_account(user)
        assert account_id == "acct_buyer_new"
        assert is_new is True
        assert user.stripe_account_status == "minimal"
        assert user.is_seller is True

        kwargs = mock_create.call_args.kwargs
        assert kwargs["type"] == "express"
        assert kwargs["capabilities"]["transfers"] == {"requested": True}
        assert kwargs["settings"]["payouts"]["schedule"]["interval"] == "manual"
        assert kwargs["metadata"] == {"user_id": seed_data["buyer_id"]}

        with patch("benchlot.services.connect_service.stripe.Account.retrieve") as mock_retrieve:
            mock_retrieve.return_value = {"id": "acct_buyer_new"}
            account_id_again, is_new_again = connect_service.ensure_account(user)

        assert account_id_again == "acct_buyer_new"
        assert is_new_again is False
        assert mock_create.call_count == 1

    @patch("benchlot.services.connect_service.stripe.Account.create")
    @patch("benchlot.services.connect_service.stripe.Account.retrieve")
    def test_replaces_deleted_account(self, mock_retrieve, mock_create, app, seed_data):
        mock_retrieve.side_effect = stripe.InvalidRequestError(
            "No such account: 'acct_seller_x'", "account", code="resource_missing"
        )
        mock_create.return_value = {"id": "acct_seller_x_v2"}
        user = db.session.get(User, seed_data["seller_x_id"])

        account_id, is_new = connect_service.ensure_account(user)

        assert account_id == "acct_seller_x_v2"
        assert is_new is True
        assert user.stripe_account_id == "acct_seller_x_v2"

    @patch("benchlot.services.connect_service.stripe.Account.retrieve")
    def test_other_retrieve_errors_propagate(self, mock_retrieve, app, seed_data):
        mock_retrieve.side_effect = stripe.APIConnectionError("network down")
        user = db.session.get(User, seed_data["seller_x_id"])

        with pytest.raises(ProviderError):
            connect_service.ensure_account(user)
        assert user.stripe_account_id == "acct_seller_x"

    @patch("benchlot.services.connect_service.stripe.Account.create")
    def test_no_mock_fallback_by_default(self, mock_create, app, seed_data):
        mock_create.side_effect = _connect_disabled_error()
        user = db.session.get(User, seed_data["buyer_id"])

        with pytest.raises(ProviderError):
            connect_service.ensure_account(user)
        assert user.stripe_account_id is None

    @patch("benchlot.services.connect_service.stripe.Account.create")
    def test_mock_fallback_when_allowed(self, mock_create, app, seed_data):
        mock_create.side_effect = _connect_disabled_error()
        user = db.session.get(User, seed_data["buyer_id"])

        app.config["ALLOW_MOCK_CONNECT_ACCOUNTS"] = True
        try:
            account_id, is_new = connect_service.ensure_account(user)
            url = connect_service.create_onboarding_link(account_id)
        finally:
            app.config["ALLOW_MOCK_CONNECT_ACCOUNTS"] = False

        assert account_id.startswith("mock_acct_")
        assert is_new is True
        assert url == connect_service.MOCK_ONBOARDING_URL


class TestOnboardRoute:

    @patch("benchlot.services.connect_service.stripe.AccountLink.create")
    @patch("benchlot.services.connect_service.stripe.Account.create")
    def test_onboard_returns_url(self, mock_create, mock_link, client, seed_data):
        mock_create.return_value = {"id": "acct_buyer_new"}
        mock_link.return_value = {"url": "https://connect.stripe.com/setup/e/abc"}

        resp = client.get(f"/api/stripe/connect/onboard?userId={seed_data['buyer_id']}")

        assert resp.status_code == 200
        assert json.loads(resp.data)["url"] == "https://connect.stripe.com/setup/e/abc"

        kwargs = mock_link.call_args.kwargs
        assert kwargs["account"] == "acct_buyer_new"
        assert kwargs["type"] == "account_onboarding"
        assert kwargs["collection_options"] == {"fields": "eventually_due"}
        assert kwargs["return_url"] == "http://localhost:3000/seller/dashboard"
        assert kwargs["refresh_url"].startswith(
            "http://localhost:3000/seller/onboarding?refresh=true&token="
        )
        assert StripeToken.query.count() == 1

    def test_missing_user_id(self, client, seed_data):
        resp = client.get("/api/stripe/connect/onboard")
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "Missing userId parameter"

    def test_unknown_user(self, client, seed_data):
        resp = client.get("/api/stripe/connect/onboard?userId=nobody")
        assert resp.status_code == 404
        assert json.loads(resp.data)["error"] == "User not found"

    @patch("benchlot.services.connect_service.stripe.Account.create")
    def test_stripe_error_text_passed_through(self, mock_create, client, seed_data):
        mock_create.side_effect = stripe.InvalidRequestError(
            "Invalid email address", "email"
        )
        resp = client.get(f"/api/stripe/connect/onboard?userId={seed_data['buyer_id']}")
        assert resp.status_code == 400
        assert "Invalid email address" in json.loads(resp.data)["error"]


class TestRefreshRoute:

    @patch("benchlot.services.connect_service.stripe.AccountLink.create")
    @patch("benchlot.services.connect_service.stripe.Account.retrieve")
    def test_token_is_single_use(self, mock_retrieve, mock_link, client, seed_data):
        mock_retrieve.return_value = {"id": "acct_seller_x"}
        mock_link.return_value = {"url": "https://connect.stripe.com/setup/e/first"}
        client.get(f"/api/stripe/connect/onboard?userId={seed_data['seller_x_id']}")
        token = StripeToken.query.first().token

        mock_link.return_value = {"url": "https://connect.stripe.com/setup/e/second"}
        resp = client.get(f"/api/stripe/connect/refresh?token={token}")
        assert resp.status_code == 200
        assert json.loads(resp.data)["url"] == "https://connect.stripe.com/setup/e/second"
        assert mock_link.call_args.kwargs["account"] == "acct_seller_x"

        resp = client.get(f"/api/stripe/connect/refresh?token={token}")
        assert resp.status_code == 400
        assert "already been used" in json.loads(resp.data)["error"]

    def test_unknown_token(self, client, seed_data):
        resp = client.get("/api/stripe/connect/refresh?token=bogus")
        assert resp.status_code == 400


class TestStatusRoutes:

    @patch("benchlot.services.connect_service.stripe.Account.retrieve")
    def test_status_writes_through(self, mock_retrieve, client, seed_data):
        mock_retrieve.return_value = _account(
            "acct_seller_x",
            details_submitted=True,
            charges_enabled=True,
            currently_due=["external_account"],
        )

        resp = client.get(f"/api/stripe/connect/status?userId={seed_data['seller_x_id']}")
        data = json.loads(resp.data)

        assert resp.status_code == 200
        assert data["status"] == "pending"
        assert data["can_sell"] is True
        assert data["can_receive_funds"] is False
        assert data["currently_due_count"] == 1

        user = db.session.get(User, seed_data["seller_x_id"])
        assert user.stripe_account_status == "pending"
        assert user.verification_requirements["currently_due"] == ["external_account"]
        assert user.last_requirements_check is not None

    def test_status_without_account(self, client, seed_data):
        resp = client.get(f"/api/stripe/connect/status?userId={seed_data['buyer_id']}")
        assert resp.status_code == 404
        assert json.loads(resp.data)["error"] == "No Stripe account found for this user"

    @patch("benchlot.services.connect_service.stripe.Account.retrieve")
    def test_requirements_are_formatted(self, mock_retrieve, client, seed_data):
        mock_retrieve.return_value = _account(
            "acct_seller_x",
            currently_due=["individual.dob.day"],
            eventually_due=["individual.dob.day", "individual.id_number"],
        )

        resp = client.get(f"/api/stripe/connect/requirements?userId={seed_data['seller_x_id']}")
        data = json.loads(resp.data)

        assert data["requirements"]["currently_due"] == ["Individual Dob Day"]
        assert data["requirements"]["eventually_due"] == ["Individual Id Number"]
        assert data["verification_status"] == "incomplete"
        assert data["eventually_due_count"] == 1

    @patch("benchlot.services.connect_service.stripe.Account.create_login_link")
    def test_dashboard_link(self, mock_login, client, seed_data):
        mock_login.return_value = {"url": "https://connect.stripe.com/express/abc"}
        resp = client.get(f"/api/stripe/connect/dashboard?userId={seed_data['seller_x_id']}")
        assert json.loads(resp.data)["url"] == "https://connect.stripe.com/express/abc"
        mock_login.assert_called_once_with("acct_seller_x")
