"""Shared test fixtures for the Benchlot payments test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, no email)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: a buyer, two connected sellers, one seller without a
  Stripe account, and a tool listed by each seller
"""

import pytest

from benchlot import create_app
from benchlot.extensions import db as _db
from benchlot.models.tool import Tool
from benchlot.models.user import User


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed users and tools.

    Tool A ($100.00) is sold by seller X, tool B ($50.00) by seller Y,
    tool C ($25.00) by a seller who never connected Stripe.
    """
    with app.app_context():
        buyer = User(email="buyer@test.com", full_name="Bea Buyer")
        seller_x = User(
            email="x@test.com",
            full_name="Xavier Seller",
            stripe_account_id="acct_seller_x",
            stripe_account_status="active",
            stripe_details_submitted=True,
            is_seller=True,
        )
        seller_y = User(
            email="y@test.com",
            full_name="Yolanda Seller",
            stripe_account_id="acct_seller_y",
            stripe_account_status="active",
            stripe_details_submitted=True,
            is_seller=True,
        )
        seller_none = User(email="nostripe@test.com", full_name="No Stripe")
        _db.session.add_all([buyer, seller_x, seller_y, seller_none])
        _db.session.flush()

        tool_a = Tool(seller_id=seller_x.id, name="Table Saw", price_cents=10000)
        tool_b = Tool(seller_id=seller_y.id, name="Hand Plane", price_cents=5000)
        tool_c = Tool(seller_id=seller_none.id, name="Chisel Set", price_cents=2500)
        _db.session.add_all([tool_a, tool_b, tool_c])
        _db.session.commit()

        # Plain IDs so tests can use them even when objects
        # are detached from the session.
        return {
            "buyer_id": buyer.id,
            "seller_x_id": seller_x.id,
            "seller_y_id": seller_y.id,
            "seller_none_id": seller_none.id,
            "tool_a_id": tool_a.id,
            "tool_b_id": tool_b.id,
            "tool_c_id": tool_c.id,
        }


@pytest.fixture
def two_seller_cart(seed_data):
    """Checkout lines: tool A x1 from seller X, tool B x2 from seller Y ($200.00)."""
    return [
        {"tool_id": seed_data["tool_a_id"], "quantity": 1, "price": 100.00},
        {"tool_id": seed_data["tool_b_id"], "quantity": 2, "price": 50.00},
    ]
