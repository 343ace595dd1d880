# Models package — import all models here so Alembic can discover them.

from benchlot.models.user import User  # noqa: F401
from benchlot.models.tool import Tool  # noqa: F401
from benchlot.models.cart import Cart, CartItem  # noqa: F401
from benchlot.models.order import Order, OrderItem  # noqa: F401
from benchlot.models.payout import SellerPayout  # noqa: F401
from benchlot.models.stripe_event import StripeEvent  # noqa: F401
from benchlot.models.stripe_token import StripeToken  # noqa: F401
