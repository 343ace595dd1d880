"""Money helpers.

Amounts are integer cents everywhere inside the service. Decimal dollars
appear only at the edges: cart prices sent by the client, and the "95.00"
strings in JSON responses.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CENT = Decimal("0.01")


def to_cents(value):
    """Convert a dollar amount (str, int, float or Decimal) to integer cents.

    Rounds half-up on the cent, so 10.005 -> 1001.
    Raises ValueError for anything that isn't a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        # str() first so floats like 19.99 don't drag in binary noise
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_dollars(cents):
    """Integer cents -> Decimal dollars with two places."""
    return (Decimal(cents) / 100).quantize(_CENT)


def format_dollars(cents):
    """Integer cents -> "95.00"."""
    return f"{to_dollars(cents):.2f}"


def platform_fee_for(amount_cents, fee_bps):
    """Platform fee on an amount, rounded half-up to the cent."""
    fee = (Decimal(amount_cents) * fee_bps / 10000).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(fee)


def split_platform_fee(amount_cents, fee_bps):
    """Split a sale into (seller_amount, platform_fee), both in cents.

    The two parts always add back up to amount_cents.
    """
    platform_fee = platform_fee_for(amount_cents, fee_bps)
    return amount_cents - platform_fee, platform_fee
