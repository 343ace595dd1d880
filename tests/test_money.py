"""Tests for the integer-cents money helpers."""

from decimal import Decimal

import pytest

from benchlot.money import (
    format_dollars,
    platform_fee_for,
    split_platform_fee,
    to_cents,
    to_dollars,
)


class TestToCents:

    def test_float_dollars(self):
        assert to_cents(19.99) == 1999
        assert to_cents(100.0) == 10000

    def test_string_and_decimal(self):
        assert to_cents("50") == 5000
        assert to_cents(Decimal("0.10")) == 10

    def test_rounds_half_up(self):
        assert to_cents("10.005") == 1001
        assert to_cents("10.004") == 1000

    @pytest.mark.parametrize("bad", [None, "abc", True, float("nan"), float("inf")])
    def test_rejects_non_numbers(self, bad):
        with pytest.raises(ValueError):
            to_cents(bad)


class TestPlatformFee:

    def test_five_percent_of_one_hundred_dollars(self):
        assert platform_fee_for(10000, 500) == 500
        assert split_platform_fee(10000, 500) == (9500, 500)

    def test_fee_rounds_half_up(self):
        # 5% of $0.50 is 2.5 cents
        assert platform_fee_for(50, 500) == 3

    def test_parts_add_back_up(self):
        for amount in (1, 99, 333, 12345, 987654):
            seller_amount, fee = split_platform_fee(amount, 500)
            assert seller_amount + fee == amount

    def test_zero_fee(self):
        assert split_platform_fee(4200, 0) == (4200, 0)


def test_formatting():
    assert to_dollars(9500) == Decimal("95.00")
    assert format_dollars(9500) == "95.00"
    assert format_dollars(5) == "0.05"
