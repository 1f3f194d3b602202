"""
Tests for money helpers
"""
from decimal import Decimal

import pytest

from envelope.utils.money import cents_to_decimal, decimal_to_cents, format_money, parse_amount


class TestFormatMoney:

    def test_usd_uses_symbol_and_separators(self):
        assert format_money(123456, "USD") == "$1,234.56"

    def test_negative(self):
        assert format_money(-1200, "USD") == "-$12.00"

    def test_other_currency_gets_suffix(self):
        assert format_money(-5000, "EUR") == "-50.00 EUR"

    def test_zero(self):
        assert format_money(0) == "$0.00"


class TestParseAmount:

    @pytest.mark.parametrize("value,expected", [
        ("100", 10000),
        ("100.50", 10050),
        ("-50", -5000),
        ("+1000", 100000),
        ("$12", 1200),
        ("1,234.56", 123456),
        (".5", 50),
        ("0.005", 1),
    ])
    def test_valid(self, value, expected):
        assert parse_amount(value) == expected

    def test_empty(self):
        with pytest.raises(ValueError, match="Amount cannot be empty"):
            parse_amount("  ")

    @pytest.mark.parametrize("value", ["abc", "1.2.3", "12-", "--5"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid amount"):
            parse_amount(value)


def test_decimal_conversions():
    assert cents_to_decimal(1999) == Decimal("19.99")
    assert decimal_to_cents(Decimal("19.995")) == 2000
    assert decimal_to_cents(Decimal("-0.01")) == -1
