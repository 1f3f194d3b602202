"""
Money helpers: amounts are integer cents everywhere inside the engine.

Usage:
    from envelope.utils.money import format_money, parse_amount

    format_money(123456, "USD")   -> "$1,234.56"
    format_money(-5000, "EUR")    -> "-50.00 EUR"
    parse_amount("+1,000")        -> 100000
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Prefix symbol for currencies that have one; everything else gets an ISO suffix
_CURRENCY_SYMBOL = {
    "USD": "$",
}

_AMOUNT_RE = re.compile(r"^[+-]?\d*\.?\d+$")


def currency_label(code: str) -> str:
    return _CURRENCY_SYMBOL.get(code, code)


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def decimal_to_cents(value: Decimal) -> int:
    """Round half up to whole cents"""
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_money(cents: int, currency: str = "USD") -> str:
    """
    Format cents with thousands separators

    Args:
        cents: Signed amount in minor units
        currency: ISO currency code

    Returns:
        "$1,234.56" / "-$12.00" / "1,234.56 EUR"
    """
    sign = "-" if cents < 0 else ""
    formatted = f"{cents_to_decimal(abs(cents)):,.2f}"
    symbol = _CURRENCY_SYMBOL.get(currency)
    if symbol:
        return f"{sign}{symbol}{formatted}"
    return f"{sign}{formatted} {currency_label(currency)}"


def parse_amount(value: str) -> int:
    """
    Parse user input into cents

    Accepts 100, 100.50, -50, +1000, $12 and thousands commas.

    Raises:
        ValueError: empty or malformed input
    """
    trimmed = (value or "").strip()
    if not trimmed:
        raise ValueError("Amount cannot be empty")

    cleaned = trimmed.replace("$", "").replace(",", "")
    if not _AMOUNT_RE.match(cleaned):
        raise ValueError(f"Invalid amount: {value}")

    try:
        return decimal_to_cents(Decimal(cleaned))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value}") from exc
