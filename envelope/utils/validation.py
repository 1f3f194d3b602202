"""
Validation utilities shared by the use cases
"""
from datetime import date, datetime
from typing import Type

from envelope.domain.month import parse_month
from envelope.errors import ValidationError


def require_month(value: str, error_cls: Type[ValidationError] = ValidationError) -> str:
    """
    Validate a ``YYYY-MM`` month string

    Raises:
        ValidationError (or the given subclass): malformed month
    """
    try:
        parse_month(value)
    except (ValueError, TypeError) as exc:
        raise error_cls(f"Invalid month: {value!r} (expected YYYY-MM)") from exc
    return value


def require_date(value, error_cls: Type[ValidationError] = ValidationError) -> date:
    """
    Accept a date or an ISO ``YYYY-MM-DD`` string

    Raises:
        ValidationError (or the given subclass): not a calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError) as exc:
        raise error_cls(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from exc


def require_name(value: str, what: str, error_cls: Type[ValidationError] = ValidationError,
                 max_length: int = 255) -> str:
    """
    Strip and validate a display name

    Example:
        >>> require_name("  Rent ", "Category")
        "Rent"
    """
    name = (value or "").strip()
    if not name:
        raise error_cls(f"{what} name cannot be empty")
    if len(name) > max_length:
        raise error_cls(f"{what} name is too long (max {max_length} characters)")
    return name


def require_cents(value, what: str = "Amount", error_cls: Type[ValidationError] = ValidationError) -> int:
    """Integer cents only: floats and bools are rejected"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise error_cls(f"{what} must be an integer number of cents")
    return value
