"""
Flexible date input for the command line
"""
import re
from datetime import date, timedelta
from typing import Optional

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?$")

_KEYWORD_OFFSETS = {
    "today": 0,
    "yesterday": -1,
    "tomorrow": 1,
}


def parse_date(value: str, today: Optional[date] = None) -> date:
    """
    Parse a date typed by a human

    Accepts YYYY-MM-DD, M/D (current year), M/D/YY, M/D/YYYY, today,
    yesterday and tomorrow. Two-digit years below 50 are 20xx, others 19xx.

    Raises:
        ValueError: empty, malformed or impossible date
    """
    trimmed = (value or "").strip().lower()
    if not trimmed:
        raise ValueError("Date cannot be empty")

    today = today or date.today()

    if trimmed in _KEYWORD_OFFSETS:
        return today + timedelta(days=_KEYWORD_OFFSETS[trimmed])

    if _ISO_RE.match(trimmed):
        try:
            return date.fromisoformat(trimmed)
        except ValueError as exc:
            raise ValueError(f"Invalid date: {value}") from exc

    m = _SLASH_RE.match(trimmed)
    if m:
        month, day = int(m.group(1)), int(m.group(2))
        year = int(m.group(3)) if m.group(3) else today.year
        if year < 100:
            year += 2000 if year < 50 else 1900
        try:
            return date(year, month, day)
        except ValueError as exc:
            raise ValueError(f"Invalid date: {value}") from exc

    raise ValueError(
        f"Invalid date format: {value}. Use YYYY-MM-DD, M/D, M/D/YYYY, today, or yesterday."
    )
