"""
Calendar month helpers.

Months are ``YYYY-MM`` strings; they sort lexicographically in calendar order,
which the engine relies on for range queries and cache ordering.
"""
import calendar
import re
from datetime import date, datetime
from typing import List
from zoneinfo import ZoneInfo

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(value: str) -> tuple[int, int]:
    """Split ``YYYY-MM`` into (year, month). Raises ValueError on bad input."""
    m = _MONTH_RE.match(value or "")
    if not m:
        raise ValueError(f"Invalid month: {value!r} (expected YYYY-MM)")
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {value!r} (expected YYYY-MM)")
    return year, month


def is_valid_month(value: str) -> bool:
    try:
        parse_month(value)
    except ValueError:
        return False
    return True


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_of(value: date | datetime | str) -> str:
    """Month of a date, datetime or ISO date string."""
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return format_month(value.year, value.month)


def month_start(month: str) -> date:
    year, num = parse_month(month)
    return date(year, num, 1)


def month_end(month: str) -> date:
    year, num = parse_month(month)
    return date(year, num, calendar.monthrange(year, num)[1])


def next_month(month: str) -> str:
    year, num = parse_month(month)
    if num == 12:
        return format_month(year + 1, 1)
    return format_month(year, num + 1)


def previous_month(month: str) -> str:
    year, num = parse_month(month)
    if num == 1:
        return format_month(year - 1, 12)
    return format_month(year, num - 1)


def month_range(start: str, end: str) -> List[str]:
    """All months from start to end inclusive (empty if start > end)."""
    year, num = parse_month(start)
    last = parse_month(end)
    months = []
    while (year, num) <= last:
        months.append(format_month(year, num))
        year, num = (year + 1, 1) if num == 12 else (year, num + 1)
    return months


def current_month(timezone: str = "UTC") -> str:
    """Real-world month in the given IANA timezone."""
    return month_of(datetime.now(ZoneInfo(timezone)))
