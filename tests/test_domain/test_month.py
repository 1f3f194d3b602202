"""
Tests for calendar month helpers
"""
from datetime import date, datetime

import pytest

from envelope.domain.month import (
    current_month, format_month, is_valid_month, month_end, month_of, month_range, month_start,
    next_month, parse_month, previous_month,
)


def test_parse_month():
    assert parse_month("2025-03") == (2025, 3)


@pytest.mark.parametrize("value", ["2025-13", "2025-00", "2025-1", "25-01", "2025/01", "", None])
def test_parse_month_rejects_malformed(value):
    with pytest.raises(ValueError):
        parse_month(value)
    assert not is_valid_month(value)


def test_format_month_pads():
    assert format_month(2025, 1) == "2025-01"


def test_month_of_accepts_date_datetime_and_string():
    assert month_of(date(2025, 2, 28)) == "2025-02"
    assert month_of(datetime(2025, 12, 31, 23, 59)) == "2025-12"
    assert month_of("2025-07-04") == "2025-07"


def test_month_bounds():
    assert month_start("2024-02") == date(2024, 2, 1)
    assert month_end("2024-02") == date(2024, 2, 29)
    assert month_end("2025-02") == date(2025, 2, 28)


def test_next_and_previous_month_cross_year():
    assert next_month("2024-12") == "2025-01"
    assert previous_month("2025-01") == "2024-12"
    assert next_month("2025-06") == "2025-07"


def test_month_range_inclusive():
    assert month_range("2024-11", "2025-02") == ["2024-11", "2024-12", "2025-01", "2025-02"]
    assert month_range("2025-03", "2025-03") == ["2025-03"]
    assert month_range("2025-04", "2025-03") == []


def test_months_sort_in_calendar_order():
    months = ["2025-10", "2024-12", "2025-02"]
    assert sorted(months) == ["2024-12", "2025-02", "2025-10"]


def test_current_month_is_valid():
    assert is_valid_month(current_month("UTC"))
    assert is_valid_month(current_month("Pacific/Auckland"))


def test_month_range_at_the_end_of_the_calendar():
    assert month_range("9999-11", "9999-12") == ["9999-11", "9999-12"]
    assert month_range("9999-12", "9999-12") == ["9999-12"]


def test_month_range_rejects_malformed_bounds():
    with pytest.raises(ValueError):
        month_range("2025-1", "2025-03")
    with pytest.raises(ValueError):
        month_range("2025-01", "10000-01")
