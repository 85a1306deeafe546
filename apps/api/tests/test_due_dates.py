"""Tests for due-date calendar arithmetic."""
from datetime import date, datetime, timezone

import pytest

from app.utils.due_dates import (
    add_days,
    add_months,
    clamp_to_month,
    next_due_date,
    normalize_due_day,
    parse_iso_date,
    period_key,
    today_in_timezone,
)


def test_next_due_date_later_this_month():
    assert next_due_date(25, date(2024, 3, 10)) == date(2024, 3, 25)


def test_next_due_date_equal_to_today_is_today():
    assert next_due_date(10, date(2024, 3, 10)) == date(2024, 3, 10)


def test_next_due_date_already_passed_rolls_to_next_month():
    assert next_due_date(5, date(2024, 3, 10)) == date(2024, 4, 5)


def test_next_due_date_clamps_to_short_month():
    assert next_due_date(31, date(2023, 2, 10)) == date(2023, 2, 28)
    assert next_due_date(31, date(2024, 2, 10)) == date(2024, 2, 29)


def test_next_due_date_rolls_over_year_end():
    assert next_due_date(1, date(2024, 12, 15)) == date(2025, 1, 1)


def test_next_due_date_clamps_in_following_month():
    assert next_due_date(31, date(2024, 1, 31)) == date(2024, 1, 31)
    # Day 30 has passed; February is clamped.
    assert next_due_date(30, date(2024, 1, 31)) == date(2024, 2, 29)


@pytest.mark.parametrize(
    "raw,expected",
    [(0, 1), (-4, 1), (32, 31), ("15", 15), ("abc", 25), (None, 25), (True, 25)],
)
def test_normalize_due_day(raw, expected):
    assert normalize_due_day(raw) == expected


def test_clamp_and_add_months():
    assert clamp_to_month(2024, 4, 31) == date(2024, 4, 30)
    assert add_months(2024, 12, 1) == (2025, 1)
    assert add_months(2024, 1, -1) == (2023, 12)


def test_today_in_timezone_uses_local_calendar_day():
    instant = datetime(2024, 2, 29, 23, 30, tzinfo=timezone.utc)
    assert today_in_timezone("Africa/Johannesburg", instant) == date(2024, 3, 1)
    assert today_in_timezone("UTC", instant) == date(2024, 2, 29)


def test_today_in_timezone_falls_back_for_unknown_zone():
    instant = datetime(2024, 2, 29, 23, 30, tzinfo=timezone.utc)
    assert today_in_timezone("Not/AZone", instant) == date(2024, 3, 1)


def test_parse_iso_date_is_strict():
    assert parse_iso_date("2024-03-01") == date(2024, 3, 1)
    assert parse_iso_date("2024-3-1") is None
    assert parse_iso_date("2024-02-30") is None
    assert parse_iso_date("") is None
    assert parse_iso_date(None) is None


def test_add_days_and_period_key():
    assert add_days(date(2024, 3, 11), 14) == date(2024, 3, 25)
    assert period_key(date(2024, 3, 1)) == "2024-03"
