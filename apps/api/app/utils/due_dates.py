"""
Due-date calendar arithmetic.

All results are plain calendar dates. "Today" is resolved by formatting the
current instant in the target timezone, never from naive UTC day boundaries.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_DUE_DAY = 25
DEFAULT_TIMEZONE = "Africa/Johannesburg"


def normalize_due_day(raw: object, fallback: int = DEFAULT_DUE_DAY) -> int:
    """Coerce a due day into 1..31, using fallback for non-numeric input."""
    if isinstance(raw, bool):
        return fallback
    try:
        value = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback
    return min(max(1, value), 31)


def is_valid_timezone(name: str | None) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(name: str | None, fallback: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    """Return ZoneInfo for name, falling back when unknown or empty."""
    candidate = (name or "").strip() or fallback
    try:
        return ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(fallback)


def today_in_timezone(tz_name: str | None, now: datetime | None = None) -> date:
    """Calendar date of `now` (default: current instant) in the given timezone."""
    instant = now or datetime.now(timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(resolve_timezone(tz_name)).date()


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_to_month(year: int, month: int, day: int) -> date:
    """Date for (year, month, day) with day clamped to the month's length."""
    return date(year, month, min(max(1, day), last_day_of_month(year, month)))


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def next_due_date(due_day: int, today: date) -> date:
    """
    Next due date for a day-of-month relative to `today`.

    The current month's clamped candidate is used unless it is strictly
    before today, in which case the following month's candidate is used.
    A candidate equal to today is due today.
    """
    day = normalize_due_day(due_day)
    candidate = clamp_to_month(today.year, today.month, day)
    if candidate < today:
        year, month = add_months(today.year, today.month, 1)
        candidate = clamp_to_month(year, month, day)
    return candidate


def next_due_date_in_timezone(
    due_day: int, tz_name: str | None, now: datetime | None = None
) -> date:
    return next_due_date(due_day, today_in_timezone(tz_name, now))


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def parse_iso_date(raw: str | None) -> date | None:
    """Parse a strict YYYY-MM-DD override. Returns None when absent or malformed."""
    if not raw:
        return None
    value = raw.strip()
    if len(value) != 10:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def period_key(day: date) -> str:
    """Year-month key (YYYY-MM) used to scope monthly idempotency keys."""
    return f"{day.year:04d}-{day.month:02d}"
