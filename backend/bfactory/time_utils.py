"""
Time helpers.

Everything is stored as UTC-naive datetimes and serialized as ISO-8601
with a trailing Z.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """
    Parse ISO-8601 into a UTC-naive datetime.

    Blank input gives None. A bare date is midnight UTC, a naive time is
    taken as UTC, and offsets (including Z) are converted. Raises ValueError
    on anything else.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(value: datetime | None) -> str | None:
    """ISO-8601 to the second, e.g. 2026-05-04T08:15:30Z. Naive input is UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"


def add_months(dt: datetime, months: int) -> datetime:
    """
    Shift by calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month -> Feb 28 (or 29 in leap years).
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def start_of_day(value: datetime | date) -> datetime:
    return datetime(value.year, value.month, value.day)
