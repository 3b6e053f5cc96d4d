# Overview: UTC clock, ISO-8601 conversion and calendar-month arithmetic used by billing.

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime; every stored timestamp uses this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2026-01-20T10:00:00Z" -> datetime(2026, 1, 20, 10, 0).

    Blank input gives None. Offsets are folded into UTC; a value without an
    offset is already UTC. Raises ValueError on anything else.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 in UTC with a trailing Z (naive input is UTC)."""
    if dt is None:
        return None
    return _as_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"


def add_months(dt: datetime, months: int) -> datetime:
    """
    Shift dt by whole calendar months.

    The day is clamped to the last day of the target month
    (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def count_months_between(start: datetime, end: datetime) -> int:
    """
    Number of calendar months touched by [start, end], both endpoints included.

    Same month -> 1; Jan 20 .. Mar 21 -> 3.
    """
    diff = (end.year - start.year) * 12 + (end.month - start.month)
    return diff + 1
