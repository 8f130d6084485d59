"""Provide utility helpers for timestamps and calendar days."""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Any, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        if not isinstance(value, str):
            value = str(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        # If a naive timestamp slips in, assume UTC to avoid crashes.
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        return None


def _parse_day(value: Any) -> Optional[date]:
    """Coerce *value* to a calendar day.

    Accepts ``date``/``datetime`` objects and ISO strings.  Time-of-day is
    dropped: ``"2024-06-08T00:00:00.000Z"`` becomes ``date(2024, 6, 8)``.
    Returns ``None`` for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text.split("T")[0][:10])
    except ValueError:
        return None


def _day_of_timestamp(value: Optional[str], tz: Optional[tzinfo] = None) -> Optional[date]:
    """Return the calendar day of an ISO timestamp, optionally shifted into *tz*."""
    dt = _parse_iso(value)
    if dt is None:
        return _parse_day(value)
    if tz is not None:
        dt = dt.astimezone(tz)
    return dt.date()
