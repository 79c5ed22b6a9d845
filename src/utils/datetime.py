# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for SchoolLink.

This module provides standardized datetime operations to ensure consistency
across the codebase. All datetime operations should use these utilities.

Design Decisions:
-----------------
1. Timestamps produced by this library are timezone-aware UTC
2. Values read from the document store arrive in several shapes
   (native datetimes, ISO strings, plain ``yyyy-MM-dd`` dates, epoch
   numbers); coerce_datetime() turns all of them into aware datetimes
3. "Today" is always a calendar day in an explicit zone, never the
   process-local zone

Usage:
------
    from src.utils.datetime import utc_now, is_same_local_day

    now = utc_now()
    if is_same_local_day(doc["createdAt"], now, tz):
        ...
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def utc_from_timestamp(timestamp: float) -> datetime:
    """Create a timezone-aware UTC datetime from a Unix timestamp.

    Args:
        timestamp: Unix timestamp (seconds since epoch).

    Returns:
        Timezone-aware UTC datetime.
    """
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    # Already aware - convert to UTC
    return dt.astimezone(timezone.utc)


def coerce_datetime(value: Any, tz: tzinfo = timezone.utc) -> datetime | None:
    """Convert a stored date-like value into an aware datetime.

    Accepts datetimes (including Firestore's DatetimeWithNanoseconds),
    dates, ISO 8601 strings, ``yyyy-MM-dd`` strings and epoch numbers in
    seconds or milliseconds. Naive values are read as wall time in ``tz``.

    Args:
        value: The raw value.
        tz: Zone used for naive values.

    Returns:
        Aware datetime, or None if the value cannot be interpreted.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=tz)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        # Millisecond epochs are what JavaScript clients write
        seconds = value / 1000 if abs(value) > 1e11 else value
        return utc_from_timestamp(seconds)

    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return coerce_datetime(int(text), tz)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)

    return None


def to_local_date(value: Any, tz: tzinfo) -> date | None:
    """Calendar day of a stored date-like value as seen in ``tz``."""
    dt = coerce_datetime(value, tz)
    if dt is None:
        return None
    return dt.astimezone(tz).date()


def is_same_local_day(value: Any, now: datetime, tz: tzinfo) -> bool:
    """Check whether a stored value falls on the same calendar day as now.

    Args:
        value: Stored date-like value.
        now: Reference instant (aware).
        tz: Zone defining the calendar day.

    Returns:
        True when both fall on the same day in ``tz``.
    """
    day = to_local_date(value, tz)
    if day is None:
        return False
    return day == ensure_utc(now).astimezone(tz).date()


def local_date_str(now: datetime, tz: tzinfo) -> str:
    """Format the calendar day of ``now`` in ``tz`` as ``yyyy-MM-dd``."""
    return ensure_utc(now).astimezone(tz).date().isoformat()


def week_days(today: date, count: int = 6) -> list[date]:
    """Days of the Monday-based week containing ``today``.

    Args:
        today: Any day in the week.
        count: How many days to return starting from Monday.

    Returns:
        List of dates, Monday first.
    """
    monday = today - timedelta(days=today.weekday())
    return [monday + timedelta(days=offset) for offset in range(count)]

