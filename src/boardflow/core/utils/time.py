"""Shared UTC time helpers.

Every module that stamps or parses a timestamp goes through here so that
naive values never leak into logs or comparisons.
"""

from __future__ import annotations

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, leave aware ones untouched."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_datetime(value: object) -> datetime | None:
    """Coerce a datetime, date or ISO-8601 string into an aware datetime.

    Returns None when the value cannot be interpreted as a point in time.
    """
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str) and value:
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return ensure_aware(datetime.fromisoformat(raw))
        except ValueError:
            return None
    return None
