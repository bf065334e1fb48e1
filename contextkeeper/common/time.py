"""Common time utilities."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def ensure_utc(value: dt.datetime) -> dt.datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive values are assumed to already be expressed in UTC, which matches how
    SQLite hands back timestamps stored through ``UTCDateTime``.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


def parse_timestamp(value: object) -> dt.datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts ISO 8601 strings (including a trailing ``Z``), POSIX seconds as
    ``int`` or ``float``, and ``datetime`` instances. Anything else, including
    unparseable strings, yields ``None`` so callers can fall back to defaults.
    """
    if isinstance(value, dt.datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        try:
            return dt.datetime.fromtimestamp(value, dt.UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            return ensure_utc(dt.datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def format_timestamp(value: dt.datetime | None) -> str | None:
    """Format an aware datetime as an ISO 8601 UTC string."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()
