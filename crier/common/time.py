"""Common time utilities."""

from __future__ import annotations

import datetime as dt

from crier.errors import MalformedDataError


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


def ensure_utc(value: dt.datetime, *, field: str) -> dt.datetime:
    """Return ``value`` converted to UTC, rejecting naive datetimes."""
    if value.tzinfo is None:
        msg = f"{field} must be timezone-aware"
        raise ValueError(msg)
    return value.astimezone(dt.UTC)


def to_epoch_millis(value: dt.datetime) -> int:
    """Convert an aware datetime into epoch milliseconds."""
    aware = ensure_utc(value, field="timestamp")
    return int(aware.timestamp() * 1000)


def from_epoch_millis(value: int | str) -> dt.datetime:
    """Parse epoch milliseconds (int or numeric string) into aware UTC."""
    try:
        millis = int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedDataError.invalid_timestamp(value) from exc
    try:
        return dt.datetime.fromtimestamp(millis / 1000, tz=dt.UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedDataError.invalid_timestamp(value) from exc


def parse_iso_timestamp(value: str, *, field: str) -> dt.datetime:
    """Parse an ISO 8601 string that must carry a UTC offset."""
    parsed = dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    return ensure_utc(parsed, field=field)
