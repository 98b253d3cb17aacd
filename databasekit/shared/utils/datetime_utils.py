"""Datetime helpers for timestamp and soft-delete fields."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time with timezone info.

    Used for ``created_at``/``updated_at`` stamps and soft-delete markers so
    both backends persist the same kind of value.
    """
    return datetime.now(timezone.utc)


def isoformat_utc(dt: datetime | None = None) -> str:
    """Render a datetime (default: now) as an ISO-8601 string in UTC."""
    if dt is None:
        dt = utcnow()
    elif dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat()


__all__ = [
    "isoformat_utc",
    "utcnow",
]
