"""UTC datetime utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def days_ago(days: int) -> datetime:
    """Start of a trailing window of `days` days, used by admin statistics."""
    return utc_now() - timedelta(days=days)


def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
