"""Datetime utilities for consistent timezone handling across the service."""

from datetime import datetime, timedelta, timezone


def utc_now_naive() -> datetime:
    """Get current UTC time as naive datetime for database operations.

    All timestamp columns are TIMESTAMP WITHOUT TIME ZONE holding UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_from(base: datetime, days: int) -> datetime:
    """Return `base` shifted forward by whole days."""
    return base + timedelta(days=days)
