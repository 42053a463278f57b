# src/devlog_feed/db/time.py
"""Time utilities for database models.

All persisted times are integer Unix epoch seconds.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def epoch_now() -> int:
    """Return the current UTC time as Unix epoch seconds."""
    return int(utcnow().timestamp())


def to_epoch(value: datetime | int | float) -> int:
    """Normalize a datetime or numeric timestamp to epoch seconds.

    Naive datetimes are interpreted as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp())
    return int(value)
