"""
Time and filesystem helpers shared by the persistence and service layers.

All timestamps handled by the service are timezone-aware UTC datetimes. They
are stored as ISO-8601 strings with a fixed microsecond precision so that
lexical comparison in SQL matches chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def utc_now() -> datetime:
    """Default clock source."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """
    Normalise a datetime to UTC.

    Naive values are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to the fixed-width storage format."""
    if value is None:
        return None
    return to_utc(value).strftime(TIMESTAMP_FORMAT)


def deserialize_datetime(value: Optional[str]) -> Optional[datetime]:
    """Deserialize a stored timestamp string to an aware datetime."""
    if not value:
        return None
    return to_utc(datetime.fromisoformat(value))


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
