"""Datetime utility functions for timezone handling."""
from datetime import datetime, UTC
from typing import Callable, Optional

Clock = Callable[[], datetime]
"""Callable returning the current time as an aware UTC datetime."""


def utc_now() -> datetime:
    """Default ``Clock``."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware in UTC.

    Datetimes read back from SQLite are timezone-naive but are always
    written as UTC.

    Example:
        >>> ensure_utc(datetime(2025, 1, 1, 12, 0, 0)).tzinfo == UTC
        True

        >>> ensure_utc(None) is None
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
