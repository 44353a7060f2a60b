"""
Timezone utilities.

All timestamps are stored as naive UTC datetimes; SQLite drops tzinfo, so
comparisons are only made between naive UTC values.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get the current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_unix(dt: datetime) -> int:
    """Seconds since the epoch for a naive UTC (or aware) datetime."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())
