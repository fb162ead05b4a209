from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Server clock used for send times and metadata updates."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """
    Attach UTC to naive datetimes (SQLite drops tzinfo on the way back).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_millis(dt: Optional[datetime]) -> int:
    """
    Milliseconds since epoch. A missing timestamp (not yet assigned by the
    server) counts as 0 so pending copies sort first.
    """
    if dt is None:
        return 0
    return int(as_utc(dt).timestamp() * 1000)
