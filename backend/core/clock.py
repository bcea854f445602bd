"""UTC helpers. The engine works in aware UTC; the database holds naive UTC."""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values, convert aware values to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC for storage."""
    if dt is None:
        return None
    return as_utc(dt).replace(tzinfo=None)
