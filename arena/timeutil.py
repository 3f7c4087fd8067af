"""UTC helpers. SQLite hands back naive datetimes; everything here treats those as UTC."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_unix(dt: datetime) -> int:
    """Whole Unix seconds, floored."""
    return int(as_utc(dt).timestamp() // 1)


def from_unix(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def isoformat(dt: datetime | None) -> str | None:
    return as_utc(dt).isoformat() if dt is not None else None
