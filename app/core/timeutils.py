from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(value: Union[date, datetime]) -> datetime:
    """Dates become midnight UTC; datetimes are normalized to naive UTC."""
    if isinstance(value, datetime):
        return naive_utc(value)
    return datetime.combine(value, time.min)


def from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)
