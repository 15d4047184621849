"""
Epoch-millisecond time helpers (all UTC)
"""
from datetime import datetime, timezone


def millis_to_datetime(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def millis_to_iso(millis: int) -> str:
    """2025-04-03T06:00:00Z; milliseconds are kept only when non-zero"""
    value = millis_to_datetime(millis)
    if value.microsecond:
        return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


def day_key(millis: int) -> str:
    """UTC calendar day, e.g. 2025-04-03"""
    return millis_to_datetime(millis).strftime("%Y-%m-%d")


def now_millis() -> int:
    return datetime_to_millis(datetime.now(timezone.utc))
