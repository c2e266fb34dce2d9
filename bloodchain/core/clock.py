"""
Time helpers shared by the domain core.

All timestamps handled by the core are timezone-aware UTC datetimes with whole
second resolution, matching the ledger's epoch-seconds keys.
"""
from datetime import datetime, timezone
from typing import Callable, Union

Clock = Callable[[], datetime]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (e.g. read back from SQLite), convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_timestamp(value: Union[datetime, int, float]) -> datetime:
    """UTC, truncated to whole seconds. Integers are read as epoch seconds."""
    if isinstance(value, bool):
        raise TypeError("timestamp must be a datetime or epoch seconds")
    if isinstance(value, (int, float)):
        value = datetime.fromtimestamp(int(value), tz=timezone.utc)
    return ensure_utc(value).replace(microsecond=0)


def to_epoch(value: datetime) -> int:
    return int(ensure_utc(value).timestamp())
