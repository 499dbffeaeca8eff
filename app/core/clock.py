from collections.abc import Callable
from datetime import UTC, datetime

# Timestamps are stored as naive UTC, matching the DateTime columns.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
