from __future__ import annotations

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def epoch_ms_to_datetime(ms: int) -> datetime:
    # timedelta keeps millisecond precision exact, unlike fromtimestamp(ms / 1000)
    return EPOCH + timedelta(milliseconds=int(ms))


def datetime_to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        raise ValueError("naive datetime has no defined epoch offset")
    delta = value - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
