from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from .models import TimeOfDay
from .settings import settings

Clock = Callable[[], datetime]

# Coarse submission segments reuse the hourly time_bucket column.
DAY_TIME_BUCKET: int = 12
NIGHT_TIME_BUCKET: int = 22


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TemporalBuckets:
    time_bucket: int
    day_of_week: int


def local_temporal_buckets(now: datetime, *, tz_name: str | None = None) -> TemporalBuckets:
    """Local hour (0..23) and weekday with Sunday = 0, as the cluster table stores it.

    Naive datetimes are taken to be UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local = now.astimezone(ZoneInfo(tz_name or settings.local_timezone))
    return TemporalBuckets(time_bucket=int(local.hour), day_of_week=(local.weekday() + 1) % 7)


def current_temporal_buckets(clock: Clock = utc_now) -> TemporalBuckets:
    return local_temporal_buckets(clock())


def time_bucket_for_time_of_day(time_of_day: TimeOfDay) -> int:
    return DAY_TIME_BUCKET if time_of_day == "day" else NIGHT_TIME_BUCKET
