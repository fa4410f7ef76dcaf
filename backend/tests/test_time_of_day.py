from __future__ import annotations

from datetime import UTC, datetime

import pytest

from route_pricing.time_of_day import (
    current_temporal_buckets,
    local_temporal_buckets,
    time_bucket_for_time_of_day,
)


def test_local_buckets_shift_utc_into_baghdad() -> None:
    # 09:30Z on Thursday 2026-02-05 is 12:30 in Baghdad (UTC+3).
    buckets = local_temporal_buckets(datetime(2026, 2, 5, 9, 30, tzinfo=UTC))
    assert (buckets.time_bucket, buckets.day_of_week) == (12, 4)


def test_local_buckets_cross_midnight() -> None:
    # 22:15Z Saturday is already 01:15 Sunday locally; Sunday is 0.
    buckets = local_temporal_buckets(datetime(2026, 2, 7, 22, 15, tzinfo=UTC))
    assert (buckets.time_bucket, buckets.day_of_week) == (1, 0)


def test_naive_datetimes_are_utc() -> None:
    aware = local_temporal_buckets(datetime(2026, 2, 5, 9, 30, tzinfo=UTC))
    naive = local_temporal_buckets(datetime(2026, 2, 5, 9, 30))
    assert aware == naive


def test_other_timezone_override() -> None:
    buckets = local_temporal_buckets(datetime(2026, 2, 5, 9, 30, tzinfo=UTC), tz_name="UTC")
    assert (buckets.time_bucket, buckets.day_of_week) == (9, 4)


def test_current_buckets_use_injected_clock() -> None:
    buckets = current_temporal_buckets(lambda: datetime(2026, 2, 8, 20, 59, tzinfo=UTC))
    assert (buckets.time_bucket, buckets.day_of_week) == (23, 0)


@pytest.mark.parametrize(("segment", "bucket"), [("day", 12), ("night", 22)])
def test_time_bucket_for_segment(segment: str, bucket: int) -> None:
    assert time_bucket_for_time_of_day(segment) == bucket
