"""
Unit tests for release-bucket and ENInterval arithmetic
"""

from datetime import datetime, timedelta, timezone

import pytest

from gaenstore.core.time_quantizer import (
    TIME_UNIT,
    bucket_start,
    day_start,
    ensure_utc,
    expiry_of,
    interval_to_instant,
    is_day_start,
    next_bucket_end,
    to_interval_number,
)
from conftest import make_key, utc

TWO_HOURS = timedelta(hours=2)


class TestBuckets:

    def test_bucket_start_inside_bucket(self):
        assert bucket_start(utc(2020, 7, 1, 11, 37, 12), TWO_HOURS) == utc(2020, 7, 1, 10)

    def test_bucket_start_on_boundary_is_identity(self):
        assert bucket_start(utc(2020, 7, 1, 10), TWO_HOURS) == utc(2020, 7, 1, 10)

    def test_next_bucket_end_is_one_unit_before_next_boundary(self):
        received_at = next_bucket_end(utc(2020, 7, 1, 10, 5), TWO_HOURS)
        assert received_at == utc(2020, 7, 1, 12) - TIME_UNIT
        assert received_at == utc(2020, 7, 1, 11, 59, 59, 999000)

    def test_next_bucket_end_on_boundary_uses_following_boundary(self):
        assert next_bucket_end(utc(2020, 7, 1, 10), TWO_HOURS) == utc(2020, 7, 1, 12) - TIME_UNIT

    def test_next_bucket_end_hides_position_inside_bucket(self):
        early = next_bucket_end(utc(2020, 7, 1, 10, 0, 0, 1000), TWO_HOURS)
        late = next_bucket_end(utc(2020, 7, 1, 11, 59, 59), TWO_HOURS)
        assert early == late

    def test_non_utc_instants_are_converted(self):
        cest = timezone(timedelta(hours=2))
        local = datetime(2020, 7, 1, 12, 30, tzinfo=cest)
        assert bucket_start(local, TWO_HOURS) == utc(2020, 7, 1, 10)

    def test_naive_instants_are_read_as_utc(self):
        assert ensure_utc(datetime(2020, 7, 1, 10)) == utc(2020, 7, 1, 10)

    @pytest.mark.parametrize("width", [timedelta(0), timedelta(hours=-1)])
    def test_non_positive_width_rejected(self, width):
        with pytest.raises(ValueError):
            bucket_start(utc(2020, 7, 1), width)
        with pytest.raises(ValueError):
            next_bucket_end(utc(2020, 7, 1), width)


class TestIntervals:

    def test_interval_number_of_known_day(self):
        # 18444 days after the epoch, 144 intervals per day
        assert to_interval_number(utc(2020, 7, 1)) == 2655936

    def test_interval_number_floors_inside_interval(self):
        assert to_interval_number(utc(2020, 7, 1, 0, 9, 59)) == 2655936
        assert to_interval_number(utc(2020, 7, 1, 0, 10)) == 2655937

    def test_interval_to_instant_inverts_boundaries(self):
        instant = utc(2020, 7, 1, 13, 40)
        assert interval_to_instant(to_interval_number(instant)) == instant

    def test_expiry_adds_rolling_period_and_skew(self):
        key = make_key(1, rolling_start=utc(2020, 7, 1), rolling_period=144)
        assert expiry_of(key, timedelta(0)) == utc(2020, 7, 2)
        assert expiry_of(key, TWO_HOURS) == utc(2020, 7, 2, 2)

    def test_expiry_with_short_rolling_period(self):
        key = make_key(1, rolling_start=utc(2020, 7, 1, 8), rolling_period=6)
        assert expiry_of(key, timedelta(0)) == utc(2020, 7, 1, 9)


class TestDays:

    def test_day_start(self):
        assert day_start(utc(2020, 7, 1, 23, 59)) == utc(2020, 7, 1)

    def test_is_day_start(self):
        assert is_day_start(utc(2020, 7, 1))
        assert not is_day_start(utc(2020, 7, 1, 0, 0, 1))
