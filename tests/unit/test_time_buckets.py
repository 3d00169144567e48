"""
Unit Tests - Time Buckets
"""
import pytest

from netpulse.warehouse.time_buckets import (
    bucket_index,
    date_of,
    day_bounds,
    period_bounds,
    period_width,
    time_attributes,
)

from conftest import BASE_TS, HOUR_MS, MINUTE_MS


class TestBuckets:
    """Tests for bucket arithmetic"""

    def test_same_hour_shares_bucket(self):
        assert bucket_index(BASE_TS, "1h") == bucket_index(BASE_TS + HOUR_MS - 1, "1h")
        assert bucket_index(BASE_TS + HOUR_MS, "1h") == bucket_index(BASE_TS, "1h") + 1

    def test_bounds_are_inclusive(self):
        bucket = bucket_index(BASE_TS + 7 * MINUTE_MS, "5min")
        start, end = period_bounds(bucket, "5min")

        assert start == BASE_TS + 5 * MINUTE_MS
        assert end == BASE_TS + 10 * MINUTE_MS - 1

    def test_unknown_period_type(self):
        with pytest.raises(ValueError):
            period_width("2h")

    def test_day_bounds_and_date(self):
        start, end = day_bounds("2024-03-04")

        assert start == BASE_TS - 10 * HOUR_MS
        assert end - start == 24 * HOUR_MS - 1
        assert date_of(start) == "2024-03-04"
        assert date_of(end + 1) == "2024-03-05"


class TestTimeAttributes:
    """Tests for calendar attributes of the time dimension"""

    def test_calendar_fields(self):
        attrs = time_attributes(BASE_TS + 30 * MINUTE_MS)

        assert (attrs.year, attrs.quarter, attrs.month, attrs.day) == (2024, 1, 3, 4)
        assert (attrs.hour, attrs.minute) == (10, 30)
        assert attrs.day_of_week == 0
        assert attrs.day_of_year == 64
        assert attrs.week == 10
        assert attrs.is_weekend is False
        assert attrs.is_business_hour is True

    def test_weekend_is_not_business_hour(self):
        saturday_noon = BASE_TS + 5 * 24 * HOUR_MS + 2 * HOUR_MS
        attrs = time_attributes(saturday_noon)

        assert attrs.day_of_week == 5
        assert attrs.is_weekend is True
        assert attrs.is_business_hour is False

    def test_evening_is_not_business_hour(self):
        assert time_attributes(BASE_TS + 7 * HOUR_MS).is_business_hour is False

    def test_row_carries_every_bucket(self):
        row = time_attributes(BASE_TS).as_row()

        assert row["period_1h"] == BASE_TS // HOUR_MS
        assert row["period_1d"] == BASE_TS // (24 * HOUR_MS)
        assert {"period_1min", "period_5min", "period_15min", "period_30min", "period_4h"} <= set(row)
