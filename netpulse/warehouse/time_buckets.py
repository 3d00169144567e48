"""
Time Bucketing

Deterministic multi-granularity bucketing of epoch-millisecond timestamps.
A bucket index is ``floor(timestamp / width)``; its period spans
``[index * width, index * width + width - 1]``.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Tuple

PERIOD_WIDTHS_MS: Dict[str, int] = {
    "1min": 60_000,
    "5min": 300_000,
    "15min": 900_000,
    "30min": 1_800_000,
    "1h": 3_600_000,
    "4h": 14_400_000,
    "1d": 86_400_000,
}

DAY_MS = PERIOD_WIDTHS_MS["1d"]


def now_ms() -> int:
    """Current UTC time in epoch milliseconds."""
    return int(time.time() * 1000)


def period_width(period_type: str) -> int:
    """
    Width of a granularity in milliseconds.

    Raises:
        ValueError: If the period type is unknown
    """
    try:
        return PERIOD_WIDTHS_MS[period_type]
    except KeyError:
        raise ValueError(
            f"Unknown period type '{period_type}'; allowed: {list(PERIOD_WIDTHS_MS)}"
        ) from None


def bucket_index(timestamp_ms: int, period_type: str) -> int:
    return int(timestamp_ms) // period_width(period_type)


def period_bounds(bucket: int, period_type: str) -> Tuple[int, int]:
    """Inclusive (period_start, period_end) of a bucket."""
    width = period_width(period_type)
    start = bucket * width
    return start, start + width - 1


def day_bounds(date: str) -> Tuple[int, int]:
    """Inclusive millisecond bounds of a UTC calendar day given as YYYY-MM-DD."""
    day = datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    start = int(day.timestamp() * 1000)
    return start, start + DAY_MS - 1


def date_of(timestamp_ms: int) -> str:
    """UTC calendar date (YYYY-MM-DD) containing a timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


@dataclass(frozen=True)
class TimeAttributes:
    """Calendar fields and bucket indices of one timestamp."""
    timestamp: int
    year: int
    quarter: int
    month: int
    week: int
    day: int
    hour: int
    minute: int
    day_of_week: int
    day_of_year: int
    is_weekend: bool
    is_business_hour: bool
    buckets: Dict[str, int]

    def as_row(self) -> dict:
        row = {
            "timestamp": self.timestamp,
            "year": self.year,
            "quarter": self.quarter,
            "month": self.month,
            "week": self.week,
            "day": self.day,
            "hour": self.hour,
            "minute": self.minute,
            "day_of_week": self.day_of_week,
            "day_of_year": self.day_of_year,
            "is_weekend": self.is_weekend,
            "is_business_hour": self.is_business_hour,
        }
        for period_type, index in self.buckets.items():
            row[f"period_{period_type}"] = index
        return row


def time_attributes(timestamp_ms: int) -> TimeAttributes:
    """
    Compute calendar fields (UTC) and every bucket index for a timestamp.

    Business hours are weekdays 09:00-17:00 UTC.
    """
    ts = int(timestamp_ms)
    dt = datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
    weekday = dt.weekday()
    is_weekend = weekday >= 5

    return TimeAttributes(
        timestamp=ts,
        year=dt.year,
        quarter=(dt.month - 1) // 3 + 1,
        month=dt.month,
        week=dt.isocalendar()[1],
        day=dt.day,
        hour=dt.hour,
        minute=dt.minute,
        day_of_week=weekday,
        day_of_year=dt.timetuple().tm_yday,
        is_weekend=is_weekend,
        is_business_hour=not is_weekend and 9 <= dt.hour < 17,
        buckets={p: ts // w for p, w in PERIOD_WIDTHS_MS.items()},
    )
