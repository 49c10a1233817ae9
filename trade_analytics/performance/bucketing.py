"""
Time Bucketing — civil dates, weekday / entry-time / DTE / holding buckets
=========================================================================

Every classification here works on the user's civil calendar:
  - "2024-03-05" is March 5th whatever time zone the process runs in
  - tz-aware timestamps are moved into the configured user zone first
  - naive timestamps are taken as already local

Bucket tables are static, ordered and non-overlapping; they are compiled
from settings and validated once per call.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Optional, Sequence

import pandas as pd
import pytz

from trade_analytics.utils.config import DteBucketConfig, EntryTimeBucketConfig, Settings
from trade_analytics.utils.exceptions import ConfigurationError

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

UNKNOWN_BUCKET = "unknown"

HOLDING_PERIODS = (
    ("< 1 Day", 0, 0),
    ("1-7 Days", 1, 7),
    ("1-4 Weeks", 8, 30),
    ("1-3 Months", 31, 90),
    ("3+ Months", 91, None),
)

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CIVIL DATE PARSING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _zone(tz_name: str):
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        raise ConfigurationError(f"unknown time zone: {tz_name!r}") from None


def _to_local_datetime(value: Any, tz_name: str) -> Optional[datetime]:
    """Returns None for date-only input."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return None
    else:
        text = str(value).strip()
        if _DATE_ONLY.match(text):
            return None
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(_zone(tz_name))
    return dt


def to_civil_date(value: Any, tz_name: str = "UTC") -> date:
    """Civil calendar date of a date, datetime or ISO string.

    Raises ValueError for empty or unparseable input.
    """
    if value is None or value == "":
        raise ValueError("missing date")
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    local = _to_local_datetime(value, tz_name)
    if local is None:
        return date.fromisoformat(str(value).strip())
    return local.date()


def time_of_day(value: Any, tz_name: str = "UTC") -> Optional[time]:
    """Local wall-clock time, or None when the value carries no time component."""
    if value is None or value == "":
        return None
    local = _to_local_datetime(value, tz_name)
    if local is None:
        return None
    return local.time().replace(tzinfo=None)


def day_of_week(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def to_calendar_day(day: date) -> str:
    return day.isoformat()


def to_calendar_month(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def month_label(month_key: str) -> str:
    year, month = month_key.split("-")
    return f"{MONTH_ABBR[int(month) - 1]} {year}"


def calendar_days(start: date, end: date) -> list[date]:
    """Every day in [start, end]; empty when start > end."""
    if start > end:
        return []
    return [ts.date() for ts in pd.date_range(start=start, end=end, freq="D")]


def calendar_months(start: date, end: date) -> list[str]:
    if start > end:
        return []
    return [str(period) for period in pd.period_range(start=start, end=end, freq="M")]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BUCKET TABLES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RangeBucket:
    label: str
    low: int
    high: Optional[int]  # inclusive; None = open-ended

    def contains(self, value: int) -> bool:
        return value >= self.low and (self.high is None or value <= self.high)


def _parse_minutes(text: str, label: str) -> int:
    match = _HHMM.match(text.strip())
    if not match:
        raise ConfigurationError(f"entry-time bucket '{label}': bad time {text!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    total = hours * 60 + minutes
    if minutes >= 60 or total > 24 * 60:
        raise ConfigurationError(f"entry-time bucket '{label}': bad time {text!r}")
    return total


def _check_ordered(buckets: Sequence[RangeBucket], kind: str) -> None:
    for bucket in buckets:
        if bucket.high is not None and bucket.high < bucket.low:
            raise ConfigurationError(f"{kind} bucket '{bucket.label}' ends before it starts")
    for previous, current in zip(buckets, buckets[1:]):
        if previous.high is None or current.low <= previous.high:
            raise ConfigurationError(
                f"{kind} buckets '{previous.label}' and '{current.label}' overlap or are unordered"
            )


class EntryTimeTable:
    """Intraday buckets over minutes since local midnight."""

    def __init__(self, buckets: Sequence[RangeBucket]) -> None:
        _check_ordered(buckets, "entry-time")
        self._buckets = tuple(buckets)

    @classmethod
    def from_config(cls, configs: Sequence[EntryTimeBucketConfig]) -> "EntryTimeTable":
        buckets = []
        for cfg in configs:
            start = _parse_minutes(cfg.start, cfg.label)
            end = _parse_minutes(cfg.end, cfg.label)
            if end <= start:
                raise ConfigurationError(f"entry-time bucket '{cfg.label}' ends before it starts")
            buckets.append(RangeBucket(cfg.label, start, end - 1))
        return cls(buckets)

    @property
    def labels(self) -> list[str]:
        return [bucket.label for bucket in self._buckets]

    def classify(self, entry_time: Optional[time]) -> str:
        if entry_time is None:
            return UNKNOWN_BUCKET
        minute = entry_time.hour * 60 + entry_time.minute
        for bucket in self._buckets:
            if bucket.contains(minute):
                return bucket.label
        return UNKNOWN_BUCKET


class DteTable:
    def __init__(self, buckets: Sequence[RangeBucket]) -> None:
        _check_ordered(buckets, "DTE")
        self._buckets = tuple(buckets)

    @classmethod
    def from_config(cls, configs: Sequence[DteBucketConfig]) -> "DteTable":
        return cls([RangeBucket(cfg.label, cfg.min_days, cfg.max_days) for cfg in configs])

    @property
    def labels(self) -> list[str]:
        return [bucket.label for bucket in self._buckets]

    def classify(self, days_to_expiration: Optional[float]) -> Optional[str]:
        """None for non-options, negative DTE, or values outside every bucket."""
        if days_to_expiration is None:
            return None
        days = math.floor(days_to_expiration)
        if days < 0:
            return None
        for bucket in self._buckets:
            if bucket.contains(days):
                return bucket.label
        return None


HOLDING_PERIOD_TABLE = [RangeBucket(label, low, high) for label, low, high in HOLDING_PERIODS]


def holding_period_bucket(holding_days: int) -> Optional[str]:
    for bucket in HOLDING_PERIOD_TABLE:
        if bucket.contains(holding_days):
            return bucket.label
    return None


@dataclass(frozen=True)
class BucketTables:
    entry_time: EntryTimeTable
    dte: DteTable

    @classmethod
    def from_settings(cls, settings: Settings) -> "BucketTables":
        return cls(
            entry_time=EntryTimeTable.from_config(settings.entry_time_buckets),
            dte=DteTable.from_config(settings.dte_buckets),
        )
