from __future__ import annotations

from typing import Optional

import pytz
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class EntryTimeBucketConfig(BaseModel):
    label: str
    start: str = Field(description="Inclusive start, HH:MM local time")
    end: str = Field(description="Exclusive end, HH:MM local time (24:00 = end of day)")


class DteBucketConfig(BaseModel):
    label: str
    min_days: int
    max_days: Optional[int] = None


DEFAULT_ENTRY_TIME_BUCKETS = [
    EntryTimeBucketConfig(label="pre-market", start="00:00", end="09:30"),
    EntryTimeBucketConfig(label="open-hour", start="09:30", end="10:30"),
    EntryTimeBucketConfig(label="midday", start="10:30", end="15:00"),
    EntryTimeBucketConfig(label="power-hour", start="15:00", end="16:00"),
    EntryTimeBucketConfig(label="after-hours", start="16:00", end="24:00"),
]

DEFAULT_DTE_BUCKETS = [
    DteBucketConfig(label="0 DTE", min_days=0, max_days=0),
    DteBucketConfig(label="1-3 DTE", min_days=1, max_days=3),
    DteBucketConfig(label="4-7 DTE", min_days=4, max_days=7),
    DteBucketConfig(label="8-14 DTE", min_days=8, max_days=14),
    DteBucketConfig(label="15-30 DTE", min_days=15, max_days=30),
    DteBucketConfig(label="31+ DTE", min_days=31, max_days=None),
]


class Settings(BaseSettings):
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="", description="Optional log file path (stdout only when empty)")

    local_timezone: str = Field(default="UTC", description="User civil time zone for timestamp dates")
    percent_precision: int = Field(default=2, description="Decimal places for percentage outputs")
    last_n_days: int = Field(default=7, description="Default window of the last-N-days P&L view")
    monthly_window: int = Field(default=12, description="Months kept by the monthly performance view")

    entry_time_buckets: list[EntryTimeBucketConfig] = Field(
        default_factory=lambda: list(DEFAULT_ENTRY_TIME_BUCKETS),
        description="Ordered intraday entry-time buckets",
    )
    dte_buckets: list[DteBucketConfig] = Field(
        default_factory=lambda: list(DEFAULT_DTE_BUCKETS),
        description="Ordered days-to-expiration buckets",
    )

    @field_validator("local_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"unknown time zone: {value!r}") from None
        return value

    model_config = {
        "env_prefix": "TRADE_ANALYTICS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
