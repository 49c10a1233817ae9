"""
Canonical Performance Models
============================

The small set of shapes every aggregation runs on, produced once by the
record normalizer from the heterogeneous asset records:

  ClosedTrade    — one realized round trip (single position or whole strategy)
  OpenPosition   — mark-to-market P&L of a still-open position
  CashFlowEvent  — one signed cash movement on the account
  DateRange      — inclusive civil-calendar window
  MetricQuery    — who / which asset type / which window / what "today" is

All entities are frozen snapshots. Money is ``Decimal``; dates are civil
calendar dates (``datetime.date``), never shifted by a UTC offset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from trade_analytics.utils.exceptions import InvalidDateRangeError

Money = Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


# ── Enums ────────────────────────────────────────────────────

class AssetType(str, Enum):
    STOCK = "stock"
    OPTION = "option"
    CRYPTO = "crypto"
    FUTURES = "futures"


class ExpirationDisposition(str, Enum):
    EXPIRED = "expired"
    CLOSED_MANUALLY = "closed_manually"


class CashFlowKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRADE_CASH_EFFECT = "trade-cash-effect"
    FEE = "fee"
    MARGIN_RESERVE = "margin-reserve"
    MARGIN_RELEASE = "margin-release"
    FUTURES_REALIZED = "futures-realized"


class TradeOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CANONICAL ENTITIES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class ClosedTrade:
    """A realized trade. Multi-leg strategies arrive here as one trade."""
    id: str
    user_id: str
    symbol: str
    asset_type: AssetType
    entry_date: date
    exit_date: date
    realized_pl: Money
    strategy_type: Optional[str] = None
    entry_time_of_day: Optional[time] = None
    days_to_expiration: Optional[int] = None
    expiration_disposition: Optional[ExpirationDisposition] = None
    expiration_date: Optional[date] = None
    option_type: Optional[str] = None
    strike_price: Optional[Money] = None
    margin_used: Optional[Money] = None
    defined_risk: Optional[Money] = None
    contract_month: Optional[str] = None
    coin: Optional[str] = None

    def __post_init__(self) -> None:
        if self.exit_date < self.entry_date:
            raise ValueError(f"trade {self.id}: exit_date before entry_date")

    @property
    def outcome(self) -> TradeOutcome:
        if self.realized_pl > 0:
            return TradeOutcome.WIN
        if self.realized_pl < 0:
            return TradeOutcome.LOSS
        return TradeOutcome.BREAKEVEN

    @property
    def holding_days(self) -> int:
        return (self.exit_date - self.entry_date).days


@dataclass(frozen=True)
class OpenPosition:
    id: str
    user_id: str
    symbol: str
    asset_type: AssetType
    unrealized_pl: Money


@dataclass(frozen=True)
class CashFlowEvent:
    id: str
    user_id: str
    amount: Money
    occurred_at: date
    kind: CashFlowKind
    asset_type: Optional[AssetType] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# QUERY INPUTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _as_date(value: Union[date, str], name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise InvalidDateRangeError(f"{name} is not a calendar date: {value!r}") from exc


@dataclass(frozen=True)
class DateRange:
    """Inclusive on both ends."""
    start_date: date
    end_date: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_date", _as_date(self.start_date, "start_date"))
        object.__setattr__(self, "end_date", _as_date(self.end_date, "end_date"))
        if self.start_date > self.end_date:
            raise InvalidDateRangeError(
                f"start_date {self.start_date} is after end_date {self.end_date}"
            )

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class MetricQuery:
    user_id: str
    today: date
    asset_type: Optional[AssetType] = None
    date_range: Optional[DateRange] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "today", _as_date(self.today, "today"))
        if self.asset_type is not None and not isinstance(self.asset_type, AssetType):
            object.__setattr__(self, "asset_type", AssetType(self.asset_type))


@dataclass(frozen=True)
class SkipReport:
    """Diagnostics for records that could not take part in a metric."""
    reasons: dict = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.reasons.values())

    def merged(self, extra: dict) -> "SkipReport":
        combined = dict(self.reasons)
        for reason, count in extra.items():
            if count:
                combined[reason] = combined.get(reason, 0) + count
        return SkipReport(reasons=combined)
