"""
Typed results of the metric views.

Every model is frozen. Money fields are quantized to cents on construction;
percentages are plain floats already rounded by the producing view.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from trade_analytics.performance.aggregation import quantize_money
from trade_analytics.performance.models import ZERO

T = TypeVar("T")

MoneyValue = Annotated[Decimal, AfterValidator(quantize_money)]


class ResultModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Envelope ─────────────────────────────────────────────────

class MetricResponse(BaseModel, Generic[T]):
    """A view's value plus diagnostics for the records it had to leave out."""
    model_config = ConfigDict(frozen=True)

    value: T
    skipped: int = 0
    skip_reasons: dict[str, int] = Field(default_factory=dict)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BUCKETED / GROUPED PERFORMANCE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class PerformanceStats(ResultModel):
    pl: MoneyValue = ZERO
    win_rate: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    breakeven_trades: int = 0


class SymbolPerformance(PerformanceStats):
    symbol: str


class StrategyPerformance(PerformanceStats):
    strategy_type: str
    profit_on_risk: Optional[float] = None
    total_risk: MoneyValue = ZERO


class DayOfWeekPerformance(PerformanceStats):
    day: str


class DTEPerformance(PerformanceStats):
    bucket: str


class EntryTimePerformance(PerformanceStats):
    bucket: str


class EntryTimeReport(ResultModel):
    """Bucketed entries plus the date-only ones that have no time of day."""
    buckets: list[EntryTimePerformance] = Field(default_factory=list)
    unknown: PerformanceStats = Field(default_factory=PerformanceStats)


class ContractMonthPerformance(PerformanceStats):
    contract_month: str


class CoinPerformance(PerformanceStats):
    coin: str


class HoldingPeriodPerformance(PerformanceStats):
    period: str


class MonthlyPerformance(PerformanceStats):
    month: str
    month_label: str


class MarginEfficiency(ResultModel):
    symbol: str
    pl: MoneyValue = ZERO
    margin_used: MoneyValue = ZERO
    margin_efficiency: Optional[float] = None
    total_trades: int = 0


class ExpirationStatusData(ResultModel):
    expired: PerformanceStats = Field(default_factory=PerformanceStats)
    closed: PerformanceStats = Field(default_factory=PerformanceStats)


class OptionTypePerformance(ResultModel):
    call: PerformanceStats = Field(default_factory=PerformanceStats)
    put: PerformanceStats = Field(default_factory=PerformanceStats)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ACCOUNT LEVEL
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class WinRateMetrics(PerformanceStats):
    total_gains: MoneyValue = ZERO
    total_losses: MoneyValue = ZERO  # absolute value
    average_gain: MoneyValue = ZERO
    average_loss: MoneyValue = ZERO  # absolute value
    profit_factor: Optional[float] = None
    largest_win: MoneyValue = ZERO
    largest_loss: MoneyValue = ZERO
    expectancy: MoneyValue = ZERO
    average_holding_days: float = 0.0
    realized_pl: MoneyValue = ZERO
    unrealized_pl: MoneyValue = ZERO
    average_pl_per_trade: MoneyValue = ZERO
    roi_on_deposits: float = 0.0
    current_balance: MoneyValue = ZERO


class CashFlowSummary(ResultModel):
    net_cash_flow: MoneyValue = ZERO
    deposits: MoneyValue = ZERO
    withdrawals: MoneyValue = ZERO
    fees: MoneyValue = ZERO
    trade_cash_effects: MoneyValue = ZERO
    margin_reserved: MoneyValue = ZERO
    margin_released: MoneyValue = ZERO
    futures_realized: MoneyValue = ZERO
    event_count: int = 0


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TIME SERIES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class PLPoint(ResultModel):
    date: dt.date
    daily_pl: MoneyValue = ZERO
    cumulative_pl: MoneyValue = ZERO
    trade_count: int = 0


class PLOverTime(ResultModel):
    points: list[PLPoint] = Field(default_factory=list)
    realized_pl: MoneyValue = ZERO
    unrealized_pl: MoneyValue = ZERO


class ROIPoint(ResultModel):
    date: dt.date
    roi: float = 0.0
    portfolio_value: MoneyValue = ZERO
    net_cash_flow: MoneyValue = ZERO


class DrawdownPoint(ResultModel):
    date: dt.date
    peak: MoneyValue = ZERO
    current: MoneyValue = ZERO
    drawdown: float = 0.0


class DailyPL(ResultModel):
    date: dt.date
    pl: MoneyValue = ZERO
    trades: int = 0
