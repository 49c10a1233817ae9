"""
Performance Aggregation Engine
==============================

Raw positions, strategies and cash rows in; typed dashboard views out.

Architecture:
  records.py      — raw repository rows (pydantic) + RecordBundle
  normalizer.py   — raw rows → ClosedTrade / OpenPosition / CashFlowEvent
  bucketing.py    — civil dates, weekday / entry-time / DTE / holding buckets
  aggregation.py  — group-by, tally, win rate, zero-guarded ratios
  time_series.py  — cumulative P&L, ROI, drawdown, daily and monthly series
  metrics.py      — one pure function per view
  analytics.py    — whole-dashboard runner (sequential or asyncio)
"""

from trade_analytics.performance.models import (
    AssetType,
    CashFlowEvent,
    CashFlowKind,
    ClosedTrade,
    DateRange,
    ExpirationDisposition,
    MetricQuery,
    OpenPosition,
    TradeOutcome,
)
from trade_analytics.performance.records import (
    PerformanceRepository,
    RawCashTransaction,
    RawPosition,
    RawStrategy,
    RecordBundle,
)
from trade_analytics.performance.normalizer import NormalizedRecords, RecordNormalizer, normalize_records
from trade_analytics.performance.results import MetricResponse
from trade_analytics.performance.metrics import (
    cash_flow_summary,
    coin_performance,
    contract_month_performance,
    daily_performance_calendar,
    day_of_week_performance,
    days_to_expiration_performance,
    drawdown_over_time,
    entry_time_by_strategy,
    entry_time_performance,
    expiration_status,
    holding_period_distribution,
    last_n_days_pl,
    margin_efficiency,
    monthly_performance,
    net_cash_flow,
    options_by_type,
    pl_over_time,
    roi_over_time,
    strategy_performance,
    symbol_performance,
    win_rate_metrics,
)
from trade_analytics.performance.analytics import DashboardReport, PerformanceAnalytics

__all__ = [
    # Models
    "AssetType", "CashFlowEvent", "CashFlowKind", "ClosedTrade", "DateRange",
    "ExpirationDisposition", "MetricQuery", "OpenPosition", "TradeOutcome",
    "PerformanceRepository", "RawCashTransaction", "RawPosition", "RawStrategy",
    "RecordBundle", "MetricResponse",
    # Normalizer
    "NormalizedRecords", "RecordNormalizer", "normalize_records",
    # Views
    "cash_flow_summary", "coin_performance", "contract_month_performance",
    "daily_performance_calendar", "day_of_week_performance",
    "days_to_expiration_performance", "drawdown_over_time",
    "entry_time_by_strategy", "entry_time_performance", "expiration_status",
    "holding_period_distribution", "last_n_days_pl", "margin_efficiency",
    "monthly_performance", "net_cash_flow", "options_by_type", "pl_over_time",
    "roi_over_time", "strategy_performance", "symbol_performance",
    "win_rate_metrics",
    # Engines
    "DashboardReport", "PerformanceAnalytics",
]
