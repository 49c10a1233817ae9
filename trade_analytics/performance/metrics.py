"""
Metric Façade — one pure function per dashboard view
====================================================

Every view takes the already-fetched records plus a MetricQuery and returns a
MetricResponse wrapping its typed value:

  rollups        win_rate_metrics, symbol_performance, strategy_performance,
                 coin_performance, margin_efficiency
  buckets        day_of_week_performance, days_to_expiration_performance,
                 entry_time_performance, entry_time_by_strategy,
                 contract_month_performance, expiration_status,
                 options_by_type, holding_period_distribution
  cash           net_cash_flow, cash_flow_summary
  time series    pl_over_time, roi_over_time, drawdown_over_time,
                 last_n_days_pl, daily_performance_calendar,
                 monthly_performance

Filtering: asset type first, then the inclusive date range (exit date for
trades, occurrence date for cash). Open positions only honour the asset type;
cash events without an asset type are account level and always kept.

Malformed records never raise here. They are counted in the response's
``skipped`` / ``skip_reasons`` and processing carries on.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence

from trade_analytics.performance.aggregation import (
    average,
    group_by,
    margin_efficiency as margin_efficiency_pct,
    profit_factor,
    profit_on_risk,
    quantize_money,
    round_pct,
    safe_ratio,
    stats_fields,
    sum_money,
    tally,
)
from trade_analytics.performance.bucketing import (
    HOLDING_PERIODS,
    UNKNOWN_BUCKET,
    WEEKDAYS,
    BucketTables,
    day_of_week,
    holding_period_bucket,
)
from trade_analytics.performance.models import (
    ZERO,
    AssetType,
    CashFlowEvent,
    CashFlowKind,
    ClosedTrade,
    ExpirationDisposition,
    MetricQuery,
    Money,
    OpenPosition,
    SkipReport,
)
from trade_analytics.performance.normalizer import NormalizedRecords, RecordNormalizer
from trade_analytics.performance.records import RecordBundle
from trade_analytics.performance.results import (
    CashFlowSummary,
    CoinPerformance,
    ContractMonthPerformance,
    DailyPL,
    DayOfWeekPerformance,
    DrawdownPoint,
    DTEPerformance,
    EntryTimePerformance,
    EntryTimeReport,
    ExpirationStatusData,
    HoldingPeriodPerformance,
    MarginEfficiency,
    MetricResponse,
    MonthlyPerformance,
    OptionTypePerformance,
    PerformanceStats,
    PLOverTime,
    ROIPoint,
    StrategyPerformance,
    SymbolPerformance,
    WinRateMetrics,
)
from trade_analytics.performance.time_series import (
    build_daily_pl,
    build_drawdown,
    build_last_n_days,
    build_monthly,
    build_pl_over_time,
    build_roi,
    portfolio_values,
    resolve_span,
)
from trade_analytics.utils.config import Settings, get_settings
from trade_analytics.utils.logger import get_logger

logger = get_logger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PREPARATION: NORMALIZE + FILTER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class PreparedRecords:
    query: MetricQuery
    settings: Settings
    # Asset-filtered, whole history (time series carry values in from before the range)
    history_trades: tuple[ClosedTrade, ...]
    history_cash: tuple[CashFlowEvent, ...]
    # Asset- and date-filtered
    trades: tuple[ClosedTrade, ...]
    cash_flows: tuple[CashFlowEvent, ...]
    open_positions: tuple[OpenPosition, ...]
    skips: SkipReport
    unpriced: int = 0

    @property
    def precision(self) -> int:
        return self.settings.percent_precision

    @property
    def unrealized_pl(self) -> Money:
        return sum_money(p.unrealized_pl for p in self.open_positions)


def _matches_asset(asset_type: Optional[AssetType], wanted: Optional[AssetType]) -> bool:
    return wanted is None or asset_type == wanted


def prepare_records(
    records: RecordBundle,
    query: MetricQuery,
    settings: Optional[Settings] = None,
) -> PreparedRecords:
    settings = settings or get_settings()
    normalized: NormalizedRecords = RecordNormalizer(query.user_id, settings).normalize(records)
    wanted = query.asset_type
    window = query.date_range

    history_trades = tuple(t for t in normalized.closed_trades if _matches_asset(t.asset_type, wanted))
    history_cash = tuple(
        e for e in normalized.cash_flows
        if e.asset_type is None or _matches_asset(e.asset_type, wanted)
    )
    if window is not None:
        trades = tuple(t for t in history_trades if window.contains(t.exit_date))
        cash_flows = tuple(e for e in history_cash if window.contains(e.occurred_at))
    else:
        trades, cash_flows = history_trades, history_cash

    return PreparedRecords(
        query=query,
        settings=settings,
        history_trades=history_trades,
        history_cash=history_cash,
        trades=trades,
        cash_flows=cash_flows,
        open_positions=tuple(
            p for p in normalized.open_positions if _matches_asset(p.asset_type, wanted)
        ),
        skips=normalized.skips,
        unpriced=normalized.unpriced,
    )


def _respond(value: Any, skips: SkipReport, extra: Optional[dict] = None) -> MetricResponse:
    report = skips.merged(extra) if extra else skips
    return MetricResponse(value=value, skipped=report.total, skip_reasons=dict(report.reasons))


def _stats(trades: Sequence[ClosedTrade], precision: int) -> PerformanceStats:
    return PerformanceStats(**stats_fields(trades, precision))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ROLLUPS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def win_rate_metrics(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[WinRateMetrics]:
    """Headline numbers: win rate, gains vs losses, expectancy, ROI on deposits, balance."""
    p = prepare_records(records, query, settings)
    stats = tally(p.trades)
    precision = p.precision

    total_losses = abs(stats.gross_loss)
    average_gain = average(stats.gross_profit, stats.winning_trades)
    average_loss = average(total_losses, stats.losing_trades)

    decided = stats.winning_trades + stats.losing_trades
    expectancy = ZERO
    if decided:
        expectancy = (
            Decimal(stats.winning_trades) / decided * average_gain
            - Decimal(stats.losing_trades) / decided * average_loss
        )

    deposits = sum_money(
        e.amount for e in p.cash_flows if e.kind == CashFlowKind.DEPOSIT and e.amount > 0
    )
    roi = safe_ratio(stats.pl, deposits)
    unrealized = p.unrealized_pl
    net_cash = sum_money(e.amount for e in p.cash_flows)

    value = WinRateMetrics(
        **stats_fields(p.trades, precision),
        total_gains=stats.gross_profit,
        total_losses=total_losses,
        average_gain=average_gain,
        average_loss=average_loss,
        profit_factor=round_pct(profit_factor(stats), precision),
        largest_win=stats.largest_win,
        largest_loss=stats.largest_loss,
        expectancy=expectancy,
        average_holding_days=round(float(average(stats.total_holding_days, stats.total_trades)), 2),
        realized_pl=stats.pl,
        unrealized_pl=unrealized,
        average_pl_per_trade=average(stats.pl, stats.total_trades),
        roi_on_deposits=round_pct(roi * 100, precision) if roi is not None else 0.0,
        current_balance=net_cash + unrealized,
    )
    return _respond(value, p.skips)


def symbol_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[SymbolPerformance]]:
    p = prepare_records(records, query, settings)
    rows = [
        SymbolPerformance(symbol=symbol, **stats_fields(trades, p.precision))
        for symbol, trades in group_by(p.trades, lambda t: t.symbol).items()
    ]
    rows.sort(key=lambda r: (-r.pl, r.symbol))
    return _respond(rows, p.skips)


def strategy_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[StrategyPerformance]]:
    """Multi-leg strategies grouped by type, with profit on defined risk."""
    p = prepare_records(records, query, settings)
    rows = []
    for strategy_type, trades in group_by(p.trades, lambda t: t.strategy_type, drop_none=True).items():
        fields = stats_fields(trades, p.precision)
        total_risk = sum_money(t.defined_risk or ZERO for t in trades)
        rows.append(
            StrategyPerformance(
                strategy_type=strategy_type,
                profit_on_risk=round_pct(profit_on_risk(fields["pl"], total_risk), p.precision),
                total_risk=total_risk,
                **fields,
            )
        )
    rows.sort(key=lambda r: (-r.total_trades, r.strategy_type))
    return _respond(rows, p.skips)


def coin_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[CoinPerformance]]:
    p = prepare_records(records, query, settings)
    rows = [
        CoinPerformance(coin=coin, **stats_fields(trades, p.precision))
        for coin, trades in group_by(p.trades, lambda t: t.coin, drop_none=True).items()
    ]
    rows.sort(key=lambda r: (-r.total_trades, r.coin))
    return _respond(rows, p.skips)


def margin_efficiency(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[MarginEfficiency]]:
    """P&L per unit of margin, per futures symbol."""
    p = prepare_records(records, query, settings)
    with_margin = (t for t in p.trades if t.margin_used is not None)
    rows = []
    for symbol, trades in group_by(with_margin, lambda t: t.symbol).items():
        pl = sum_money(t.realized_pl for t in trades)
        margin = sum_money(t.margin_used for t in trades)
        rows.append(
            MarginEfficiency(
                symbol=symbol,
                pl=pl,
                margin_used=margin,
                margin_efficiency=round_pct(margin_efficiency_pct(pl, margin), p.precision),
                total_trades=len(trades),
            )
        )
    rows.sort(key=lambda r: (-r.total_trades, r.symbol))
    return _respond(rows, p.skips)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BUCKETED VIEWS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def day_of_week_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[DayOfWeekPerformance]]:
    """All seven days, Monday first, keyed by the civil exit date."""
    p = prepare_records(records, query, settings)
    by_day = group_by(p.trades, lambda t: day_of_week(t.exit_date))
    rows = [
        DayOfWeekPerformance(day=day, **stats_fields(by_day.get(day, []), p.precision))
        for day in WEEKDAYS
    ]
    return _respond(rows, p.skips)


def days_to_expiration_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[DTEPerformance]]:
    p = prepare_records(records, query, settings)
    table = BucketTables.from_settings(p.settings).dte
    extra: Counter = Counter()
    buckets: dict[str, list[ClosedTrade]] = {label: [] for label in table.labels}
    for trade in p.trades:
        if trade.days_to_expiration is None:
            continue
        if trade.days_to_expiration < 0:
            extra["negative_dte"] += 1
            logger.warning("record_skipped", record_id=trade.id, reason="negative_dte",
                           days_to_expiration=trade.days_to_expiration)
            continue
        label = table.classify(trade.days_to_expiration)
        if label is None:
            extra["dte_out_of_range"] += 1
            logger.warning("record_skipped", record_id=trade.id, reason="dte_out_of_range",
                           days_to_expiration=trade.days_to_expiration)
            continue
        buckets[label].append(trade)
    rows = [
        DTEPerformance(bucket=label, **stats_fields(trades, p.precision))
        for label, trades in buckets.items()
    ]
    return _respond(rows, p.skips, dict(extra))


def _entry_time_report(trades: Sequence[ClosedTrade], tables: BucketTables, precision: int) -> EntryTimeReport:
    labels = tables.entry_time.labels
    by_bucket = group_by(trades, lambda t: tables.entry_time.classify(t.entry_time_of_day))
    return EntryTimeReport(
        buckets=[
            EntryTimePerformance(bucket=label, **stats_fields(by_bucket.get(label, []), precision))
            for label in labels
        ],
        unknown=_stats(by_bucket.get(UNKNOWN_BUCKET, []), precision),
    )


def entry_time_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[EntryTimeReport]:
    """Intraday entry buckets; date-only entries are reported under ``unknown``."""
    p = prepare_records(records, query, settings)
    tables = BucketTables.from_settings(p.settings)
    return _respond(_entry_time_report(p.trades, tables, p.precision), p.skips)


def entry_time_by_strategy(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[dict[str, EntryTimeReport]]:
    """Entry-time buckets per strategy type; single positions fall under ``single_<asset>``."""
    p = prepare_records(records, query, settings)
    tables = BucketTables.from_settings(p.settings)
    by_strategy = group_by(
        p.trades, lambda t: t.strategy_type or f"single_{t.asset_type.value}"
    )
    value = {
        strategy: _entry_time_report(trades, tables, p.precision)
        for strategy, trades in by_strategy.items()
    }
    return _respond(value, p.skips)


def contract_month_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[ContractMonthPerformance]]:
    p = prepare_records(records, query, settings)
    by_month = group_by(p.trades, lambda t: t.contract_month, drop_none=True)
    rows = [
        ContractMonthPerformance(contract_month=month, **stats_fields(by_month[month], p.precision))
        for month in sorted(by_month)
    ]
    return _respond(rows, p.skips)


def expiration_status(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[ExpirationStatusData]:
    """Options held to expiry vs closed before it."""
    p = prepare_records(records, query, settings)
    by_status = group_by(p.trades, lambda t: t.expiration_disposition, drop_none=True)
    value = ExpirationStatusData(
        expired=_stats(by_status.get(ExpirationDisposition.EXPIRED, []), p.precision),
        closed=_stats(by_status.get(ExpirationDisposition.CLOSED_MANUALLY, []), p.precision),
    )
    return _respond(value, p.skips)


def options_by_type(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[OptionTypePerformance]:
    p = prepare_records(records, query, settings)
    by_type = group_by(p.trades, lambda t: t.option_type, drop_none=True)
    value = OptionTypePerformance(
        call=_stats(by_type.get("call", []), p.precision),
        put=_stats(by_type.get("put", []), p.precision),
    )
    return _respond(value, p.skips)


def holding_period_distribution(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[HoldingPeriodPerformance]]:
    p = prepare_records(records, query, settings)
    by_period = group_by(p.trades, lambda t: holding_period_bucket(t.holding_days))
    rows = [
        HoldingPeriodPerformance(period=label, **stats_fields(by_period.get(label, []), p.precision))
        for label, _, _ in HOLDING_PERIODS
    ]
    return _respond(rows, p.skips)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CASH
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def net_cash_flow(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[Decimal]:
    """Signed sum of every cash event in range, margin reserve/release included."""
    p = prepare_records(records, query, settings)
    return _respond(quantize_money(sum_money(e.amount for e in p.cash_flows)), p.skips)


def cash_flow_summary(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[CashFlowSummary]:
    p = prepare_records(records, query, settings)
    by_kind = group_by(p.cash_flows, lambda e: e.kind)

    def total(kind: CashFlowKind) -> Money:
        return sum_money(e.amount for e in by_kind.get(kind, []))

    value = CashFlowSummary(
        net_cash_flow=sum_money(e.amount for e in p.cash_flows),
        deposits=total(CashFlowKind.DEPOSIT),
        withdrawals=total(CashFlowKind.WITHDRAWAL),
        fees=total(CashFlowKind.FEE),
        trade_cash_effects=total(CashFlowKind.TRADE_CASH_EFFECT),
        margin_reserved=total(CashFlowKind.MARGIN_RESERVE),
        margin_released=total(CashFlowKind.MARGIN_RELEASE),
        futures_realized=total(CashFlowKind.FUTURES_REALIZED),
        event_count=len(p.cash_flows),
    )
    return _respond(value, p.skips)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TIME SERIES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _trade_span(p: PreparedRecords):
    return resolve_span((t.exit_date for t in p.history_trades), p.query.today, p.query.date_range)


def _portfolio_span(p: PreparedRecords):
    dates = [t.exit_date for t in p.history_trades] + [e.occurred_at for e in p.history_cash]
    return resolve_span(dates, p.query.today, p.query.date_range)


def pl_over_time(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[PLOverTime]:
    """Cumulative realized P&L by exit day; unrealized P&L rides alongside, unmerged."""
    p = prepare_records(records, query, settings)
    value = build_pl_over_time(p.history_trades, _trade_span(p), p.unrealized_pl)
    return _respond(value, p.skips)


def _portfolio_view(
    builder: Callable,
    records: RecordBundle,
    query: MetricQuery,
    settings: Optional[Settings],
) -> MetricResponse:
    p = prepare_records(records, query, settings)
    ticks = portfolio_values(
        p.history_trades, p.history_cash, _portfolio_span(p), p.query.today, p.unrealized_pl
    )
    return _respond(builder(ticks, p.precision), p.skips)


def roi_over_time(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[ROIPoint]]:
    """Money-weighted approximation: (value - net cash) / |net cash| per day."""
    return _portfolio_view(build_roi, records, query, settings)


def drawdown_over_time(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[DrawdownPoint]]:
    return _portfolio_view(build_drawdown, records, query, settings)


def last_n_days_pl(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
    days: Optional[int] = None,
) -> MetricResponse[list[DailyPL]]:
    """The N days ending at ``query.today``; the query's date range does not apply."""
    p = prepare_records(records, query, settings)
    n = days if days is not None else p.settings.last_n_days
    return _respond(build_last_n_days(p.history_trades, p.query.today, n), p.skips)


def daily_performance_calendar(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
) -> MetricResponse[list[DailyPL]]:
    p = prepare_records(records, query, settings)
    return _respond(build_daily_pl(p.history_trades, _trade_span(p)), p.skips)


def monthly_performance(
    records: RecordBundle,
    query: MetricQuery,
    *,
    settings: Optional[Settings] = None,
    window: Optional[int] = None,
) -> MetricResponse[list[MonthlyPerformance]]:
    """Per-month tallies; without a date range only the last ``window`` months are kept."""
    p = prepare_records(records, query, settings)
    if window is None and p.query.date_range is None:
        window = p.settings.monthly_window
    value = build_monthly(p.history_trades, _trade_span(p), window, p.precision)
    return _respond(value, p.skips)
