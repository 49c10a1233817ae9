"""
Time-Series Builders — cumulative P&L, ROI, drawdown, daily / monthly series
===========================================================================

Each builder walks a gap-free calendar span in chronological order:
  - cumulative series carry the previous value forward on quiet days
  - per-day series emit zero on quiet days
  - history closed before the span is carried in as the opening value

Unrealized P&L is point-in-time: it only ever lands on the tick equal to
"today" and is never spread across history.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from trade_analytics.performance.aggregation import (
    group_by,
    round_pct,
    safe_ratio,
    stats_fields,
)
from trade_analytics.performance.bucketing import (
    calendar_days,
    calendar_months,
    month_label,
    to_calendar_month,
)
from trade_analytics.performance.models import ZERO, CashFlowEvent, ClosedTrade, DateRange, Money
from trade_analytics.performance.results import (
    DailyPL,
    DrawdownPoint,
    MonthlyPerformance,
    PLOverTime,
    PLPoint,
    ROIPoint,
)


@dataclass(frozen=True)
class Span:
    start: date
    end: date

    @property
    def days(self) -> list[date]:
        return calendar_days(self.start, self.end)


def resolve_span(
    record_dates: Iterable[date],
    today: date,
    date_range: Optional[DateRange] = None,
) -> Optional[Span]:
    """The requested range, else first record date through max(today, last record date)."""
    if date_range is not None:
        return Span(date_range.start_date, date_range.end_date)
    dates = list(record_dates)
    if not dates:
        return None
    return Span(min(dates), max(today, max(dates)))


def _daily_realized(trades: Iterable[ClosedTrade], span: Span) -> tuple[Money, dict, Counter]:
    """(P&L closed before the span, P&L per day inside it, trade count per day)."""
    carried = ZERO
    daily: dict[date, Money] = defaultdict(lambda: ZERO)
    counts: Counter = Counter()
    for trade in trades:
        if trade.exit_date < span.start:
            carried += trade.realized_pl
        elif trade.exit_date <= span.end:
            daily[trade.exit_date] += trade.realized_pl
            counts[trade.exit_date] += 1
    return carried, daily, counts


def _daily_cash(events: Iterable[CashFlowEvent], span: Span) -> tuple[Money, dict]:
    carried = ZERO
    daily: dict[date, Money] = defaultdict(lambda: ZERO)
    for event in events:
        if event.occurred_at < span.start:
            carried += event.amount
        elif event.occurred_at <= span.end:
            daily[event.occurred_at] += event.amount
    return carried, daily


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REALIZED P&L
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def build_pl_over_time(
    trades: Sequence[ClosedTrade],
    span: Optional[Span],
    unrealized_pl: Money = ZERO,
) -> PLOverTime:
    if span is None:
        return PLOverTime(unrealized_pl=unrealized_pl)

    cumulative, daily, counts = _daily_realized(trades, span)
    points = []
    for day in span.days:
        day_pl = daily.get(day, ZERO)
        cumulative += day_pl
        points.append(PLPoint(date=day, daily_pl=day_pl, cumulative_pl=cumulative, trade_count=counts[day]))
    return PLOverTime(points=points, realized_pl=cumulative, unrealized_pl=unrealized_pl)


def build_daily_pl(trades: Sequence[ClosedTrade], span: Optional[Span]) -> list[DailyPL]:
    if span is None:
        return []
    _, daily, counts = _daily_realized(trades, span)
    return [DailyPL(date=day, pl=daily.get(day, ZERO), trades=counts[day]) for day in span.days]


def build_last_n_days(trades: Sequence[ClosedTrade], today: date, days: int) -> list[DailyPL]:
    if days <= 0:
        return []
    return build_daily_pl(trades, Span(today - timedelta(days=days - 1), today))


def build_monthly(
    trades: Sequence[ClosedTrade],
    span: Optional[Span],
    window: Optional[int] = None,
    precision: int = 2,
) -> list[MonthlyPerformance]:
    if span is None:
        return []
    months = calendar_months(span.start, span.end)
    if window:
        months = months[-window:]
    by_month = group_by(
        (t for t in trades if span.start <= t.exit_date <= span.end),
        lambda t: to_calendar_month(t.exit_date),
    )
    return [
        MonthlyPerformance(
            month=key,
            month_label=month_label(key),
            **stats_fields(by_month.get(key, []), precision),
        )
        for key in months
    ]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PORTFOLIO VALUE: ROI / DRAWDOWN
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class PortfolioTick:
    date: date
    value: Money
    net_cash_flow: Money


def portfolio_values(
    trades: Sequence[ClosedTrade],
    cash_flows: Sequence[CashFlowEvent],
    span: Optional[Span],
    today: date,
    unrealized_pl: Money = ZERO,
) -> list[PortfolioTick]:
    """cumulative realized + cumulative net cash (+ unrealized on today's tick)."""
    if span is None:
        return []
    realized, daily_pl, _ = _daily_realized(trades, span)
    cash, daily_cash = _daily_cash(cash_flows, span)
    ticks = []
    for day in span.days:
        realized += daily_pl.get(day, ZERO)
        cash += daily_cash.get(day, ZERO)
        value = realized + cash
        if day == today:
            value += unrealized_pl
        ticks.append(PortfolioTick(date=day, value=value, net_cash_flow=cash))
    return ticks


def build_roi(ticks: Sequence[PortfolioTick], precision: int = 2) -> list[ROIPoint]:
    points = []
    for tick in ticks:
        ratio = safe_ratio(tick.value - tick.net_cash_flow, abs(tick.net_cash_flow))
        roi = round_pct(ratio * 100, precision) if ratio is not None else 0.0
        points.append(
            ROIPoint(date=tick.date, roi=roi, portfolio_value=tick.value, net_cash_flow=tick.net_cash_flow)
        )
    return points


def build_drawdown(ticks: Sequence[PortfolioTick], precision: int = 2) -> list[DrawdownPoint]:
    """Running peak starts at zero and never resets inside the span."""
    peak: Money = ZERO
    points = []
    for tick in ticks:
        peak = max(peak, tick.value)
        drawdown = 0.0
        if peak > 0 and tick.value < peak:
            drawdown = round_pct(safe_ratio(peak - tick.value, peak) * 100, precision)
        points.append(DrawdownPoint(date=tick.date, peak=peak, current=tick.value, drawdown=drawdown))
    return points
