"""
Time-series builder tests: spans, cumulative carry, gap filling, ROI and
drawdown over the portfolio-value series.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from trade_analytics.performance.models import CashFlowEvent, CashFlowKind, DateRange
from trade_analytics.performance.time_series import (
    PortfolioTick,
    Span,
    build_daily_pl,
    build_drawdown,
    build_last_n_days,
    build_monthly,
    build_pl_over_time,
    build_roi,
    portfolio_values,
    resolve_span,
)

from tests.conftest import USER_ID, make_trade


@pytest.fixture
def trades():
    return [
        make_trade(100, date(2024, 1, 1)),
        make_trade(-40, date(2024, 1, 2)),
        make_trade(60, date(2024, 1, 3)),
    ]


def _tick(day: int, value, cash=0) -> PortfolioTick:
    return PortfolioTick(date=date(2024, 1, day), value=Decimal(str(value)), net_cash_flow=Decimal(str(cash)))


class TestSpan:

    def test_requested_range_wins(self):
        span = resolve_span([date(2023, 1, 1)], date(2024, 1, 1), DateRange("2024-01-05", "2024-01-09"))
        assert span == Span(date(2024, 1, 5), date(2024, 1, 9))

    def test_extends_to_today(self):
        span = resolve_span([date(2024, 1, 1), date(2024, 1, 2)], date(2024, 1, 10))
        assert span == Span(date(2024, 1, 1), date(2024, 1, 10))

    def test_future_record_extends_past_today(self):
        span = resolve_span([date(2024, 1, 20)], date(2024, 1, 10))
        assert span == Span(date(2024, 1, 20), date(2024, 1, 20))

    def test_nothing_to_span(self):
        assert resolve_span([], date(2024, 1, 10)) is None


class TestPLOverTime:

    def test_cumulative(self, trades):
        result = build_pl_over_time(trades, Span(date(2024, 1, 1), date(2024, 1, 3)))
        assert [p.cumulative_pl for p in result.points] == [Decimal("100"), Decimal("60"), Decimal("120")]
        assert result.realized_pl == Decimal("120")

    def test_each_step_adds_that_days_pl(self, trades):
        points = build_pl_over_time(trades, Span(date(2024, 1, 1), date(2024, 1, 3))).points
        for previous, current in zip(points, points[1:]):
            assert current.cumulative_pl == previous.cumulative_pl + current.daily_pl

    def test_gap_days_carry_forward(self, trades):
        points = build_pl_over_time(trades, Span(date(2024, 1, 1), date(2024, 1, 5))).points
        assert [p.cumulative_pl for p in points][-2:] == [Decimal("120"), Decimal("120")]
        assert points[-1].trade_count == 0

    def test_history_before_range_carried_in(self, trades):
        points = build_pl_over_time(trades, Span(date(2024, 1, 2), date(2024, 1, 3))).points
        assert [p.cumulative_pl for p in points] == [Decimal("60"), Decimal("120")]

    def test_unrealized_kept_apart(self, trades):
        result = build_pl_over_time(trades, Span(date(2024, 1, 1), date(2024, 1, 3)), Decimal("33"))
        assert result.unrealized_pl == Decimal("33")
        assert result.points[-1].cumulative_pl == Decimal("120")

    def test_no_span(self):
        assert build_pl_over_time([], None).points == []


class TestDailySeries:

    def test_quiet_days_emit_zero(self, trades):
        daily = build_daily_pl(trades, Span(date(2023, 12, 31), date(2024, 1, 2)))
        assert [d.pl for d in daily] == [Decimal("0"), Decimal("100"), Decimal("-40")]
        assert [d.trades for d in daily] == [0, 1, 1]

    def test_last_n_days_ends_today(self, trades):
        days = build_last_n_days(trades, date(2024, 1, 3), 7)
        assert len(days) == 7
        assert days[0].date == date(2023, 12, 28)
        assert days[-1].date == date(2024, 1, 3)
        assert days[-1].pl == Decimal("60")

    def test_last_zero_days(self, trades):
        assert build_last_n_days(trades, date(2024, 1, 3), 0) == []

    def test_monthly_window(self):
        trades = [make_trade(10, date(2023, 11, 5)), make_trade(-5, date(2024, 1, 9))]
        months = build_monthly(trades, Span(date(2023, 11, 1), date(2024, 1, 31)), window=2)
        assert [m.month for m in months] == ["2023-12", "2024-01"]
        assert months[0].total_trades == 0
        assert months[1].month_label == "Jan 2024"
        assert months[1].pl == Decimal("-5")


class TestPortfolio:

    def test_unrealized_only_on_today(self, trades):
        cash = [CashFlowEvent("c1", USER_ID, Decimal("1000"), date(2024, 1, 1), CashFlowKind.DEPOSIT)]
        ticks = portfolio_values(
            trades, cash, Span(date(2024, 1, 1), date(2024, 1, 3)), date(2024, 1, 2), Decimal("5")
        )
        assert [t.value for t in ticks] == [Decimal("1100"), Decimal("1065"), Decimal("1120")]
        assert all(t.net_cash_flow == Decimal("1000") for t in ticks)

    def test_roi(self):
        points = build_roi([_tick(1, 1100, 1000), _tick(2, 50, 0), _tick(3, -900, -1000)])
        assert [p.roi for p in points] == [10.0, 0.0, 10.0]

    def test_drawdown(self):
        points = build_drawdown([_tick(1, 100), _tick(2, 50), _tick(3, 150), _tick(4, 150)])
        assert [p.drawdown for p in points] == [0.0, 50.0, 0.0, 0.0]
        assert [p.peak for p in points] == [Decimal("100"), Decimal("100"), Decimal("150"), Decimal("150")]

    def test_drawdown_zero_without_positive_peak(self):
        points = build_drawdown([_tick(1, -10), _tick(2, -50)])
        assert all(p.drawdown == 0.0 for p in points)
        assert all(p.peak == Decimal("0") for p in points)

    def test_drawdown_never_negative(self):
        points = build_drawdown([_tick(d, v) for d, v in enumerate([10, 30, 5, 40, 20], start=1)])
        assert all(p.drawdown >= 0 for p in points)
