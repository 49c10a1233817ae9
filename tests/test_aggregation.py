"""
Aggregation primitive tests: grouping, tallies, win rate, ratios, rounding.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from trade_analytics.performance.aggregation import (
    group_by,
    margin_efficiency,
    profit_factor,
    profit_on_risk,
    quantize_money,
    round_pct,
    safe_ratio,
    stats_fields,
    tally,
    win_rate,
)

from tests.conftest import make_trade


@pytest.fixture
def scenario():
    return [
        make_trade(100, date(2024, 1, 1)),
        make_trade(-40, date(2024, 1, 2)),
        make_trade(60, date(2024, 1, 3)),
    ]


class TestGroupBy:

    def test_insertion_order(self):
        groups = group_by(["b1", "a1", "b2"], lambda s: s[0])
        assert list(groups) == ["b", "a"]
        assert groups["b"] == ["b1", "b2"]

    def test_drop_none(self):
        groups = group_by([1, 2, 3], lambda n: None if n == 2 else "odd", drop_none=True)
        assert groups == {"odd": [1, 3]}

    def test_none_kept_by_default(self):
        assert None in group_by([1], lambda n: None)


class TestTally:

    def test_scenario(self, scenario):
        stats = tally(scenario)
        assert stats.total_trades == 3
        assert stats.winning_trades == 2
        assert stats.losing_trades == 1
        assert stats.pl == Decimal("120")
        assert stats.gross_profit == Decimal("160")
        assert stats.gross_loss == Decimal("-40")
        assert stats.largest_win == Decimal("100")
        assert stats.largest_loss == Decimal("-40")

    def test_counts_partition_total(self, scenario):
        trades = scenario + [make_trade(0, date(2024, 1, 4)), make_trade(0, date(2024, 1, 5))]
        stats = tally(trades)
        assert stats.winning_trades + stats.losing_trades + stats.breakeven_trades == stats.total_trades
        assert stats.breakeven_trades == 2

    def test_holding_days_floor_at_one(self):
        stats = tally([
            make_trade(1, date(2024, 1, 1)),
            make_trade(1, date(2024, 1, 11), entry_date=date(2024, 1, 1)),
        ])
        assert stats.total_holding_days == 11


class TestRatios:

    def test_win_rate_scenario(self, scenario):
        assert round_pct(win_rate(tally(scenario))) == 66.67

    def test_breakevens_excluded(self):
        stats = tally([make_trade(10, date(2024, 1, 1)), make_trade(0, date(2024, 1, 2))])
        assert win_rate(stats) == 100.0

    @pytest.mark.parametrize("trades", [[], [make_trade(0, date(2024, 1, 1))]])
    def test_win_rate_zero_when_undecided(self, trades):
        assert win_rate(tally(trades)) == 0.0

    def test_profit_factor(self, scenario):
        assert profit_factor(tally(scenario)) == 4.0

    def test_profit_factor_without_losses(self):
        assert profit_factor(tally([make_trade(10, date(2024, 1, 1))])) is None

    def test_safe_ratio(self):
        assert safe_ratio(1, 4) == 0.25
        assert safe_ratio(Decimal("5"), Decimal("0")) is None

    def test_profit_on_risk(self):
        assert profit_on_risk(Decimal("50"), Decimal("500")) == 10.0
        assert profit_on_risk(Decimal("50"), Decimal("0")) is None

    def test_margin_efficiency(self):
        assert margin_efficiency(Decimal("150"), Decimal("2000")) == 7.5
        assert margin_efficiency(Decimal("150"), Decimal("0")) is None


class TestRounding:

    @pytest.mark.parametrize("value, expected", [
        (Decimal("1.005"), Decimal("1.01")),
        (Decimal("-1.005"), Decimal("-1.01")),
        (Decimal("2.675"), Decimal("2.68")),
        (10, Decimal("10.00")),
    ])
    def test_quantize_half_up(self, value, expected):
        assert quantize_money(value) == expected

    def test_round_pct(self):
        assert round_pct(None) is None
        assert round_pct(33.33333, 1) == 33.3

    def test_stats_fields(self, scenario):
        fields = stats_fields(scenario)
        assert fields["win_rate"] == 66.67
        assert fields["pl"] == Decimal("120")
        assert fields["breakeven_trades"] == 0
