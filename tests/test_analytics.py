"""
Dashboard runner tests: sequential and concurrent renders agree.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from trade_analytics.performance.analytics import DASHBOARD_VIEWS, DashboardReport, PerformanceAnalytics
from trade_analytics.performance.records import RecordBundle

from tests.conftest import USER_ID, make_cash


class FakeRepository:
    def __init__(self, records: RecordBundle):
        self.records = records
        self.calls: list[str] = []

    def get_positions(self, user_id):
        self.calls.append("positions")
        return self.records.positions

    def get_strategies(self, user_id):
        self.calls.append("strategies")
        return self.records.strategies

    def get_cash_transactions(self, user_id):
        self.calls.append("cash")
        return self.records.cash_transactions


@pytest.fixture
def records(three_trades, condor_bundle):
    return RecordBundle(
        positions=tuple(three_trades.positions) + tuple(condor_bundle.positions),
        strategies=condor_bundle.strategies,
        cash_transactions=(make_cash("c1", "DEPOSIT", 1000),),
    )


class TestPerformanceAnalytics:

    def test_every_view_present(self, records, query, settings):
        report = PerformanceAnalytics(settings).compute_dashboard(records, query)
        assert isinstance(report, DashboardReport)
        assert set(DASHBOARD_VIEWS) == set(DashboardReport.model_fields)
        assert report.win_rate_metrics.value.total_trades == 5
        assert report.net_cash_flow.value == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_async_matches_sync(self, records, query, settings):
        analytics = PerformanceAnalytics(settings)
        sequential = analytics.compute_dashboard(records, query)
        concurrent = await analytics.compute_dashboard_async(records, query)
        assert concurrent == sequential

    def test_unknown_view(self, records, query, settings):
        with pytest.raises(ValueError):
            PerformanceAnalytics(settings).compute_view("sharpe_ratio", records, query)

    def test_compute_for_user_fetches_once(self, records, query, settings):
        repository = FakeRepository(records)
        report = PerformanceAnalytics(settings).compute_for_user(repository, query)
        assert repository.calls == ["positions", "strategies", "cash"]
        assert report.symbol_performance.value[0].symbol == "AAPL"
        assert query.user_id == USER_ID
