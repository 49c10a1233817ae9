"""
Performance Analytics — one dashboard render, every view
========================================================

The views are independent pure functions, so a dashboard can compute them
one after the other or fan them out over worker threads with
``asyncio.gather``. Either way the result is the same DashboardReport.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from trade_analytics.performance import metrics
from trade_analytics.performance.models import MetricQuery
from trade_analytics.performance.records import PerformanceRepository, RecordBundle
from trade_analytics.performance.results import MetricResponse
from trade_analytics.utils.config import Settings, get_settings
from trade_analytics.utils.logger import get_logger

logger = get_logger(__name__)


class DashboardReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    win_rate_metrics: MetricResponse
    symbol_performance: MetricResponse
    strategy_performance: MetricResponse
    coin_performance: MetricResponse
    margin_efficiency: MetricResponse
    day_of_week_performance: MetricResponse
    days_to_expiration_performance: MetricResponse
    entry_time_performance: MetricResponse
    entry_time_by_strategy: MetricResponse
    contract_month_performance: MetricResponse
    expiration_status: MetricResponse
    options_by_type: MetricResponse
    holding_period_distribution: MetricResponse
    net_cash_flow: MetricResponse
    cash_flow_summary: MetricResponse
    pl_over_time: MetricResponse
    roi_over_time: MetricResponse
    drawdown_over_time: MetricResponse
    last_n_days_pl: MetricResponse
    daily_performance_calendar: MetricResponse
    monthly_performance: MetricResponse


DASHBOARD_VIEWS: dict[str, Callable[..., MetricResponse]] = {
    name: getattr(metrics, name) for name in DashboardReport.model_fields
}


class PerformanceAnalytics:
    """
    Computes the full dashboard for one query.
    Holds no state between calls besides its settings.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def compute_view(self, name: str, records: RecordBundle, query: MetricQuery) -> MetricResponse:
        try:
            view = DASHBOARD_VIEWS[name]
        except KeyError:
            raise ValueError(f"Unknown view: {name}") from None
        return view(records, query, settings=self.settings)

    def compute_dashboard(self, records: RecordBundle, query: MetricQuery) -> DashboardReport:
        started = time.perf_counter()
        values = {name: self.compute_view(name, records, query) for name in DASHBOARD_VIEWS}
        self._log_done(query, values, started, concurrent=False)
        return DashboardReport(**values)

    async def compute_dashboard_async(self, records: RecordBundle, query: MetricQuery) -> DashboardReport:
        started = time.perf_counter()
        names = list(DASHBOARD_VIEWS)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.compute_view, name, records, query) for name in names)
        )
        values = dict(zip(names, results))
        self._log_done(query, values, started, concurrent=True)
        return DashboardReport(**values)

    def compute_for_user(
        self,
        repository: PerformanceRepository,
        query: MetricQuery,
    ) -> DashboardReport:
        """Fetch once through the repository, then compute every view."""
        return self.compute_dashboard(RecordBundle.from_repository(repository, query.user_id), query)

    @staticmethod
    def _log_done(query: MetricQuery, values: dict[str, Any], started: float, concurrent: bool) -> None:
        logger.info(
            "dashboard_computed",
            user_id=query.user_id,
            asset_type=query.asset_type.value if query.asset_type else None,
            views=len(values),
            skipped=max((v.skipped for v in values.values()), default=0),
            concurrent=concurrent,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
