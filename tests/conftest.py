"""
Shared fixtures and synthetic record generators for the performance engine.

Rows are built as plain dicts, the way a repository hands them back, so the
pydantic validation in the normalizer is exercised by every test.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import pytest

from trade_analytics.performance.models import AssetType, ClosedTrade, MetricQuery
from trade_analytics.performance.records import RecordBundle
from trade_analytics.utils.config import Settings

USER_ID = "user-1"
TODAY = date(2024, 1, 3)


# ─────────────────────────────────────────────────────────
# Synthetic row generators
# ─────────────────────────────────────────────────────────

def make_position(
    id: str,
    *,
    symbol: str = "AAPL",
    asset_type: str = "stock",
    status: str = "closed",
    opened_at: Optional[str] = "2024-01-01",
    closed_at: Optional[str] = "2024-01-01",
    realized_pl: Any = 0,
    user_id: str = USER_ID,
    **extra: Any,
) -> dict:
    row = {
        "id": id,
        "user_id": user_id,
        "symbol": symbol,
        "asset_type": asset_type,
        "status": status,
        "opened_at": opened_at,
        "closed_at": closed_at,
        "realized_pl": realized_pl,
        "opening_quantity": extra.pop("opening_quantity", 1),
    }
    row.update(extra)
    return row


def make_open_position(id: str, *, unrealized_pl: Any = None, **extra: Any) -> dict:
    return make_position(
        id, status="open", closed_at=None, realized_pl=None, unrealized_pl=unrealized_pl, **extra
    )


def make_option(
    id: str,
    *,
    expiration_date: str = "2024-01-19",
    option_type: str = "call",
    **extra: Any,
) -> dict:
    extra.setdefault("symbol", "SPY")
    return make_position(
        id, asset_type="option", expiration_date=expiration_date, option_type=option_type, **extra
    )


def make_strategy(
    id: str,
    *,
    strategy_type: str = "iron_condor",
    status: str = "closed",
    underlying_symbol: str = "SPY",
    opened_at: Optional[str] = "2024-01-10",
    closed_at: Optional[str] = "2024-01-12",
    realized_pl: Any = 0,
    user_id: str = USER_ID,
    **extra: Any,
) -> dict:
    row = {
        "id": id,
        "user_id": user_id,
        "strategy_type": strategy_type,
        "status": status,
        "underlying_symbol": underlying_symbol,
        "opened_at": opened_at,
        "closed_at": closed_at,
        "realized_pl": realized_pl,
    }
    row.update(extra)
    return row


def make_cash(
    id: str,
    code: str,
    amount: Any,
    *,
    on: str = "2024-01-01",
    user_id: str = USER_ID,
    **extra: Any,
) -> dict:
    row = {
        "id": id,
        "user_id": user_id,
        "transaction_date": on,
        "transaction_code": code,
        "amount": amount,
    }
    row.update(extra)
    return row


def make_trade(
    pl: Any,
    exit_date: date,
    *,
    entry_date: Optional[date] = None,
    id: Optional[str] = None,
    symbol: str = "AAPL",
    asset_type: AssetType = AssetType.STOCK,
    **extra: Any,
) -> ClosedTrade:
    """A canonical ClosedTrade, for the primitives that skip normalization."""
    return ClosedTrade(
        id=id or f"t-{exit_date.isoformat()}-{pl}",
        user_id=USER_ID,
        symbol=symbol,
        asset_type=asset_type,
        entry_date=entry_date or exit_date,
        exit_date=exit_date,
        realized_pl=Decimal(str(pl)),
        **extra,
    )


def bundle(positions=(), strategies=(), cash=()) -> RecordBundle:
    return RecordBundle(
        positions=tuple(positions),
        strategies=tuple(strategies),
        cash_transactions=tuple(cash),
    )


# ─────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, local_timezone="UTC", percent_precision=2)


@pytest.fixture
def query() -> MetricQuery:
    return MetricQuery(user_id=USER_ID, today=TODAY)


@pytest.fixture
def three_trades() -> RecordBundle:
    """+100 on Jan 1st, -40 on Jan 2nd, +60 on Jan 3rd (2024)."""
    return bundle(
        positions=[
            make_position("p1", symbol="AAPL", opened_at="2024-01-01", closed_at="2024-01-01", realized_pl=100),
            make_position("p2", symbol="MSFT", opened_at="2024-01-01", closed_at="2024-01-02", realized_pl=-40),
            make_position("p3", symbol="AAPL", opened_at="2024-01-02", closed_at="2024-01-03", realized_pl=60),
        ]
    )


@pytest.fixture
def cash_rows() -> list[dict]:
    return [
        make_cash("c1", "DEPOSIT", 1000),
        make_cash("c2", "FEE", -10),
        make_cash("c3", "BUY", -500),
        make_cash("c4", "FUTURES_MARGIN", -200, asset_type="futures"),
        make_cash("c5", "FUTURES_MARGIN_RELEASE", 200, asset_type="futures"),
    ]


@pytest.fixture
def condor_bundle() -> RecordBundle:
    """Two closed iron condors, each rolled up from its legs."""
    return bundle(
        positions=[
            make_option("l1", option_type="put", strategy_id="s1", realized_pl=120,
                        opened_at="2024-01-10", closed_at="2024-01-12"),
            make_option("l2", option_type="put", strategy_id="s1", realized_pl=-20,
                        opened_at="2024-01-10", closed_at="2024-01-12"),
            make_option("l3", option_type="call", strategy_id="s2", realized_pl=-30,
                        opened_at="2024-01-15", closed_at="2024-01-19"),
            make_option("l4", option_type="put", strategy_id="s2", realized_pl=-20,
                        opened_at="2024-01-15", closed_at="2024-01-19"),
        ],
        strategies=[
            make_strategy("s1", realized_pl=0, total_opening_cost=-300),
            make_strategy("s2", realized_pl=-50, max_risk=200,
                          opened_at="2024-01-15", closed_at="2024-01-19", status="expired"),
        ],
    )
