"""
Raw repository records and the per-call record bundle.

These mirror the rows the journal's relational store hands back. They are
validated with pydantic but otherwise untouched; turning them into canonical
trades is the normalizer's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from pydantic import BaseModel, ConfigDict, field_validator

from trade_analytics.performance.models import AssetType

TERMINAL_STATUSES = frozenset({"closed", "expired", "assigned"})


def _timestamp_to_str(value: Any) -> Any:
    # Dates stay date-only so they are never read back as midnight UTC.
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


class RawPosition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    symbol: str
    asset_type: AssetType
    status: str = "open"
    opened_at: Optional[str] = None
    closed_at: Optional[str] = None
    updated_at: Optional[str] = None
    exit_price: Optional[Decimal] = None
    realized_pl: Optional[Decimal] = None
    unrealized_pl: Optional[Decimal] = None
    opening_quantity: Decimal = Decimal("0")
    current_quantity: Optional[Decimal] = None
    strategy_id: Optional[str] = None

    # Options
    option_type: Optional[str] = None
    strike_price: Optional[Decimal] = None
    expiration_date: Optional[str] = None
    total_cost_basis: Optional[Decimal] = None

    # Futures
    contract_month: Optional[str] = None
    margin_requirement: Optional[Decimal] = None

    @field_validator("opened_at", "closed_at", "updated_at", "expiration_date", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> Any:
        return _timestamp_to_str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return str(value).strip().lower() if value is not None else "open"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class RawStrategy(BaseModel):
    """A multi-leg option strategy; its legs are positions sharing ``strategy_id``."""
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    strategy_type: str
    status: str = "open"
    underlying_symbol: Optional[str] = None
    opened_at: Optional[str] = None
    closed_at: Optional[str] = None
    updated_at: Optional[str] = None
    realized_pl: Optional[Decimal] = None
    max_risk: Optional[Decimal] = None
    total_opening_cost: Optional[Decimal] = None

    @field_validator("opened_at", "closed_at", "updated_at", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> Any:
        return _timestamp_to_str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return str(value).strip().lower() if value is not None else "open"

    @property
    def is_terminal(self) -> bool:
        return self.status != "open"


class RawCashTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    transaction_date: str
    transaction_code: str
    amount: Decimal
    asset_type: Optional[AssetType] = None
    symbol: Optional[str] = None

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> Any:
        return _timestamp_to_str(value)


RawRow = Union[Mapping[str, Any], BaseModel]


class PerformanceRepository(Protocol):
    """Upstream store. Implemented outside the engine."""

    def get_positions(self, user_id: str) -> Sequence[RawRow]: ...

    def get_strategies(self, user_id: str) -> Sequence[RawRow]: ...

    def get_cash_transactions(self, user_id: str) -> Sequence[RawRow]: ...


@dataclass(frozen=True)
class RecordBundle:
    """Already-fetched rows for one engine invocation."""
    positions: Sequence[RawRow] = field(default_factory=tuple)
    strategies: Sequence[RawRow] = field(default_factory=tuple)
    cash_transactions: Sequence[RawRow] = field(default_factory=tuple)

    @classmethod
    def from_repository(cls, repository: PerformanceRepository, user_id: str) -> "RecordBundle":
        return cls(
            positions=tuple(repository.get_positions(user_id)),
            strategies=tuple(repository.get_strategies(user_id)),
            cash_transactions=tuple(repository.get_cash_transactions(user_id)),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.positions or self.strategies or self.cash_transactions)
