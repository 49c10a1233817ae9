"""
Record Normalizer — raw journal rows → canonical trades / positions / cash
=========================================================================

Runs once at the boundary of every metric call:
  - single positions become a ClosedTrade, an OpenPosition, or "unpriced"
  - a partially closed position yields both: a ClosedTrade for the P&L already
    realized and an OpenPosition for the remainder
  - legs of a known multi-leg strategy roll up into ONE ClosedTrade once the
    strategy is terminal; open legs of an open strategy stay open positions,
    and any P&L the open strategy already booked is its own ClosedTrade
  - cash transaction codes map onto the CashFlowKind vocabulary

A malformed row is never fatal: it is logged, counted under its reason and
left out. Rows owned by another user are dropped.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from trade_analytics.performance.bucketing import time_of_day, to_civil_date
from trade_analytics.performance.models import (
    ZERO,
    AssetType,
    CashFlowEvent,
    CashFlowKind,
    ClosedTrade,
    ExpirationDisposition,
    OpenPosition,
    SkipReport,
)
from trade_analytics.performance.records import (
    RawCashTransaction,
    RawPosition,
    RawRow,
    RawStrategy,
    RecordBundle,
)
from trade_analytics.utils.config import Settings, get_settings
from trade_analytics.utils.exceptions import MalformedRecordError
from trade_analytics.utils.logger import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

CASH_CODE_KINDS: dict[str, CashFlowKind] = {
    "DEPOSIT": CashFlowKind.DEPOSIT,
    "ACH": CashFlowKind.DEPOSIT,
    "DCF": CashFlowKind.DEPOSIT,
    "RTP": CashFlowKind.DEPOSIT,
    "DEP": CashFlowKind.DEPOSIT,
    "WIRE_IN": CashFlowKind.DEPOSIT,
    "TRANSFER_IN": CashFlowKind.DEPOSIT,
    "WITHDRAWAL": CashFlowKind.WITHDRAWAL,
    "WIRE_OUT": CashFlowKind.WITHDRAWAL,
    "ACH_OUT": CashFlowKind.WITHDRAWAL,
    "TRANSFER_OUT": CashFlowKind.WITHDRAWAL,
    "FEE": CashFlowKind.FEE,
    "FUTURES_MARGIN": CashFlowKind.MARGIN_RESERVE,
    "FUTURES_MARGIN_RELEASE": CashFlowKind.MARGIN_RELEASE,
    "FUTURES_PROFIT": CashFlowKind.FUTURES_REALIZED,
    "FUTURES_LOSS": CashFlowKind.FUTURES_REALIZED,
}


def cash_kind_for_code(code: str) -> CashFlowKind:
    """Map a transaction code (or an already-canonical kind) onto CashFlowKind.

    Anything unrecognised is a buy/sell/dividend/interest style movement and
    counts as a trade cash effect.
    """
    text = (code or "").strip()
    try:
        return CashFlowKind(text.lower())
    except ValueError:
        pass
    return CASH_CODE_KINDS.get(text.upper(), CashFlowKind.TRADE_CASH_EFFECT)


@dataclass(frozen=True)
class NormalizedRecords:
    closed_trades: tuple[ClosedTrade, ...] = ()
    open_positions: tuple[OpenPosition, ...] = ()
    cash_flows: tuple[CashFlowEvent, ...] = ()
    skips: SkipReport = field(default_factory=SkipReport)
    unpriced: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.closed_trades or self.open_positions or self.cash_flows)


def _row_id(row: RawRow) -> Optional[str]:
    value = row.get("id") if isinstance(row, Mapping) else getattr(row, "id", None)
    return str(value) if value is not None else None


def _coerce(model: Type[ModelT], row: RawRow) -> ModelT:
    if isinstance(row, model):
        return row
    data = row.model_dump() if isinstance(row, BaseModel) else row
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedRecordError(_row_id(row), "invalid_fields") from exc


class RecordNormalizer:
    """Turns one user's RecordBundle into NormalizedRecords."""

    def __init__(self, user_id: str, settings: Optional[Settings] = None):
        self.user_id = user_id
        self.settings = settings or get_settings()
        self._tz = self.settings.local_timezone
        self._skips: Counter = Counter()
        self._unpriced = 0

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # ENTRY POINT
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def normalize(self, bundle: RecordBundle) -> NormalizedRecords:
        self._skips = Counter()
        self._unpriced = 0
        if not self.user_id or bundle.is_empty:
            return NormalizedRecords()

        positions = self._validated(RawPosition, bundle.positions)
        strategies = {s.id: s for s in self._validated(RawStrategy, bundle.strategies)}
        cash_rows = self._validated(RawCashTransaction, bundle.cash_transactions)

        closed: list[ClosedTrade] = []
        open_positions: list[OpenPosition] = []

        legs: dict[str, list[RawPosition]] = {sid: [] for sid in strategies}
        for position in positions:
            if position.strategy_id and position.strategy_id in strategies:
                legs[position.strategy_id].append(position)
                continue
            self._collect(self._normalize_position, (position,), closed, open_positions)

        for strategy_id, strategy in strategies.items():
            self._collect(self._normalize_strategy, (strategy, legs[strategy_id]), closed, open_positions)

        cash_flows: list[CashFlowEvent] = []
        for row in cash_rows:
            try:
                cash_flows.append(self._normalize_cash(row))
            except MalformedRecordError as exc:
                self._skip(exc)

        result = NormalizedRecords(
            closed_trades=tuple(closed),
            open_positions=tuple(open_positions),
            cash_flows=tuple(cash_flows),
            skips=SkipReport(reasons=dict(self._skips)),
            unpriced=self._unpriced,
        )
        logger.debug(
            "records_normalized",
            user_id=self.user_id,
            closed_trades=len(result.closed_trades),
            open_positions=len(result.open_positions),
            cash_flows=len(result.cash_flows),
            skipped=result.skips.total,
            unpriced=result.unpriced,
        )
        return result

    # ── Helpers ──

    def _skip(self, exc: MalformedRecordError) -> None:
        self._skips[exc.reason] += 1
        logger.warning("record_skipped", record_id=exc.record_id, reason=exc.reason)

    def _validated(self, model: Type[ModelT], rows: Iterable[RawRow]) -> list[ModelT]:
        valid = []
        for row in rows:
            try:
                record = _coerce(model, row)
            except MalformedRecordError as exc:
                self._skip(exc)
                continue
            if record.user_id != self.user_id:
                logger.debug("foreign_record_dropped", record_id=record.id)
                continue
            valid.append(record)
        return valid

    def _collect(self, fn, args: tuple, closed: list, open_positions: list) -> None:
        try:
            produced = fn(*args)
        except MalformedRecordError as exc:
            self._skip(exc)
            return
        for item in produced:
            if isinstance(item, ClosedTrade):
                closed.append(item)
            elif isinstance(item, OpenPosition):
                open_positions.append(item)

    def _date(self, record_id: str, value: Any) -> date:
        try:
            return to_civil_date(value, self._tz)
        except (TypeError, ValueError) as exc:
            raise MalformedRecordError(record_id, "unparseable_date") from exc

    def _entry_date(self, record_id: str, value: Any) -> date:
        if not value:
            raise MalformedRecordError(record_id, "missing_entry_date")
        return self._date(record_id, value)

    def _entry_time(self, value: Any):
        try:
            return time_of_day(value, self._tz)
        except (TypeError, ValueError):
            return None

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # POSITIONS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @staticmethod
    def _is_closed(position: RawPosition) -> bool:
        return position.closed_at is not None or position.exit_price is not None or position.is_terminal

    @staticmethod
    def adjusted_realized_pl(position: RawPosition) -> Optional[Decimal]:
        """Stored realized P&L, except expired options booked at 0 keep their premium."""
        pl = position.realized_pl
        if (
            position.asset_type == AssetType.OPTION
            and position.status == "expired"
            and pl is not None
            and pl == 0
            and position.total_cost_basis
        ):
            return position.total_cost_basis
        return pl

    def _open_position(self, position: RawPosition) -> list[OpenPosition]:
        if position.unrealized_pl is None:
            self._unpriced += 1
            return []
        return [
            OpenPosition(
                id=position.id,
                user_id=position.user_id,
                symbol=position.symbol,
                asset_type=position.asset_type,
                unrealized_pl=position.unrealized_pl,
            )
        ]

    def _exit_date(self, position: RawPosition) -> date:
        raw_exit = position.closed_at or position.updated_at
        if not raw_exit:
            raise MalformedRecordError(position.id, "missing_exit_date")
        return self._date(position.id, raw_exit)

    @staticmethod
    def _is_partially_closed(position: RawPosition) -> bool:
        """Still open, but part of the quantity was closed and booked a realized P&L."""
        return (
            bool(position.realized_pl)
            and position.current_quantity is not None
            and abs(position.current_quantity) < abs(position.opening_quantity)
        )

    def _normalize_position(self, position: RawPosition) -> list:
        if not self._is_closed(position):
            produced: list = []
            if self._is_partially_closed(position):
                try:
                    produced.append(self._partial_close(position))
                except MalformedRecordError as exc:
                    self._skip(exc)
            produced.extend(self._open_position(position))
            return produced

        entry_date = self._entry_date(position.id, position.opened_at)
        exit_date = self._exit_date(position)
        if exit_date < entry_date:
            raise MalformedRecordError(position.id, "exit_before_entry")
        pl = self.adjusted_realized_pl(position)
        if pl is None:
            raise MalformedRecordError(position.id, "missing_realized_pl")
        return [self._trade_from_position(position, entry_date, exit_date, pl)]

    def _partial_close(self, position: RawPosition) -> ClosedTrade:
        """The realized part of a partially closed position, dated by its last update."""
        entry_date = self._entry_date(position.id, position.opened_at)
        if not position.updated_at:
            raise MalformedRecordError(position.id, "missing_exit_date")
        exit_date = self._date(position.id, position.updated_at)
        if exit_date < entry_date:
            raise MalformedRecordError(position.id, "exit_before_entry")
        return self._trade_from_position(position, entry_date, exit_date, position.realized_pl)

    def _trade_from_position(
        self, position: RawPosition, entry_date: date, exit_date: date, pl: Decimal
    ) -> ClosedTrade:
        fields: dict[str, Any] = {}
        if position.asset_type == AssetType.OPTION:
            fields.update(self._option_fields(position, entry_date, exit_date))
        elif position.asset_type == AssetType.FUTURES:
            fields["contract_month"] = position.contract_month
            if position.margin_requirement is not None:
                fields["margin_used"] = position.margin_requirement * abs(position.opening_quantity)
        elif position.asset_type == AssetType.CRYPTO:
            fields["coin"] = position.symbol

        return ClosedTrade(
            id=position.id,
            user_id=position.user_id,
            symbol=position.symbol,
            asset_type=position.asset_type,
            entry_date=entry_date,
            exit_date=exit_date,
            realized_pl=pl,
            entry_time_of_day=self._entry_time(position.opened_at),
            **fields,
        )

    def _option_fields(self, position: RawPosition, entry_date: date, exit_date: date) -> dict:
        fields: dict[str, Any] = {
            "option_type": position.option_type.lower() if position.option_type else None,
            "strike_price": position.strike_price,
        }
        # Without an expiration there is no disposition to report.
        if position.expiration_date:
            expiration = self._date(position.id, position.expiration_date)
            fields["expiration_date"] = expiration
            fields["days_to_expiration"] = (expiration - entry_date).days
            expired = position.status == "expired" or (
                position.status != "assigned" and exit_date >= expiration
            )
            fields["expiration_disposition"] = (
                ExpirationDisposition.EXPIRED if expired else ExpirationDisposition.CLOSED_MANUALLY
            )
        return fields

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # MULTI-LEG STRATEGIES
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _normalize_strategy(self, strategy: RawStrategy, legs: list[RawPosition]) -> list:
        all_legs_closed = bool(legs) and all(self._is_closed(leg) for leg in legs)
        if not (strategy.is_terminal or all_legs_closed):
            # A live strategy only reports what it has already booked; its
            # closed legs carry no P&L of their own until the strategy finishes.
            produced: list = []
            if strategy.realized_pl:
                try:
                    produced.append(self._partial_strategy(strategy, legs))
                except MalformedRecordError as exc:
                    self._skip(exc)
            for leg in legs:
                if not self._is_closed(leg):
                    produced.extend(self._open_position(leg))
            return produced

        entry_date = self._strategy_entry(strategy, legs)
        exit_date = self._strategy_exit(strategy, legs)
        if exit_date < entry_date:
            raise MalformedRecordError(strategy.id, "exit_before_entry")
        pl = self._strategy_pl(strategy, legs)
        return [self._trade_from_strategy(strategy, legs, entry_date, exit_date, pl)]

    def _partial_strategy(self, strategy: RawStrategy, legs: list[RawPosition]) -> ClosedTrade:
        entry_date = self._strategy_entry(strategy, legs)
        if strategy.updated_at:
            exit_date = self._date(strategy.id, strategy.updated_at)
        else:
            dates = [
                self._date(leg.id, leg.closed_at or leg.updated_at)
                for leg in legs
                if self._is_closed(leg) and (leg.closed_at or leg.updated_at)
            ]
            if not dates:
                raise MalformedRecordError(strategy.id, "missing_exit_date")
            exit_date = max(dates)
        if exit_date < entry_date:
            raise MalformedRecordError(strategy.id, "exit_before_entry")
        return self._trade_from_strategy(strategy, legs, entry_date, exit_date, strategy.realized_pl)

    def _trade_from_strategy(
        self,
        strategy: RawStrategy,
        legs: list[RawPosition],
        entry_date: date,
        exit_date: date,
        pl: Decimal,
    ) -> ClosedTrade:
        asset_type = legs[0].asset_type if legs else AssetType.OPTION
        symbol = strategy.underlying_symbol or (legs[0].symbol if legs else strategy.strategy_type)

        if strategy.max_risk:
            defined_risk = strategy.max_risk
        elif strategy.total_opening_cost is not None:
            defined_risk = abs(strategy.total_opening_cost)
        else:
            defined_risk = None

        fields: dict[str, Any] = {}
        expirations = sorted(
            self._date(leg.id, leg.expiration_date) for leg in legs if leg.expiration_date
        )
        if expirations:
            earliest = expirations[0]
            fields["expiration_date"] = earliest
            fields["days_to_expiration"] = (earliest - entry_date).days
        if asset_type == AssetType.OPTION:
            if expirations:
                expired = (
                    strategy.status == "expired"
                    or all(leg.status == "expired" for leg in legs)
                    or exit_date >= expirations[0]
                )
                fields["expiration_disposition"] = (
                    ExpirationDisposition.EXPIRED if expired else ExpirationDisposition.CLOSED_MANUALLY
                )
            option_types = {leg.option_type.lower() for leg in legs if leg.option_type}
            if len(option_types) == 1:
                fields["option_type"] = option_types.pop()
            strikes = {leg.strike_price for leg in legs}
            if len(strikes) == 1:
                fields["strike_price"] = strikes.pop()

        logger.debug("strategy_rolled_up", strategy_id=strategy.id, legs=len(legs), pl=str(pl))
        return ClosedTrade(
            id=strategy.id,
            user_id=strategy.user_id,
            symbol=symbol,
            asset_type=asset_type,
            entry_date=entry_date,
            exit_date=exit_date,
            realized_pl=pl,
            strategy_type=strategy.strategy_type,
            entry_time_of_day=self._entry_time(
                strategy.opened_at or self._earliest_open(legs)
            ),
            defined_risk=defined_risk,
            **fields,
        )

    def _earliest_open(self, legs: list[RawPosition]) -> Optional[str]:
        """Opening timestamp of the first leg, compared in local civil time."""
        opens = []
        for leg in legs:
            if not leg.opened_at:
                continue
            try:
                day = to_civil_date(leg.opened_at, self._tz)
            except (TypeError, ValueError):
                continue
            # Date-only values sort after timed ones on the same day.
            at = self._entry_time(leg.opened_at) or time.max
            opens.append((day, at, leg.opened_at))
        return min(opens)[2] if opens else None

    def _strategy_entry(self, strategy: RawStrategy, legs: list[RawPosition]) -> date:
        if strategy.opened_at:
            return self._date(strategy.id, strategy.opened_at)
        dates = [self._date(leg.id, leg.opened_at) for leg in legs if leg.opened_at]
        if not dates:
            raise MalformedRecordError(strategy.id, "missing_entry_date")
        return min(dates)

    def _strategy_exit(self, strategy: RawStrategy, legs: list[RawPosition]) -> date:
        if strategy.closed_at:
            return self._date(strategy.id, strategy.closed_at)
        dates = [
            self._date(leg.id, leg.closed_at or leg.updated_at)
            for leg in legs
            if leg.closed_at or leg.updated_at
        ]
        if not dates:
            raise MalformedRecordError(strategy.id, "missing_exit_date")
        return max(dates)

    def _strategy_pl(self, strategy: RawStrategy, legs: list[RawPosition]) -> Decimal:
        if strategy.realized_pl:
            return strategy.realized_pl
        leg_pls = [self.adjusted_realized_pl(leg) for leg in legs]
        known = [pl for pl in leg_pls if pl is not None]
        if not known and strategy.realized_pl is None:
            raise MalformedRecordError(strategy.id, "missing_realized_pl")
        return sum(known, ZERO)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # CASH
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _normalize_cash(self, row: RawCashTransaction) -> CashFlowEvent:
        return CashFlowEvent(
            id=row.id,
            user_id=row.user_id,
            amount=row.amount,
            occurred_at=self._date(row.id, row.transaction_date),
            kind=cash_kind_for_code(row.transaction_code),
            asset_type=row.asset_type,
        )


def normalize_records(
    bundle: RecordBundle,
    user_id: str,
    settings: Optional[Settings] = None,
) -> NormalizedRecords:
    return RecordNormalizer(user_id, settings).normalize(bundle)
