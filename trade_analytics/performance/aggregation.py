"""
Aggregation primitives shared by every view.

All ratio math goes through ``safe_ratio`` so no NaN or infinity ever reaches
a result. Money stays ``Decimal`` until ``quantize_money``; percentages are
floats on the 0-100 scale.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Hashable, Iterable, Optional, TypeVar, Union

from trade_analytics.performance.models import CENT, ZERO, ClosedTrade, Money, TradeOutcome

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

Number = Union[Decimal, int, float]


def group_by(
    records: Iterable[T],
    key_fn: Callable[[T], Optional[K]],
    drop_none: bool = False,
) -> dict[K, list[T]]:
    """Insertion-ordered grouping; ``drop_none`` leaves out records keyed None."""
    groups: dict[K, list[T]] = {}
    for record in records:
        key = key_fn(record)
        if key is None and drop_none:
            continue
        groups.setdefault(key, []).append(record)
    return groups


def safe_ratio(numerator: Number, denominator: Number) -> Optional[float]:
    """numerator / denominator, or None when the denominator is zero."""
    if denominator == 0:
        return None
    return float(Decimal(str(numerator)) / Decimal(str(denominator)))


def quantize_money(value: Number) -> Money:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def round_pct(value: Optional[float], precision: int = 2) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), precision)


# ── Tally ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Tally:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    breakeven_trades: int = 0
    pl: Money = ZERO
    gross_profit: Money = ZERO
    gross_loss: Money = ZERO
    largest_win: Money = ZERO
    largest_loss: Money = ZERO
    total_holding_days: int = 0


def tally(trades: Iterable[ClosedTrade]) -> Tally:
    total = wins = losses = breakevens = holding = 0
    pl = gross_profit = gross_loss = largest_win = largest_loss = ZERO
    for trade in trades:
        total += 1
        value = trade.realized_pl
        pl += value
        # Same-day trades count as one day held.
        holding += max(1, trade.holding_days)
        outcome = trade.outcome
        if outcome == TradeOutcome.WIN:
            wins += 1
            gross_profit += value
            largest_win = max(largest_win, value)
        elif outcome == TradeOutcome.LOSS:
            losses += 1
            gross_loss += value
            largest_loss = min(largest_loss, value)
        else:
            breakevens += 1
    return Tally(
        total_trades=total,
        winning_trades=wins,
        losing_trades=losses,
        breakeven_trades=breakevens,
        pl=pl,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        largest_win=largest_win,
        largest_loss=largest_loss,
        total_holding_days=holding,
    )


def win_rate(stats: Tally) -> float:
    """Winners over decided trades, 0-100. Breakevens are not in the denominator."""
    ratio = safe_ratio(stats.winning_trades, stats.winning_trades + stats.losing_trades)
    return ratio * 100 if ratio is not None else 0.0


def profit_factor(stats: Tally) -> Optional[float]:
    if stats.losing_trades == 0:
        return None
    return safe_ratio(stats.gross_profit, abs(stats.gross_loss))


def profit_on_risk(pl: Money, total_risk: Money) -> Optional[float]:
    ratio = safe_ratio(pl, total_risk)
    return ratio * 100 if ratio is not None else None


def margin_efficiency(pl: Money, margin_used: Money) -> Optional[float]:
    ratio = safe_ratio(pl, margin_used)
    return ratio * 100 if ratio is not None else None


def average(total: Number, count: int) -> Number:
    """Mean, or 0 for an empty set."""
    if count == 0:
        return ZERO if isinstance(total, Decimal) else 0
    return total / count


def stats_fields(trades: Iterable[ClosedTrade], precision: int = 2) -> dict:
    """The common PerformanceStats fields for one group of trades."""
    stats = tally(trades)
    return {
        "pl": stats.pl,
        "win_rate": round_pct(win_rate(stats), precision),
        "total_trades": stats.total_trades,
        "winning_trades": stats.winning_trades,
        "losing_trades": stats.losing_trades,
        "breakeven_trades": stats.breakeven_trades,
    }


def sum_money(values: Iterable[Money]) -> Money:
    return sum(values, ZERO)
