"""
Execution trigger evaluator: should an APPROVED order execute at this price?

One evaluation function per order kind, dispatched on the kind's type.
STOP_LIMIT orders carry state (``triggered``, ``water_mark``, trailing
``stop_price``); the evaluator returns the updated kind and the caller
persists it.

Trailing stops:
    SELL stop (protects a long):  water mark = highest price seen,
                                  stop = high - trail, only ever raised.
    BUY stop (protects a short):  water mark = lowest price seen,
                                  stop = low + trail, only ever lowered.
Once triggered the stop is frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import singledispatch

from order_core.contracts import (
    LimitKind,
    MarketKind,
    Order,
    OrderKind,
    Side,
    StopLimitKind,
)


@dataclass(frozen=True)
class TriggerDecision:
    execute: bool
    kind: OrderKind
    reason: str = ""


def evaluate_trigger(order: Order, current_price: float) -> TriggerDecision:
    """Decide whether *order* executes at *current_price*.

    The returned ``kind`` equals ``order.kind`` unless trigger state moved.
    """
    return _evaluate(order.kind, order.side, current_price)


def _limit_reached(side: Side, price: float, limit: float) -> bool:
    if side is Side.BUY:
        return price <= limit
    return price >= limit


@singledispatch
def _evaluate(kind: OrderKind, side: Side, price: float) -> TriggerDecision:
    raise TypeError(f"Unsupported order kind: {type(kind).__name__}")


@_evaluate.register(MarketKind)
def _evaluate_market(kind: MarketKind, side: Side, price: float) -> TriggerDecision:
    return TriggerDecision(True, kind, "market")


@_evaluate.register(LimitKind)
def _evaluate_limit(kind: LimitKind, side: Side, price: float) -> TriggerDecision:
    if _limit_reached(side, price, kind.limit_price):
        return TriggerDecision(True, kind, f"limit {kind.limit_price:.2f} reached at {price:.2f}")
    return TriggerDecision(False, kind)


def trail_stop(kind: StopLimitKind, side: Side, price: float) -> StopLimitKind:
    """Advance the water mark with *price* and ratchet the stop toward the market."""
    if side is Side.SELL:
        mark = price if kind.water_mark is None else max(kind.water_mark, price)
    else:
        mark = price if kind.water_mark is None else min(kind.water_mark, price)

    if kind.trail_amount is not None:
        distance = kind.trail_amount
    else:
        distance = mark * kind.trail_percent / 100

    if side is Side.SELL:
        candidate = mark - distance
        stop = candidate if kind.stop_price is None else max(kind.stop_price, candidate)
    else:
        candidate = mark + distance
        stop = candidate if kind.stop_price is None else min(kind.stop_price, candidate)

    return replace(kind, water_mark=mark, stop_price=stop)


def _after_trigger(kind: StopLimitKind, side: Side, price: float) -> TriggerDecision:
    if kind.limit_price is None:
        return TriggerDecision(True, kind, f"stop {kind.stop_price:.2f} triggered, market fill")
    if _limit_reached(side, price, kind.limit_price):
        return TriggerDecision(True, kind, f"stop triggered, limit {kind.limit_price:.2f} reached")
    return TriggerDecision(False, kind, "stop triggered, waiting for limit")


@_evaluate.register(StopLimitKind)
def _evaluate_stop_limit(kind: StopLimitKind, side: Side, price: float) -> TriggerDecision:
    if kind.triggered:
        return _after_trigger(kind, side, price)

    if kind.is_trailing:
        kind = trail_stop(kind, side, price)

    stop = kind.stop_price
    hit = price >= stop if side is Side.BUY else price <= stop
    if not hit:
        return TriggerDecision(False, kind)

    return _after_trigger(replace(kind, triggered=True), side, price)
