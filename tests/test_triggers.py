"""Tests for execution triggers: market, limit, stop-limit and trailing stops."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from order_core.contracts import (
    LimitKind,
    MarketKind,
    Order,
    OrderKind,
    OrderStatus,
    Side,
    StopLimitKind,
)
from order_core.triggers import evaluate_trigger, trail_stop

NOW = datetime(2024, 7, 5, 15, 0, tzinfo=timezone.utc)


def _order(kind: OrderKind, side: Side = Side.BUY) -> Order:
    return Order(
        id="o-1",
        symbol="AAPL",
        side=side,
        quantity=10,
        kind=kind,
        status=OrderStatus.APPROVED,
        created_at=NOW,
        expires_at=NOW + timedelta(days=1),
        portfolio_id="p",
    )


def _run(order: Order, prices: list[float]) -> tuple[Order, list[bool]]:
    """Feed prices one by one, persisting kind state the way the sweep does."""
    fired = []
    for price in prices:
        decision = evaluate_trigger(order, price)
        order = replace(order, kind=decision.kind)
        fired.append(decision.execute)
    return order, fired


# ---------------------------------------------------------------------------
# Market / limit
# ---------------------------------------------------------------------------


def test_market_always_executes() -> None:
    decision = evaluate_trigger(_order(MarketKind()), 123.45)
    assert decision.execute is True
    assert decision.kind == MarketKind()


def test_buy_limit_at_or_below() -> None:
    order = _order(LimitKind(145.0))
    assert evaluate_trigger(order, 145.01).execute is False
    assert evaluate_trigger(order, 145.00).execute is True
    assert evaluate_trigger(order, 140.0).execute is True


def test_sell_limit_at_or_above() -> None:
    order = _order(LimitKind(170.0), Side.SELL)
    assert evaluate_trigger(order, 169.99).execute is False
    assert evaluate_trigger(order, 170.0).execute is True


def test_limit_kind_unchanged() -> None:
    order = _order(LimitKind(145.0))
    assert evaluate_trigger(order, 150.0).kind is order.kind


# ---------------------------------------------------------------------------
# Stop-limit
# ---------------------------------------------------------------------------


def test_sell_stop_without_limit_fills_on_trigger() -> None:
    order = _order(StopLimitKind(stop_price=140.0), Side.SELL)
    assert evaluate_trigger(order, 141.0).execute is False
    decision = evaluate_trigger(order, 140.0)
    assert decision.execute is True
    assert decision.kind.triggered is True


def test_buy_stop_triggers_above() -> None:
    order = _order(StopLimitKind(stop_price=155.0))
    assert evaluate_trigger(order, 154.99).execute is False
    assert evaluate_trigger(order, 155.0).execute is True


def test_stop_limit_waits_for_limit_after_trigger() -> None:
    # sell stop 100, limit 99: gap down through the limit triggers but does not fill
    order = _order(StopLimitKind(stop_price=100.0, limit_price=99.0), Side.SELL)
    order, fired = _run(order, [101.0, 98.0, 98.5, 99.5])
    assert fired == [False, False, False, True]
    assert order.kind.triggered is True


def test_triggered_state_survives_price_moving_back() -> None:
    order = _order(StopLimitKind(stop_price=100.0, limit_price=101.0))
    decision = evaluate_trigger(order, 102.0)
    assert decision.execute is False
    assert decision.kind.triggered is True
    # back under the stop but within the limit: fills because the stop already fired
    assert evaluate_trigger(replace(order, kind=decision.kind), 99.0).execute is True


# ---------------------------------------------------------------------------
# Trailing stops
# ---------------------------------------------------------------------------


def test_trailing_sell_stop_ratchets_up() -> None:
    order = _order(StopLimitKind(trail_amount=5.0), Side.SELL)
    order, fired = _run(order, [100.0, 105.0, 103.0])
    assert fired == [False, False, False]
    assert order.kind.stop_price == pytest.approx(100.0)
    assert order.kind.water_mark == pytest.approx(105.0)

    order, fired = _run(order, [99.5])
    assert fired == [True]


def test_trailing_sell_stop_never_lowered() -> None:
    kind = StopLimitKind(trail_amount=5.0, stop_price=100.0, water_mark=105.0)
    moved = trail_stop(kind, Side.SELL, 102.0)
    assert moved.stop_price == pytest.approx(100.0)
    assert moved.water_mark == pytest.approx(105.0)


def test_trailing_buy_stop_ratchets_down() -> None:
    order = _order(StopLimitKind(trail_amount=2.0), Side.BUY)
    order, fired = _run(order, [50.0, 47.0, 48.0])
    assert fired == [False, False, False]
    assert order.kind.stop_price == pytest.approx(49.0)
    assert order.kind.water_mark == pytest.approx(47.0)
    _, fired = _run(order, [49.0])
    assert fired == [True]


def test_trailing_percent() -> None:
    kind = trail_stop(StopLimitKind(trail_percent=10.0), Side.SELL, 200.0)
    assert kind.stop_price == pytest.approx(180.0)
    kind = trail_stop(kind, Side.SELL, 250.0)
    assert kind.stop_price == pytest.approx(225.0)


def test_triggered_trailing_stop_is_frozen() -> None:
    order = _order(StopLimitKind(trail_amount=5.0, limit_price=90.0), Side.SELL)
    order, _ = _run(order, [100.0, 94.0])
    assert order.kind.triggered is True
    stop = order.kind.stop_price
    order, _ = _run(order, [120.0])
    assert order.kind.stop_price == stop


def test_unknown_kind_raises() -> None:
    with pytest.raises(TypeError):
        evaluate_trigger(_order(object()), 100.0)  # type: ignore[arg-type]
