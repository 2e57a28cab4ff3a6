"""Tests for order repositories: record round trip, listing, compare-and-set."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from execution.order_store import (
    InMemoryOrderStore,
    SqliteOrderStore,
    order_from_record,
    order_to_record,
)
from order_core.contracts import (
    ExecutionDetails,
    LimitKind,
    MarketKind,
    Order,
    OrderStatus,
    RiskLevel,
    Side,
    StopLimitKind,
)

T0 = datetime(2024, 7, 5, 14, 0, tzinfo=timezone.utc)


def _order(order_id: str = "o-1", minutes: int = 0, **kwargs) -> Order:
    fields = dict(
        id=order_id,
        symbol="AAPL",
        side=Side.BUY,
        quantity=10,
        kind=MarketKind(),
        status=OrderStatus.PENDING,
        created_at=T0 + timedelta(minutes=minutes),
        expires_at=T0 + timedelta(days=1),
    )
    fields.update(kwargs)
    return Order(**fields)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryOrderStore()
    return SqliteOrderStore(tmp_path / "orders.db")


def test_record_round_trip_keeps_trailing_state() -> None:
    order = _order(
        kind=StopLimitKind(stop_price=95.0, trail_amount=5.0, triggered=True, water_mark=100.0),
        side=Side.SELL,
        status=OrderStatus.EXECUTED,
        portfolio_id="main",
        reasoning=("breakout", "volume"),
        risk_level=RiskLevel.HIGH,
        parent_id="p-1",
        oco_group="oco-p-1",
        execution=ExecutionDetails(fill_price=94.5, filled_at=T0, quantity=10, commission=0.95),
        approved_at=T0,
        updated_at=T0,
    )
    assert order_from_record(order_to_record(order)) == order


def test_add_and_get(repo) -> None:
    order = _order(kind=LimitKind(145.0))
    repo.add(order)
    assert repo.get(order.id) == order
    assert repo.get("missing") is None


def test_list_by_status_oldest_first(repo) -> None:
    repo.add(_order("late", minutes=5))
    repo.add(_order("early", minutes=1))
    repo.add(_order("done", minutes=2, status=OrderStatus.CANCELLED))
    assert [o.id for o in repo.list_by_status(OrderStatus.PENDING)] == ["early", "late"]
    assert [o.id for o in repo.list_by_status()] == ["early", "done", "late"]
    assert [o.id for o in repo.list_by_status(OrderStatus.PENDING, OrderStatus.CANCELLED)] == ["early", "done", "late"]


def test_compare_and_set(repo) -> None:
    order = _order()
    repo.add(order)
    approved = replace(order, status=OrderStatus.APPROVED, portfolio_id="main")

    assert repo.compare_and_set(order.id, OrderStatus.PENDING, approved) is True
    assert repo.get(order.id) == approved
    # stale expectation loses
    assert repo.compare_and_set(order.id, OrderStatus.PENDING, replace(order, status=OrderStatus.CANCELLED)) is False
    assert repo.get(order.id).status is OrderStatus.APPROVED


def test_compare_and_set_unknown_order(repo) -> None:
    assert repo.compare_and_set("missing", OrderStatus.PENDING, _order("missing")) is False


def test_sqlite_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "orders.db"
    SqliteOrderStore(path).add(_order())
    assert SqliteOrderStore(path).get("o-1") == _order()


def test_memory_rejects_duplicate_id() -> None:
    repo = InMemoryOrderStore()
    repo.add(_order())
    with pytest.raises(ValueError, match="already exists"):
        repo.add(_order())
