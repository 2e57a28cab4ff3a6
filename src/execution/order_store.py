"""
Order repositories with compare-and-set status writes.

InMemoryOrderStore: dict under a lock (tests, single-process demos).
SqliteOrderStore:   restart-safe; CAS is ``UPDATE ... WHERE id = ? AND status = ?``.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from order_core.contracts import (
    ExecutionDetails,
    Order,
    OrderStatus,
    RiskLevel,
    Side,
    kind_from_dict,
    kind_to_dict,
)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def order_to_record(order: Order) -> dict[str, Any]:
    """JSON-safe dict of an order."""
    execution = None
    if order.execution is not None:
        execution = {
            "fill_price": order.execution.fill_price,
            "filled_at": _ts(order.execution.filled_at),
            "quantity": order.execution.quantity,
            "commission": order.execution.commission,
        }
    return {
        "id": order.id,
        "portfolio_id": order.portfolio_id,
        "symbol": order.symbol,
        "side": order.side.value,
        "quantity": order.quantity,
        "kind": kind_to_dict(order.kind),
        "status": order.status.value,
        "created_at": _ts(order.created_at),
        "expires_at": _ts(order.expires_at),
        "stop_loss_price": order.stop_loss_price,
        "take_profit_price": order.take_profit_price,
        "confidence": order.confidence,
        "reasoning": list(order.reasoning),
        "risk_level": order.risk_level.value,
        "recommendation_id": order.recommendation_id,
        "parent_id": order.parent_id,
        "oco_group": order.oco_group,
        "failure_reason": order.failure_reason,
        "cancel_reason": order.cancel_reason,
        "execution": execution,
        "approved_at": _ts(order.approved_at),
        "updated_at": _ts(order.updated_at),
    }


def order_from_record(data: dict[str, Any]) -> Order:
    raw_exec = data.get("execution")
    execution = None
    if raw_exec:
        execution = ExecutionDetails(
            fill_price=raw_exec["fill_price"],
            filled_at=_parse_ts(raw_exec["filled_at"]),
            quantity=raw_exec["quantity"],
            commission=raw_exec.get("commission", 0.0),
        )
    return Order(
        id=data["id"],
        portfolio_id=data.get("portfolio_id"),
        symbol=data["symbol"],
        side=Side(data["side"]),
        quantity=int(data["quantity"]),
        kind=kind_from_dict(data["kind"]),
        status=OrderStatus(data["status"]),
        created_at=_parse_ts(data["created_at"]),
        expires_at=_parse_ts(data["expires_at"]),
        stop_loss_price=data.get("stop_loss_price"),
        take_profit_price=data.get("take_profit_price"),
        confidence=data.get("confidence"),
        reasoning=tuple(data.get("reasoning") or ()),
        risk_level=RiskLevel(data.get("risk_level", RiskLevel.MEDIUM.value)),
        recommendation_id=data.get("recommendation_id"),
        parent_id=data.get("parent_id"),
        oco_group=data.get("oco_group"),
        failure_reason=data.get("failure_reason"),
        cancel_reason=data.get("cancel_reason"),
        execution=execution,
        approved_at=_parse_ts(data.get("approved_at")),
        updated_at=_parse_ts(data.get("updated_at")),
    )


class InMemoryOrderStore:
    """Thread-safe dict-backed repository."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def add(self, order: Order) -> None:
        with self._lock:
            if order.id in self._orders:
                raise ValueError(f"Order already exists: {order.id}")
            self._orders[order.id] = order

    def get(self, order_id: str) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    def list_by_status(self, *statuses: OrderStatus) -> list[Order]:
        with self._lock:
            orders = [o for o in self._orders.values() if not statuses or o.status in statuses]
        return sorted(orders, key=lambda o: o.created_at)

    def compare_and_set(self, order_id: str, expected: OrderStatus, new: Order) -> bool:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.status is not expected:
                return False
            self._orders[order_id] = new
            return True


class SqliteOrderStore:
    """
    SQLite-backed repository. One row per order; the full record is kept as
    JSON next to the indexed columns the sweep filters on.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    oco_group TEXT,
                    record TEXT NOT NULL
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders (status)")

    def add(self, order: Order) -> None:
        with self._conn() as c:
            c.execute(
                """INSERT INTO orders (id, status, symbol, created_at, expires_at, oco_group, record)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    order.id,
                    order.status.value,
                    order.symbol,
                    _ts(order.created_at),
                    _ts(order.expires_at),
                    order.oco_group,
                    json.dumps(order_to_record(order)),
                ),
            )

    def get(self, order_id: str) -> Order | None:
        with self._conn() as c:
            row = c.execute("SELECT record FROM orders WHERE id = ?", (order_id,)).fetchone()
        return order_from_record(json.loads(row[0])) if row else None

    def list_by_status(self, *statuses: OrderStatus) -> list[Order]:
        with self._conn() as c:
            if statuses:
                marks = ", ".join("?" for _ in statuses)
                rows = c.execute(
                    f"SELECT record FROM orders WHERE status IN ({marks}) ORDER BY created_at",
                    tuple(s.value for s in statuses),
                ).fetchall()
            else:
                rows = c.execute("SELECT record FROM orders ORDER BY created_at").fetchall()
        return [order_from_record(json.loads(r[0])) for r in rows]

    def compare_and_set(self, order_id: str, expected: OrderStatus, new: Order) -> bool:
        with self._conn() as c:
            cur = c.execute(
                "UPDATE orders SET status = ?, expires_at = ?, oco_group = ?, record = ? WHERE id = ? AND status = ?",
                (
                    new.status.value,
                    _ts(new.expires_at),
                    new.oco_group,
                    json.dumps(order_to_record(new)),
                    order_id,
                    expected.value,
                ),
            )
            return cur.rowcount == 1
