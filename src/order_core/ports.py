"""
Collaborator interfaces the lifecycle manager depends on.

Adapters live in ``execution`` (order store, paper ledger) and ``data``
(price feeds). Tests substitute their own fakes.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol

from order_core.contracts import Fill, Order, OrderStatus, PortfolioSnapshot, PricePoint


class PortfolioLedger(Protocol):
    def get_snapshot(self, portfolio_id: str) -> PortfolioSnapshot: ...

    def apply_fill(self, portfolio_id: str, fill: Fill) -> None: ...


class PriceFeed(Protocol):
    def get_current_price(self, symbol: str) -> float: ...

    def get_historical_series(self, symbol: str, start: date, end: date) -> list[PricePoint]: ...


class OrderRepository(Protocol):
    def add(self, order: Order) -> None: ...

    def get(self, order_id: str) -> Order | None: ...

    def list_by_status(self, *statuses: OrderStatus) -> list[Order]: ...

    def compare_and_set(self, order_id: str, expected: OrderStatus, new: Order) -> bool:
        """Store *new* only if the stored order's status still equals *expected*."""
        ...
