"""
Data contracts for order_core: orders, portfolio snapshots, fills, price points.

Plain frozen dataclasses. Changing an order means building a new record with
``dataclasses.replace``; the repository's compare-and-set decides which
record wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    EXECUTING = "EXECUTING"
    EXECUTED = "EXECUTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    OrderStatus.EXECUTED,
    OrderStatus.REJECTED,
    OrderStatus.EXPIRED,
    OrderStatus.CANCELLED,
    OrderStatus.FAILED,
})

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.APPROVED,
        OrderStatus.REJECTED,
        OrderStatus.EXPIRED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.APPROVED: frozenset({
        OrderStatus.EXECUTING,
        OrderStatus.EXPIRED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.EXECUTING: frozenset({OrderStatus.EXECUTED, OrderStatus.FAILED}),
}


def can_transition(source: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(source, frozenset())


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> Side:
        return Side.SELL if self is Side.BUY else Side.BUY


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LIMIT = "STOP_LIMIT"


class RiskLevel(str, Enum):
    """Order risk level and portfolio risk tolerance share one ordered scale."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


# ---------------------------------------------------------------------------
# Order kinds (tagged variant)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketKind:
    order_type: ClassVar[OrderType] = OrderType.MARKET


@dataclass(frozen=True)
class LimitKind:
    limit_price: float
    order_type: ClassVar[OrderType] = OrderType.LIMIT


@dataclass(frozen=True)
class StopLimitKind:
    """Stop order with optional limit and optional trailing behaviour.

    ``triggered`` and ``water_mark`` are evaluation state persisted between
    sweeps. Without a ``limit_price`` the order fills at market once triggered.
    """

    stop_price: float | None = None
    limit_price: float | None = None
    trail_amount: float | None = None
    trail_percent: float | None = None
    triggered: bool = False
    water_mark: float | None = None
    order_type: ClassVar[OrderType] = OrderType.STOP_LIMIT

    @property
    def is_trailing(self) -> bool:
        return self.trail_amount is not None or self.trail_percent is not None


OrderKind = Union[MarketKind, LimitKind, StopLimitKind]


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderRequest:
    """What the recommendation source (or a CLI user) asks for."""

    symbol: str
    side: Side
    quantity: int
    order_type: OrderType = OrderType.MARKET
    limit_price: float | None = None
    stop_price: float | None = None
    stop_loss_price: float | None = None
    take_profit_price: float | None = None
    trail_amount: float | None = None
    trail_percent: float | None = None
    expires_at: datetime | None = None
    confidence: float | None = None
    reasoning: tuple[str, ...] = ()
    risk_level: RiskLevel = RiskLevel.MEDIUM
    recommendation_id: str | None = None


@dataclass(frozen=True)
class ExecutionDetails:
    fill_price: float
    filled_at: datetime
    quantity: int
    commission: float = 0.0


@dataclass(frozen=True)
class Order:
    id: str
    symbol: str
    side: Side
    quantity: int
    kind: OrderKind
    status: OrderStatus
    created_at: datetime
    expires_at: datetime
    portfolio_id: str | None = None
    stop_loss_price: float | None = None
    take_profit_price: float | None = None
    confidence: float | None = None
    reasoning: tuple[str, ...] = ()
    risk_level: RiskLevel = RiskLevel.MEDIUM
    recommendation_id: str | None = None
    parent_id: str | None = None
    oco_group: str | None = None
    failure_reason: str | None = None
    cancel_reason: str | None = None
    execution: ExecutionDetails | None = None
    approved_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def order_type(self) -> OrderType:
        return self.kind.order_type

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def limit_price(self) -> float | None:
        return getattr(self.kind, "limit_price", None)

    @property
    def stop_price(self) -> float | None:
        return getattr(self.kind, "stop_price", None)


@dataclass(frozen=True)
class OrderTransition:
    """One applied status change, as reported by the sweep and the journal."""

    order_id: str
    from_status: OrderStatus | None
    to_status: OrderStatus
    at: datetime
    reason: str = ""
    order: Order | None = None


# ---------------------------------------------------------------------------
# Portfolio collaborator shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskProfile:
    max_position_percent: float = 10.0
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM
    day_trading_allowed: bool = False
    daily_loss_limit: float | None = None


@dataclass(frozen=True)
class RiskConstraints:
    """Per-assignment overrides supplied by the caller."""

    max_position_percent: float | None = None
    allow_risk_override: bool = False
    max_day_trades: int | None = None


@dataclass(frozen=True)
class Position:
    symbol: str
    quantity: int
    avg_price: float
    opened_at: datetime


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Read-only view of a portfolio at one instant."""

    portfolio_id: str
    cash: float
    positions: dict[str, Position] = field(default_factory=dict)
    risk_profile: RiskProfile = RiskProfile()
    day_trade_count: int = 0
    daily_realized_pnl: float = 0.0
    as_of: datetime | None = None

    def position_quantity(self, symbol: str) -> int:
        pos = self.positions.get(symbol)
        return pos.quantity if pos else 0

    def total_value(self, marks: dict[str, float] | None = None) -> float:
        """Cash plus positions, marked at *marks* where given, else at cost."""
        marks = marks or {}
        invested = sum(
            pos.quantity * marks.get(sym, pos.avg_price)
            for sym, pos in self.positions.items()
        )
        return self.cash + invested


@dataclass(frozen=True)
class Fill:
    order_id: str
    symbol: str
    side: Side
    quantity: int
    price: float
    timestamp: datetime
    commission: float = 0.0

    @property
    def gross_value(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class PricePoint:
    day: date
    close: float
    symbol: str = ""


def kind_to_dict(kind: OrderKind) -> dict[str, Any]:
    """Flat dict for storage and logging: order_type tag plus variant fields."""
    data: dict[str, Any] = {"order_type": kind.order_type.value}
    data.update(vars(kind))
    return data


def kind_from_dict(data: dict[str, Any]) -> OrderKind:
    fields = dict(data)
    order_type = OrderType(fields.pop("order_type"))
    if order_type is OrderType.MARKET:
        return MarketKind()
    if order_type is OrderType.LIMIT:
        return LimitKind(limit_price=float(fields["limit_price"]))
    return StopLimitKind(**fields)
