"""
order_core: order state machine, calendar gate, risk gate and trigger evaluation.

Pure domain logic. Persistence, prices and portfolio state come in
through the Protocols in ``order_core.ports``.
"""

from order_core.calendar_gate import MarketPhase, MarketStatus, market_status, validate_trading_hours
from order_core.contracts import (
    LimitKind,
    MarketKind,
    Order,
    OrderRequest,
    OrderStatus,
    OrderTransition,
    OrderType,
    PortfolioSnapshot,
    Position,
    RiskConstraints,
    RiskLevel,
    RiskProfile,
    Side,
    StopLimitKind,
)
from order_core.lifecycle import OrderLifecycleManager
from order_core.risk_engine import RiskCheckResult, evaluate_risk
from order_core.triggers import TriggerDecision, evaluate_trigger

__all__ = [
    "LimitKind",
    "MarketKind",
    "MarketPhase",
    "MarketStatus",
    "Order",
    "OrderLifecycleManager",
    "OrderRequest",
    "OrderStatus",
    "OrderTransition",
    "OrderType",
    "PortfolioSnapshot",
    "Position",
    "RiskCheckResult",
    "RiskConstraints",
    "RiskLevel",
    "RiskProfile",
    "Side",
    "StopLimitKind",
    "TriggerDecision",
    "evaluate_risk",
    "evaluate_trigger",
    "market_status",
    "validate_trading_hours",
]
