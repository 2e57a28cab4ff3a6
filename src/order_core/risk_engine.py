"""
Risk Engine: Order + PortfolioSnapshot + reference price -> RiskCheckResult.

This is the gate between PENDING and APPROVED. Pure and side-effect free.

Checks, in order:
    1. Funds         BUY cost (plus estimated commission) must fit in cash
    2. Shares        SELL quantity must not exceed the held position
    3. Position size BUY post-trade position share of portfolio value
    4. Day trading   SELL closing a position opened the same local day
    5. Tolerance     order risk level vs. portfolio risk tolerance
    6. Daily loss    BUY blocked once realized daily loss reaches the limit

Evaluation stops at the first failure unless ``collect_all`` is set.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, Collection

from order_core.contracts import (
    Order,
    PortfolioSnapshot,
    RiskConstraints,
    Side,
)
from order_core.errors import (
    InsufficientFundsError,
    InsufficientSharesError,
    RiskConstraintViolation,
)


@dataclass(frozen=True)
class RiskCheckResult:
    allowed: bool
    violations: tuple[RiskConstraintViolation, ...] = field(default_factory=tuple)

    @property
    def reasons(self) -> list[str]:
        return [str(v) for v in self.violations]

    def raise_for_violations(self) -> None:
        if self.violations:
            raise self.violations[0]


@dataclass(frozen=True)
class _RiskInput:
    order: Order
    snapshot: PortfolioSnapshot
    price: float
    constraints: RiskConstraints
    commission_rate: float
    now: datetime
    tz: tzinfo


def _check_funds(ri: _RiskInput) -> RiskConstraintViolation | None:
    if ri.order.side is not Side.BUY:
        return None
    value = ri.order.quantity * ri.price
    cost = value + value * ri.commission_rate
    if cost > ri.snapshot.cash:
        return InsufficientFundsError(
            f"Insufficient funds: {ri.order.quantity} {ri.order.symbol} @ {ri.price:.2f} "
            f"needs {cost:.2f}, cash {ri.snapshot.cash:.2f}"
        )
    return None


def _check_shares(ri: _RiskInput) -> RiskConstraintViolation | None:
    if ri.order.side is not Side.SELL:
        return None
    held = ri.snapshot.position_quantity(ri.order.symbol)
    if ri.order.quantity > held:
        return InsufficientSharesError(
            f"Insufficient shares: selling {ri.order.quantity} {ri.order.symbol}, holding {held}"
        )
    return None


def _check_position_size(ri: _RiskInput) -> RiskConstraintViolation | None:
    if ri.order.side is not Side.BUY:
        return None
    limit = ri.constraints.max_position_percent
    if limit is None:
        limit = ri.snapshot.risk_profile.max_position_percent

    total = ri.snapshot.total_value({ri.order.symbol: ri.price})
    position_value = (ri.snapshot.position_quantity(ri.order.symbol) + ri.order.quantity) * ri.price
    if total <= 0:
        return RiskConstraintViolation("Portfolio has no value to size against", check="position_size")
    pct = position_value / total * 100
    if pct > limit:
        return RiskConstraintViolation(
            f"Position size {pct:.1f}% of portfolio exceeds limit {limit:.1f}%",
            check="position_size",
        )
    return None


def _is_day_trade(ri: _RiskInput) -> bool:
    if ri.order.side is not Side.SELL:
        return False
    pos = ri.snapshot.positions.get(ri.order.symbol)
    if pos is None or pos.quantity <= 0:
        return False
    opened = pos.opened_at if pos.opened_at.tzinfo else pos.opened_at.replace(tzinfo=timezone.utc)
    return opened.astimezone(ri.tz).date() == ri.now.astimezone(ri.tz).date()


def _check_day_trading(ri: _RiskInput) -> RiskConstraintViolation | None:
    if not _is_day_trade(ri):
        return None
    if not ri.snapshot.risk_profile.day_trading_allowed:
        return RiskConstraintViolation(
            f"Day trading not allowed: {ri.order.symbol} position opened today",
            check="day_trading",
        )
    cap = ri.constraints.max_day_trades
    if cap is not None and ri.snapshot.day_trade_count >= cap:
        return RiskConstraintViolation(
            f"Day trade limit reached ({ri.snapshot.day_trade_count}/{cap})",
            check="day_trading",
        )
    return None


def _check_risk_tolerance(ri: _RiskInput) -> RiskConstraintViolation | None:
    tolerance = ri.snapshot.risk_profile.risk_tolerance
    if ri.order.risk_level.rank <= tolerance.rank or ri.constraints.allow_risk_override:
        return None
    return RiskConstraintViolation(
        f"Order risk {ri.order.risk_level.value} exceeds portfolio tolerance {tolerance.value}",
        check="risk_tolerance",
    )


def _check_daily_loss(ri: _RiskInput) -> RiskConstraintViolation | None:
    limit = ri.snapshot.risk_profile.daily_loss_limit
    if limit is None or ri.order.side is not Side.BUY:
        return None
    if ri.snapshot.daily_realized_pnl <= -limit:
        return RiskConstraintViolation(
            f"Daily loss limit ({limit:.2f}) reached: realized {ri.snapshot.daily_realized_pnl:.2f}",
            check="daily_loss",
        )
    return None


_CHECKS: tuple[tuple[str, Callable[[_RiskInput], RiskConstraintViolation | None]], ...] = (
    ("funds", _check_funds),
    ("shares", _check_shares),
    ("position_size", _check_position_size),
    ("day_trading", _check_day_trading),
    ("risk_tolerance", _check_risk_tolerance),
    ("daily_loss", _check_daily_loss),
)

CHECK_NAMES = tuple(name for name, _ in _CHECKS)


def evaluate_risk(
    order: Order,
    snapshot: PortfolioSnapshot,
    reference_price: float,
    constraints: RiskConstraints | None = None,
    collect_all: bool = False,
    *,
    commission_rate: float = 0.0,
    now: datetime | None = None,
    tz: tzinfo = timezone.utc,
    skip: Collection[str] = (),
) -> RiskCheckResult:
    """Validate *order* against *snapshot* at *reference_price*.

    Parameters
    ----------
    order:
        The order being assigned. Only side, symbol, quantity and risk level
        are read.
    snapshot:
        Portfolio state from the ledger.
    reference_price:
        Limit price, stop price, or current market price.
    constraints:
        Per-assignment overrides. Defaults to ``RiskConstraints()``.
    collect_all:
        Run every check and report every violation instead of stopping at
        the first.
    commission_rate:
        Fraction of trade value added to the BUY cost estimate.
    now:
        Evaluation instant for the day-trade check. Defaults to
        ``snapshot.as_of`` or the current UTC time.
    tz:
        Timezone that defines "the same day" for day trades.
    skip:
        Check names (see ``CHECK_NAMES``) to leave out.
    """
    if now is None:
        now = snapshot.as_of or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    ri = _RiskInput(
        order=order,
        snapshot=snapshot,
        price=reference_price,
        constraints=constraints or RiskConstraints(),
        commission_rate=commission_rate,
        now=now,
        tz=tz,
    )

    violations: list[RiskConstraintViolation] = []
    for name, check in _CHECKS:
        if name in skip:
            continue
        violation = check(ri)
        if violation is None:
            continue
        violations.append(violation)
        if not collect_all:
            break

    return RiskCheckResult(allowed=not violations, violations=tuple(violations))


# ---------------------------------------------------------------------------
# Sizing helpers
# ---------------------------------------------------------------------------


def max_affordable_quantity(cash: float, price: float, commission_rate: float = 0.0) -> int:
    """Largest whole quantity whose cost plus commission fits in *cash*."""
    if price <= 0 or cash <= 0:
        return 0
    return max(0, math.floor(cash / (price * (1 + commission_rate))))


def percentage_position_size(portfolio_value: float, percent: float, price: float) -> int:
    """Whole shares worth *percent* of *portfolio_value* at *price*."""
    if price <= 0 or portfolio_value <= 0 or percent <= 0:
        return 0
    return math.floor(portfolio_value * percent / 100 / price)
