"""
Order lifecycle manager: the only component that moves Order.status.

    PENDING -> APPROVED -> EXECUTING -> EXECUTED
    PENDING -> REJECTED
    PENDING | APPROVED -> EXPIRED | CANCELLED
    EXECUTING -> FAILED

Every status write is a compare-and-set against the repository, so two
sweeps racing on the same order produce at most one execution.

The sweep is single-flight: a call made while another sweep is running
returns an empty list immediately.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from config.loader import ExecutionConfig, OrdersConfig
from config.schedule_config import TradingSchedule
from order_core.calendar_gate import MarketStatus, market_status
from order_core.contracts import (
    ExecutionDetails,
    Fill,
    LimitKind,
    MarketKind,
    Order,
    OrderKind,
    OrderRequest,
    OrderStatus,
    OrderTransition,
    OrderType,
    RiskConstraints,
    Side,
    StopLimitKind,
    can_transition,
)
from order_core.errors import (
    ConcurrentModificationError,
    OrderNotFoundError,
    RiskConstraintViolation,
    ValidationError,
)
from order_core.ports import OrderRepository, PortfolioLedger, PriceFeed
from order_core.risk_engine import evaluate_risk
from order_core.triggers import evaluate_trigger

logger = logging.getLogger("tradeflow.lifecycle")

OCO_CANCEL_REASON = "OCO - other order executed"

TransitionListener = Callable[[OrderTransition], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class OrderLifecycleManager:
    """
    Create, approve, execute, expire and cancel orders.

    Collaborators are injected: an order repository with compare-and-set,
    a portfolio ledger, a price feed and a trading schedule. ``listeners``
    receive every applied transition (journal, structured events).
    """

    def __init__(
        self,
        repository: OrderRepository,
        ledger: PortfolioLedger,
        price_feed: PriceFeed,
        schedule: TradingSchedule,
        *,
        orders_config: OrdersConfig | None = None,
        execution_config: ExecutionConfig | None = None,
        clock: Callable[[], datetime] = _utc_now,
        listeners: Iterable[TransitionListener] = (),
    ) -> None:
        self._repo = repository
        self._ledger = ledger
        self._feed = price_feed
        self._schedule = schedule
        self._orders_cfg = orders_config or OrdersConfig()
        self._exec_cfg = execution_config or ExecutionConfig()
        self._clock = clock
        self._listeners = list(listeners)
        self._sweep_lock = threading.Lock()

    @property
    def schedule(self) -> TradingSchedule:
        return self._schedule

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def _now(self) -> datetime:
        return _aware(self._clock())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        order = self._repo.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_orders(self, *statuses: OrderStatus) -> list[Order]:
        return self._repo.list_by_status(*statuses)

    def market_status(self, now: datetime | None = None) -> MarketStatus:
        return market_status(now or self._now(), self._schedule)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _build_kind(self, request: OrderRequest, violations: list[str]) -> OrderKind | None:
        try:
            order_type = OrderType(request.order_type)
        except ValueError:
            violations.append(f"unknown order_type {request.order_type!r}")
            return None
        if order_type is OrderType.MARKET:
            return MarketKind()
        if order_type is OrderType.LIMIT:
            if request.limit_price is None:
                violations.append("limit_price is required for LIMIT orders")
                return None
            return LimitKind(limit_price=float(request.limit_price))

        has_trail = request.trail_amount is not None or request.trail_percent is not None
        if request.stop_price is None and not has_trail:
            violations.append("stop_price or a trailing distance is required for STOP_LIMIT orders")
            return None
        return StopLimitKind(
            stop_price=request.stop_price,
            limit_price=request.limit_price,
            trail_amount=request.trail_amount,
            trail_percent=request.trail_percent,
        )

    def _validate_request(self, request: OrderRequest, now: datetime) -> tuple[OrderKind | None, datetime, list[str]]:
        violations: list[str] = []

        if not request.symbol or not request.symbol.strip():
            violations.append("symbol is required")

        try:
            Side(request.side)
        except ValueError:
            violations.append(f"side must be BUY or SELL, not {request.side!r}")

        if isinstance(request.quantity, bool) or not isinstance(request.quantity, int):
            violations.append("quantity must be a whole number of shares")
        elif request.quantity <= 0:
            violations.append("quantity must be positive")
        elif request.quantity > self._orders_cfg.max_quantity:
            violations.append(
                f"quantity {request.quantity} exceeds maximum {self._orders_cfg.max_quantity}"
            )

        for name in ("limit_price", "stop_price", "stop_loss_price", "take_profit_price",
                     "trail_amount", "trail_percent"):
            value = getattr(request, name)
            if value is not None and value < 0:
                violations.append(f"{name} must be non-negative")

        kind = self._build_kind(request, violations)

        if request.expires_at is not None:
            expires_at = _aware(request.expires_at)
            if expires_at <= now:
                violations.append("expires_at must be in the future")
        else:
            expires_at = now + timedelta(minutes=self._orders_cfg.default_ttl_minutes)

        return kind, expires_at, violations

    def create_order(self, request: OrderRequest) -> Order:
        """Validate *request* and store it as a PENDING order.

        Raises
        ------
        ValidationError
            Listing every problem found in the request.
        """
        now = self._now()
        kind, expires_at, violations = self._validate_request(request, now)
        if violations:
            raise ValidationError(violations)

        order = Order(
            id=str(uuid.uuid4()),
            symbol=request.symbol.strip().upper(),
            side=Side(request.side),
            quantity=request.quantity,
            kind=kind,
            status=OrderStatus.PENDING,
            created_at=now,
            expires_at=expires_at,
            stop_loss_price=request.stop_loss_price,
            take_profit_price=request.take_profit_price,
            confidence=request.confidence,
            reasoning=tuple(request.reasoning),
            risk_level=request.risk_level,
            recommendation_id=request.recommendation_id,
            updated_at=now,
        )
        self._add(order, "created")
        logger.info(
            "Order created: %s %s %d %s (%s)",
            order.id, order.side.value, order.quantity, order.symbol, order.order_type.value,
        )
        return order

    def _add(self, order: Order, reason: str) -> OrderTransition:
        self._repo.add(order)
        transition = OrderTransition(order.id, None, order.status, order.created_at, reason, order)
        self._notify(transition)
        return transition

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _notify(self, transition: OrderTransition) -> None:
        for listener in self._listeners:
            try:
                listener(transition)
            except Exception:
                logger.exception(
                    "Listener %r failed on %s -> %s for %s", listener,
                    transition.from_status.value if transition.from_status else None,
                    transition.to_status.value, transition.order_id,
                )

    def _transition(self, current: Order, updated: Order, reason: str = "") -> OrderTransition:
        if not can_transition(current.status, updated.status):
            raise ValueError(
                f"Illegal transition {current.status.value} -> {updated.status.value} for {current.id}"
            )
        if not self._repo.compare_and_set(current.id, current.status, updated):
            stored = self._repo.get(current.id)
            raise ConcurrentModificationError(
                current.id, current.status.value, stored.status.value if stored else None
            )
        transition = OrderTransition(
            current.id, current.status, updated.status, updated.updated_at or self._now(), reason, updated,
        )
        self._notify(transition)
        return transition

    # ------------------------------------------------------------------
    # Assignment (risk gate)
    # ------------------------------------------------------------------

    def _reference_price(self, order: Order) -> float:
        if order.limit_price is not None:
            return order.limit_price
        if order.stop_price is not None:
            return order.stop_price
        return self._feed.get_current_price(order.symbol)

    def _assign(
        self,
        order: Order,
        portfolio_id: str,
        constraints: RiskConstraints | None,
        now: datetime,
        skip: tuple[str, ...] = (),
    ) -> tuple[Order, OrderTransition, RiskConstraintViolation | None]:
        if order.status is not OrderStatus.PENDING:
            raise ConcurrentModificationError(order.id, OrderStatus.PENDING.value, order.status.value)

        snapshot = self._ledger.get_snapshot(portfolio_id)
        price = self._reference_price(order)
        result = evaluate_risk(
            order, snapshot, price, constraints,
            commission_rate=self._exec_cfg.commission_rate,
            now=now,
            tz=self._schedule.tz,
            skip=skip,
        )

        if result.allowed:
            approved = replace(
                order,
                portfolio_id=portfolio_id,
                status=OrderStatus.APPROVED,
                approved_at=now,
                updated_at=now,
            )
            transition = self._transition(order, approved, "risk checks passed")
            logger.info("Order approved: %s -> portfolio %s @ ref %.2f", order.id, portfolio_id, price)
            return approved, transition, None

        violation = result.violations[0]
        rejected = replace(
            order,
            portfolio_id=portfolio_id,
            status=OrderStatus.REJECTED,
            failure_reason=str(violation),
            updated_at=now,
        )
        transition = self._transition(order, rejected, str(violation))
        logger.warning("Order rejected: %s (%s) %s", order.id, violation.check, violation)
        return rejected, transition, violation

    def assign_order(
        self,
        order_id: str,
        portfolio_id: str,
        constraints: RiskConstraints | None = None,
    ) -> Order:
        """Run the risk gate for a PENDING order against *portfolio_id*.

        Returns the APPROVED order. On a failed check the order is stored
        as REJECTED and the risk error is raised.

        Raises
        ------
        OrderNotFoundError
            Unknown *order_id*.
        ConcurrentModificationError
            The order is no longer PENDING.
        RiskConstraintViolation
            Including ``InsufficientFundsError`` / ``InsufficientSharesError``.
        """
        order = self.get_order(order_id)
        updated, _, violation = self._assign(order, portfolio_id, constraints, self._now())
        if violation is not None:
            raise violation
        return updated

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_order(self, order_id: str, reason: str = "cancelled by user") -> None:
        """Cancel a PENDING or APPROVED order. Terminal orders are left as they are."""
        for _ in range(3):
            order = self.get_order(order_id)
            if order.is_terminal:
                logger.debug("Cancel ignored: %s already %s", order_id, order.status.value)
                return
            if order.status is OrderStatus.EXECUTING:
                raise ConcurrentModificationError(order_id, "PENDING or APPROVED", order.status.value)
            now = self._now()
            cancelled = replace(order, status=OrderStatus.CANCELLED, cancel_reason=reason, updated_at=now)
            try:
                self._transition(order, cancelled, reason)
            except ConcurrentModificationError:
                continue
            logger.info("Order cancelled: %s (%s)", order_id, reason)
            return
        raise ConcurrentModificationError(order_id, "PENDING or APPROVED")

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def evaluate_sweep(self, now: datetime | None = None) -> list[OrderTransition]:
        """Expire, trigger and execute orders. Returns every transition made."""
        if not self._sweep_lock.acquire(blocking=False):
            logger.info("Sweep already running; skipping")
            return []
        try:
            return self._sweep(_aware(now) if now else self._now())
        finally:
            self._sweep_lock.release()

    def _sweep(self, now: datetime) -> list[OrderTransition]:
        transitions = self._expire(now)

        status = market_status(now, self._schedule)
        if not status.is_open:
            logger.info("Market closed (%s); next open %s", status.phase.value, status.next_open.isoformat())
            return transitions

        if self._exec_cfg.kill_switch:
            logger.warning("Kill switch active; skipping execution")
            return transitions

        for order in self._repo.list_by_status(OrderStatus.APPROVED):
            try:
                transitions.extend(self._evaluate_order(order, now))
            except ConcurrentModificationError as exc:
                logger.info("Skipping %s: %s", order.id, exc)
            except Exception:
                logger.exception("Sweep failed for %s %s; continuing", order.id, order.symbol)

        logger.info("Sweep complete: %d transition(s)", len(transitions))
        return transitions

    def _expire(self, now: datetime) -> list[OrderTransition]:
        out: list[OrderTransition] = []
        for order in self._repo.list_by_status(OrderStatus.PENDING, OrderStatus.APPROVED):
            if not order.is_expired(now):
                continue
            expired = replace(order, status=OrderStatus.EXPIRED, cancel_reason="expired", updated_at=now)
            try:
                out.append(self._transition(order, expired, "expired"))
            except ConcurrentModificationError as exc:
                logger.info("Expiry skipped for %s: %s", order.id, exc)
                continue
            logger.info("Order expired: %s", order.id)
        return out

    def _evaluate_order(self, order: Order, now: datetime) -> list[OrderTransition]:
        try:
            price = self._feed.get_current_price(order.symbol)
        except Exception as exc:
            logger.warning("No price for %s (%s); leaving %s approved", order.symbol, exc, order.id)
            return []

        decision = evaluate_trigger(order, price)
        if decision.kind != order.kind:
            moved = replace(order, kind=decision.kind, updated_at=now)
            if not self._repo.compare_and_set(order.id, OrderStatus.APPROVED, moved):
                raise ConcurrentModificationError(order.id, OrderStatus.APPROVED.value)
            order = moved

        if not decision.execute:
            return []
        return self._execute(order, now, decision.reason)

    def _fill_price(self, order: Order, market: float) -> float:
        slip = market * self._exec_cfg.slippage_bps / 10_000
        price = market + slip if order.side is Side.BUY else market - slip
        limit = order.limit_price
        if limit is not None:
            price = min(price, limit) if order.side is Side.BUY else max(price, limit)
        return round(price, 4)

    def _execute(self, order: Order, now: datetime, reason: str) -> list[OrderTransition]:
        executing = replace(order, status=OrderStatus.EXECUTING, updated_at=now)
        out = [self._transition(order, executing, reason)]

        try:
            market = self._feed.get_current_price(order.symbol)
            price = self._fill_price(order, market)
            fill = Fill(
                order_id=order.id,
                symbol=order.symbol,
                side=order.side,
                quantity=order.quantity,
                price=price,
                timestamp=now,
                commission=order.quantity * price * self._exec_cfg.commission_rate,
            )
            self._ledger.apply_fill(order.portfolio_id, fill)
        except Exception as exc:
            failed = replace(executing, status=OrderStatus.FAILED, failure_reason=str(exc), updated_at=now)
            out.append(self._transition(executing, failed, str(exc)))
            logger.error("Execution failed for %s %s: %s", order.id, order.symbol, exc)
            return out

        executed = replace(
            executing,
            status=OrderStatus.EXECUTED,
            execution=ExecutionDetails(
                fill_price=fill.price,
                filled_at=now,
                quantity=fill.quantity,
                commission=fill.commission,
            ),
            updated_at=now,
        )
        out.append(self._transition(executing, executed, f"filled @ {fill.price:.2f}"))
        logger.info(
            "Order executed: %s %s %d %s @ %.2f (commission %.2f)",
            order.id, order.side.value, order.quantity, order.symbol, fill.price, fill.commission,
        )

        try:
            out.extend(self._cancel_oco_siblings(executed, now))
            out.extend(self._spawn_children(executed, now))
        except Exception:
            logger.exception("Follow-up orders failed for executed %s", order.id)
        return out

    # ------------------------------------------------------------------
    # Derivative orders
    # ------------------------------------------------------------------

    def _cancel_oco_siblings(self, executed: Order, now: datetime) -> list[OrderTransition]:
        if not executed.oco_group:
            return []
        out: list[OrderTransition] = []
        for sibling in self._repo.list_by_status(OrderStatus.PENDING, OrderStatus.APPROVED):
            if sibling.oco_group != executed.oco_group or sibling.id == executed.id:
                continue
            cancelled = replace(
                sibling, status=OrderStatus.CANCELLED, cancel_reason=OCO_CANCEL_REASON, updated_at=now,
            )
            try:
                out.append(self._transition(sibling, cancelled, OCO_CANCEL_REASON))
            except ConcurrentModificationError as exc:
                logger.info("OCO cancel skipped for %s: %s", sibling.id, exc)
        return out

    def _spawn_children(self, parent: Order, now: datetime) -> list[OrderTransition]:
        kinds: list[OrderKind] = []
        if parent.stop_loss_price is not None:
            kinds.append(StopLimitKind(stop_price=parent.stop_loss_price))
        if parent.take_profit_price is not None:
            kinds.append(LimitKind(limit_price=parent.take_profit_price))
        if not kinds:
            return []

        group = f"oco-{parent.id}" if len(kinds) > 1 else None
        expires_at = now + timedelta(days=self._orders_cfg.child_ttl_days)
        out: list[OrderTransition] = []

        for kind in kinds:
            child = Order(
                id=str(uuid.uuid4()),
                symbol=parent.symbol,
                side=parent.side.opposite,
                quantity=parent.quantity,
                kind=kind,
                status=OrderStatus.PENDING,
                created_at=now,
                expires_at=expires_at,
                portfolio_id=parent.portfolio_id,
                risk_level=parent.risk_level,
                recommendation_id=parent.recommendation_id,
                parent_id=parent.id,
                oco_group=group,
                updated_at=now,
            )
            out.append(self._add(child, f"child of {parent.id}"))
            logger.info("Child order %s: %s %s @ %s", child.id, child.side.value, kind.order_type.value,
                        parent.stop_loss_price if isinstance(kind, StopLimitKind) else parent.take_profit_price)

            if not self._orders_cfg.auto_approve_children or parent.portfolio_id is None:
                continue
            # Children are exempt from the day-trade rule.
            try:
                _, transition, violation = self._assign(
                    child, parent.portfolio_id, None, now, skip=("day_trading",),
                )
            except Exception:
                logger.exception("Child order %s left pending: risk gate failed", child.id)
                continue
            out.append(transition)
            if violation is not None:
                logger.warning("Child order %s rejected: %s", child.id, violation)

        return out
