"""
Structured JSON event logger for container observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, order-level alert events
(order_rejected, order_executed, order_failed, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

from backtest.models import BacktestRun, BacktestStatus
from order_core.contracts import OrderStatus, OrderTransition

logger = logging.getLogger("tradeflow.events")


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    _ALERT_EVENTS = frozenset({
        "order_rejected",
        "order_executed",
        "order_failed",
        "error",
    })

    def __init__(
        self,
        source: str = "tradeflow",
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._source = source
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "source": self._source,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record, default=str) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in self._ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record, default=str).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_transition(self, t: OrderTransition) -> dict | None:
        """Map an order transition to its event; unlisted transitions emit nothing."""
        order = t.order
        if t.to_status is OrderStatus.PENDING and t.from_status is None and order is not None:
            return self.order_created(t.order_id, order.symbol, order.side.value, order.quantity,
                                      order.order_type.value, parent_id=order.parent_id)
        if t.to_status is OrderStatus.REJECTED:
            return self.order_rejected(t.order_id, t.reason)
        if t.to_status is OrderStatus.EXECUTED and order is not None and order.execution is not None:
            return self.order_executed(t.order_id, order.symbol, order.side.value,
                                       order.execution.quantity, order.execution.fill_price)
        if t.to_status is OrderStatus.FAILED:
            return self.order_failed(t.order_id, t.reason)
        if t.to_status is OrderStatus.EXPIRED:
            return self.order_expired(t.order_id)
        if t.to_status is OrderStatus.CANCELLED:
            return self.order_cancelled(t.order_id, t.reason)
        return None

    def on_backtest(self, run: BacktestRun) -> dict:
        if run.status is BacktestStatus.COMPLETED and run.metrics is not None:
            return self.backtest_completed(
                run.id, run.strategy_id, run.metrics.total_return, run.metrics.sharpe_ratio,
            )
        return self.error(f"backtest {run.id} failed", detail=run.error_message or "")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def order_created(
        self,
        order_id: str,
        symbol: str,
        side: str,
        qty: int,
        order_type: str,
        parent_id: str | None = None,
    ) -> dict:
        return self._emit(
            "order_created",
            order_id=order_id,
            symbol=symbol,
            side=side,
            qty=qty,
            order_type=order_type,
            parent_id=parent_id,
        )

    def order_rejected(self, order_id: str, reason: str) -> dict:
        return self._emit("order_rejected", order_id=order_id, reason=reason)

    def order_executed(self, order_id: str, symbol: str, side: str, qty: int, price: float) -> dict:
        return self._emit(
            "order_executed",
            order_id=order_id,
            symbol=symbol,
            side=side,
            qty=qty,
            price=price,
        )

    def order_failed(self, order_id: str, reason: str) -> dict:
        return self._emit("order_failed", order_id=order_id, reason=reason)

    def order_expired(self, order_id: str) -> dict:
        return self._emit("order_expired", order_id=order_id)

    def order_cancelled(self, order_id: str, reason: str) -> dict:
        return self._emit("order_cancelled", order_id=order_id, reason=reason)

    def sweep_complete(self, transitions: int) -> dict:
        return self._emit("sweep_complete", transitions=transitions)

    def sweep_skipped(self, reason: str) -> dict:
        return self._emit("sweep_skipped", reason=reason)

    def market_closed(self, next_open: str, wait_hours: float) -> dict:
        return self._emit(
            "market_closed",
            next_open=next_open,
            wait_hours=round(wait_hours, 1),
        )

    def backtest_completed(self, run_id: str, strategy_id: str, total_return: float, sharpe: float) -> dict:
        return self._emit(
            "backtest_completed",
            run_id=run_id,
            strategy_id=strategy_id,
            total_return=round(total_return, 6),
            sharpe=round(sharpe, 4),
        )

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)

    def shutdown(self, cycles: int) -> dict:
        return self._emit("shutdown", cycles=cycles)
