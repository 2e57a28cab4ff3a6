"""
Audit journal: append-only JSON lines. One line per order transition, fill
and finished backtest.
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from backtest.models import BacktestRun
from order_core.contracts import OrderStatus, OrderTransition


def _serialize(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def transition(self, t: OrderTransition) -> None:
        order = t.order
        self._write(
            "transition",
            {
                "order_id": t.order_id,
                "from": t.from_status,
                "to": t.to_status,
                "at": t.at,
                "reason": t.reason,
                "symbol": order.symbol if order else None,
                "portfolio_id": order.portfolio_id if order else None,
            },
        )
        if order is not None and t.to_status is OrderStatus.EXECUTED and order.execution is not None:
            self.fill(
                order.id, order.symbol, order.side, order.execution.quantity, order.execution.fill_price,
                commission=order.execution.commission, portfolio_id=order.portfolio_id,
            )

    def fill(self, order_id: str, symbol: str, side: str, qty: float, price: float, **extra: Any) -> None:
        self._write("fill", {"order_id": order_id, "symbol": symbol, "side": side, "qty": qty, "price": price, **extra})

    def backtest(self, run: BacktestRun) -> None:
        self._write(
            "backtest",
            {
                "run_id": run.id,
                "strategy_id": run.strategy_id,
                "status": run.status,
                "symbol": run.parameters.symbol,
                "start_date": run.parameters.start_date,
                "end_date": run.parameters.end_date,
                "error_message": run.error_message,
                "metrics": run.metrics,
            },
        )

    def read(self) -> list[dict]:
        """All journal entries, oldest first."""
        if not self._path.exists():
            return []
        with open(self._path) as f:
            return [json.loads(line) for line in f if line.strip()]
