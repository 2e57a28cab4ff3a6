"""BacktestParameters, BacktestRun and SimulationResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

from backtest.metrics import BacktestMetrics, EquityPoint, TradeRecord


class BacktestStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (BacktestStatus.COMPLETED, BacktestStatus.FAILED)


@dataclass(frozen=True)
class BacktestParameters:
    symbol: str
    start_date: date
    end_date: date
    initial_capital: float = 100_000.0
    commission_per_share: float = 0.005
    slippage_bps: float = 1.0
    benchmark_symbol: str | None = "SPY"
    risk_free_rate: float = 0.02
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SimulationResult:
    trades: tuple[TradeRecord, ...]
    equity_curve: tuple[EquityPoint, ...]


@dataclass(frozen=True)
class BacktestRun:
    id: str
    strategy_id: str
    parameters: BacktestParameters
    status: BacktestStatus
    created_at: datetime
    progress_percentage: float = 0.0
    trades: tuple[TradeRecord, ...] = ()
    equity_curve: tuple[EquityPoint, ...] = ()
    metrics: BacktestMetrics | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
