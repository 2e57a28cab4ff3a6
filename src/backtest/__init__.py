"""
Backtest engine: replay daily closes through a strategy simulator, compute metrics.
"""

from backtest.metrics import BacktestMetrics, EquityPoint, TradeRecord, compute_metrics
from backtest.models import BacktestParameters, BacktestRun, BacktestStatus
from backtest.runner import BacktestService

__all__ = [
    "BacktestMetrics",
    "BacktestParameters",
    "BacktestRun",
    "BacktestService",
    "BacktestStatus",
    "EquityPoint",
    "TradeRecord",
    "compute_metrics",
]
