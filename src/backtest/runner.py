"""
Background backtest service: runs strategy simulations in a thread pool.

Run lifecycle: PENDING -> RUNNING -> COMPLETED | FAILED.
Cancellation forces FAILED("cancelled") on any non-terminal run; the worker
notices at its next status check and abandons the replay. Failures are
captured on the run and never propagate to the caller.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence

from backtest.metrics import EquityPoint, compute_metrics
from backtest.models import BacktestParameters, BacktestRun, BacktestStatus
from backtest.strategies import STRATEGIES, StrategySimulator
from order_core.contracts import PricePoint
from order_core.errors import (
    BacktestExecutionError,
    BacktestNotFoundError,
    PriceUnavailableError,
    ValidationError,
)
from order_core.ports import PriceFeed

logger = logging.getLogger("tradeflow.backtest")

CANCELLED_MESSAGE = "cancelled"

RunListener = Callable[[BacktestRun], None]


class _Abandoned(Exception):
    """The run went terminal under the worker (cancelled)."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def attach_benchmark(
    curve: Sequence[EquityPoint],
    benchmark: Sequence[PricePoint],
    initial_capital: float,
) -> tuple[EquityPoint, ...]:
    """Scale benchmark closes to *initial_capital* on the curve's dates.

    Returns the curve unchanged when the benchmark misses any curve date.
    """
    closes = {p.day: p.close for p in benchmark}
    if not curve or any(pt.day not in closes for pt in curve):
        return tuple(curve)
    base = closes[curve[0].day]
    if base <= 0:
        return tuple(curve)
    return tuple(
        replace(pt, benchmark=initial_capital * closes[pt.day] / base) for pt in curve
    )


class BacktestService:
    """Owns every BacktestRun's status, progress and results."""

    def __init__(
        self,
        price_feed: PriceFeed,
        *,
        strategies: Mapping[str, StrategySimulator] | None = None,
        max_workers: int = 2,
        clock: Callable[[], datetime] = _utc_now,
        listeners: Iterable[RunListener] = (),
    ) -> None:
        self._feed = price_feed
        self._strategies = dict(strategies or STRATEGIES)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="backtest")
        self._clock = clock
        self._listeners = list(listeners)
        self._lock = threading.Lock()
        self._runs: dict[str, BacktestRun] = {}
        self._futures: dict[str, Future[Any]] = {}

    @property
    def strategy_ids(self) -> list[str]:
        return sorted(self._strategies)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_backtest(self, strategy_id: str, parameters: BacktestParameters) -> BacktestRun:
        """Store a PENDING run, start it in the background, return its snapshot."""
        violations = []
        if strategy_id not in self._strategies:
            violations.append(f"unknown strategy {strategy_id!r} (known: {', '.join(self.strategy_ids)})")
        if parameters.start_date > parameters.end_date:
            violations.append("start_date must not be after end_date")
        if parameters.initial_capital <= 0:
            violations.append("initial_capital must be positive")
        if parameters.commission_per_share < 0 or parameters.slippage_bps < 0:
            violations.append("commission and slippage must be non-negative")
        if violations:
            raise ValidationError(violations)

        run = BacktestRun(
            id=str(uuid.uuid4()),
            strategy_id=strategy_id,
            parameters=parameters,
            status=BacktestStatus.PENDING,
            created_at=self._clock(),
        )
        with self._lock:
            self._runs[run.id] = run
            self._futures[run.id] = self._pool.submit(self._execute, run.id)
        logger.info("Backtest queued: %s %s %s..%s", run.id, strategy_id,
                    parameters.start_date, parameters.end_date)
        return run

    def get_backtest(self, run_id: str) -> BacktestRun:
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise BacktestNotFoundError(run_id)
        return run

    def list_backtests(self, strategy_id: str | None = None) -> list[BacktestRun]:
        with self._lock:
            runs = [r for r in self._runs.values() if strategy_id is None or r.strategy_id == strategy_id]
        return sorted(runs, key=lambda r: r.created_at)

    def cancel_backtest(self, run_id: str) -> BacktestRun:
        """Force a non-terminal run to FAILED("cancelled"). Terminal runs are returned unchanged."""
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise BacktestNotFoundError(run_id)
            if run.is_terminal:
                return run
            run = replace(
                run,
                status=BacktestStatus.FAILED,
                error_message=CANCELLED_MESSAGE,
                completed_at=self._clock(),
            )
            self._runs[run_id] = run
        logger.info("Backtest cancelled: %s", run_id)
        self._notify(run)
        return run

    def wait(self, run_id: str, timeout: float | None = None) -> BacktestRun:
        """Block until the worker for *run_id* returns, then return the run."""
        with self._lock:
            future = self._futures.get(run_id)
        if future is None:
            raise BacktestNotFoundError(run_id)
        future.result(timeout=timeout)
        return self.get_backtest(run_id)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _notify(self, run: BacktestRun) -> None:
        for listener in self._listeners:
            listener(run)

    def _update(self, run_id: str, **changes: Any) -> BacktestRun:
        """Apply *changes* unless the run is already terminal."""
        with self._lock:
            current = self._runs[run_id]
            if current.is_terminal:
                raise _Abandoned(run_id)
            updated = replace(current, **changes)
            self._runs[run_id] = updated
            return updated

    def _load_benchmark(self, params: BacktestParameters) -> list[PricePoint]:
        if not params.benchmark_symbol:
            return []
        try:
            return self._feed.get_historical_series(params.benchmark_symbol, params.start_date, params.end_date)
        except PriceUnavailableError as exc:
            logger.warning("Benchmark %s unavailable: %s", params.benchmark_symbol, exc)
            return []

    def _execute(self, run_id: str) -> None:
        try:
            run = self._update(run_id, status=BacktestStatus.RUNNING, started_at=self._clock())
            params = run.parameters
            simulator = self._strategies[run.strategy_id]

            prices = self._feed.get_historical_series(params.symbol, params.start_date, params.end_date)
            if not prices:
                raise BacktestExecutionError(
                    f"No price data for {params.symbol} between {params.start_date} and {params.end_date}"
                )
            benchmark = self._load_benchmark(params)

            def progress(pct: float) -> None:
                self._update(run_id, progress_percentage=min(pct, 99.0))

            result = simulator.simulate(prices, params, progress)
            curve = attach_benchmark(result.equity_curve, benchmark, params.initial_capital)
            metrics = compute_metrics(result.trades, curve, params.initial_capital, params.risk_free_rate)

            final = self._update(
                run_id,
                status=BacktestStatus.COMPLETED,
                progress_percentage=100.0,
                trades=result.trades,
                equity_curve=curve,
                metrics=metrics,
                completed_at=self._clock(),
            )
        except _Abandoned:
            logger.info("Backtest %s abandoned: run already terminal", run_id)
            return
        except Exception as exc:
            logger.error("Backtest %s failed: %s", run_id, exc)
            try:
                final = self._update(
                    run_id,
                    status=BacktestStatus.FAILED,
                    error_message=str(exc) or type(exc).__name__,
                    completed_at=self._clock(),
                )
            except _Abandoned:
                return
            self._notify(final)
            return

        logger.info(
            "Backtest completed: %s total_return=%.4f sharpe=%.2f trades=%d",
            run_id, metrics.total_return, metrics.sharpe_ratio, metrics.total_trades,
        )
        self._notify(final)
