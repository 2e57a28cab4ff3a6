"""
Backtest metrics: trade records + daily equity curve -> BacktestMetrics.

Conventions:
    - daily returns are simple returns between consecutive equity points
    - volatility is the population standard deviation of daily returns x sqrt(252)
    - annualized return is (1 + total) ** (365 / days) - 1, days = calendar span of the curve
    - every ratio with a zero denominator is reported as 0, never NaN or inf
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from datetime import date
from typing import Sequence

from order_core.contracts import Side

TRADING_DAYS = 252
VAR_LEVEL = 0.05
# Float noise below this is treated as an exact zero denominator.
ZERO_TOL = 1e-12


@dataclass(frozen=True)
class TradeRecord:
    """One round trip. Prices already include slippage; ``slippage`` is its dollar cost."""

    symbol: str
    side: Side
    quantity: int
    entry_date: date
    exit_date: date
    entry_price: float
    exit_price: float
    commission: float = 0.0
    slippage: float = 0.0

    @property
    def pnl(self) -> float:
        if self.side is Side.BUY:
            gross = (self.exit_price - self.entry_price) * self.quantity
        else:
            gross = (self.entry_price - self.exit_price) * self.quantity
        return gross - self.commission

    @property
    def holding_days(self) -> int:
        return (self.exit_date - self.entry_date).days


@dataclass(frozen=True)
class EquityPoint:
    day: date
    equity: float
    benchmark: float | None = None


@dataclass(frozen=True)
class BacktestMetrics:
    # returns
    total_return: float
    annualized_return: float
    volatility: float
    sharpe_ratio: float
    sortino_ratio: float
    calmar_ratio: float
    # drawdown
    max_drawdown: float
    current_drawdown: float
    # risk
    value_at_risk: float
    conditional_var: float
    beta: float
    alpha: float
    # benchmark
    benchmark_return: float
    correlation: float
    tracking_error: float
    information_ratio: float
    # trades
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    avg_win: float
    avg_loss: float
    profit_factor: float
    avg_holding_days: float
    final_equity: float


# ---------------------------------------------------------------------------
# Series helpers
# ---------------------------------------------------------------------------


def daily_returns(values: Sequence[float]) -> list[float]:
    out = []
    for prev, cur in zip(values, values[1:]):
        out.append((cur - prev) / prev if prev else 0.0)
    return out


def _std(values: Sequence[float]) -> float:
    return statistics.pstdev(values) if values else 0.0


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def _is_zero(value: float) -> bool:
    return math.isclose(value, 0.0, abs_tol=ZERO_TOL)


def _ratio(num: float, denom: float) -> float:
    return 0.0 if _is_zero(denom) else num / denom


def annualize(total_return: float, days: int) -> float:
    if days <= 0:
        return total_return
    if total_return <= -1:
        return -1.0
    return (1 + total_return) ** (365 / days) - 1


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson r; 0 for mismatched lengths, empty or zero-variance input."""
    if len(xs) != len(ys) or not xs:
        return 0.0
    mx, my = _mean(xs), _mean(ys)
    num = sum((x - mx) * (y - my) for x, y in zip(xs, ys))
    sx = sum((x - mx) ** 2 for x in xs)
    sy = sum((y - my) ** 2 for y in ys)
    denom = math.sqrt(sx * sy)
    return _ratio(num, denom)


def drawdown_series(equity: Sequence[float]) -> list[float]:
    """Fractional decline from the running peak at each point."""
    out = []
    peak = -math.inf
    for value in equity:
        peak = max(peak, value)
        out.append((peak - value) / peak if peak > 0 else 0.0)
    return out


def max_drawdown(equity: Sequence[float]) -> float:
    return max(drawdown_series(equity), default=0.0)


def value_at_risk(returns: Sequence[float], level: float = VAR_LEVEL) -> float:
    if not returns:
        return 0.0
    ordered = sorted(returns)
    return ordered[math.floor(len(ordered) * level)]


def conditional_var(returns: Sequence[float], level: float = VAR_LEVEL) -> float:
    threshold = value_at_risk(returns, level)
    tail = [r for r in returns if r <= threshold]
    return _mean(tail)


def sortino_ratio(returns: Sequence[float], risk_free_rate: float) -> float:
    excess = [r - risk_free_rate / TRADING_DAYS for r in returns]
    downside = [r for r in excess if r < 0]
    if not downside:
        return 0.0
    deviation = math.sqrt(_mean([r * r for r in downside])) * math.sqrt(TRADING_DAYS)
    return _ratio(_mean(excess) * TRADING_DAYS, deviation)


def beta(returns: Sequence[float], benchmark_returns: Sequence[float]) -> float:
    if len(returns) != len(benchmark_returns) or not returns:
        return 0.0
    return _ratio(pearson_correlation(returns, benchmark_returns) * _std(returns), _std(benchmark_returns))


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


def compute_metrics(
    trades: Sequence[TradeRecord],
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
    risk_free_rate: float = 0.02,
) -> BacktestMetrics:
    """Compute every metric for one backtest run.

    Parameters
    ----------
    trades:
        Closed round trips in any order.
    equity_curve:
        Chronological daily equity. Benchmark statistics are computed only
        when every point carries a ``benchmark`` value.
    initial_capital:
        Starting equity; total return is measured against it.
    risk_free_rate:
        Annual rate used by Sharpe, Sortino and alpha.
    """
    equity = [p.equity for p in equity_curve]
    final_equity = equity[-1] if equity else initial_capital
    total_return = (final_equity - initial_capital) / initial_capital if initial_capital else 0.0
    span_days = (equity_curve[-1].day - equity_curve[0].day).days if equity_curve else 0
    annualized = annualize(total_return, span_days)

    returns = daily_returns(equity)
    volatility = _std(returns) * math.sqrt(TRADING_DAYS)
    sharpe = _ratio(annualized - risk_free_rate, volatility)

    drawdowns = drawdown_series(equity)
    mdd = max(drawdowns, default=0.0)
    calmar = _ratio(annualized, mdd)

    has_benchmark = bool(equity_curve) and all(p.benchmark is not None for p in equity_curve)
    if has_benchmark:
        bench = [p.benchmark for p in equity_curve]
        bench_returns = daily_returns(bench)
        bench_total = (bench[-1] - bench[0]) / bench[0] if bench[0] else 0.0
        bench_annualized = annualize(bench_total, span_days)
        correlation = pearson_correlation(returns, bench_returns)
        b = beta(returns, bench_returns)
        active = [r - br for r, br in zip(returns, bench_returns)]
        tracking_error = _std(active) * math.sqrt(TRADING_DAYS)
    else:
        bench_total = bench_annualized = correlation = b = tracking_error = 0.0
    alpha = annualized - (risk_free_rate + b * (bench_annualized - risk_free_rate))
    information_ratio = _ratio(annualized - bench_annualized, tracking_error)

    wins = [t.pnl for t in trades if t.pnl > 0]
    losses = [t.pnl for t in trades if t.pnl <= 0]
    avg_win = _mean(wins)
    avg_loss = abs(_mean(losses))

    return BacktestMetrics(
        total_return=total_return,
        annualized_return=annualized,
        volatility=volatility,
        sharpe_ratio=sharpe,
        sortino_ratio=sortino_ratio(returns, risk_free_rate),
        calmar_ratio=calmar,
        max_drawdown=mdd,
        current_drawdown=drawdowns[-1] if drawdowns else 0.0,
        value_at_risk=value_at_risk(returns),
        conditional_var=conditional_var(returns),
        beta=b,
        alpha=alpha,
        benchmark_return=bench_total,
        correlation=correlation,
        tracking_error=tracking_error,
        information_ratio=information_ratio,
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / len(trades) if trades else 0.0,
        avg_win=avg_win,
        avg_loss=avg_loss,
        profit_factor=avg_win / avg_loss if avg_loss else 0.0,
        avg_holding_days=_mean([t.holding_days for t in trades]),
        final_equity=final_equity,
    )
