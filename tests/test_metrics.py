"""Tests for backtest metrics: returns, drawdown, risk, benchmark and trade stats."""

import math
from datetime import date, timedelta

import pytest

from backtest.metrics import (
    EquityPoint,
    TradeRecord,
    annualize,
    beta,
    compute_metrics,
    conditional_var,
    daily_returns,
    max_drawdown,
    pearson_correlation,
    sortino_ratio,
    value_at_risk,
)
from order_core.contracts import Side

D0 = date(2024, 1, 2)


def _curve(values: list[float], bench: list[float] | None = None) -> list[EquityPoint]:
    return [
        EquityPoint(D0 + timedelta(days=i), v, bench[i] if bench else None)
        for i, v in enumerate(values)
    ]


def _trade(entry: float, exit_: float, qty: int = 10, commission: float = 0.0, days: int = 5) -> TradeRecord:
    return TradeRecord("AAPL", Side.BUY, qty, D0, D0 + timedelta(days=days), entry, exit_, commission)


# ---------------------------------------------------------------------------
# TradeRecord
# ---------------------------------------------------------------------------


def test_trade_pnl_long_and_short() -> None:
    assert _trade(100.0, 110.0, commission=2.0).pnl == pytest.approx(98.0)
    short = TradeRecord("AAPL", Side.SELL, 10, D0, D0, 100.0, 90.0)
    assert short.pnl == pytest.approx(100.0)
    assert _trade(100.0, 100.0, days=7).holding_days == 7


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_daily_returns() -> None:
    assert daily_returns([100.0, 110.0, 99.0]) == pytest.approx([0.1, -0.1])
    assert daily_returns([100.0]) == []


def test_max_drawdown() -> None:
    assert max_drawdown([100.0, 120.0, 90.0, 130.0]) == pytest.approx(0.25)
    assert max_drawdown([]) == 0.0


def test_annualize_edges() -> None:
    assert annualize(0.1, 0) == 0.1
    assert annualize(-1.5, 30) == -1.0
    assert annualize(0.1, 365) == pytest.approx(0.1)


def test_pearson_degenerate_inputs() -> None:
    assert pearson_correlation([1.0, 2.0], [1.0]) == 0.0
    assert pearson_correlation([1.0, 1.0], [2.0, 3.0]) == 0.0
    assert pearson_correlation([1.0, 2.0, 3.0], [2.0, 4.0, 6.0]) == pytest.approx(1.0)


MIXED = [0.02, -0.01, 0.03, -0.02]


def test_sortino_uses_downside_deviation() -> None:
    expected = 0.005 * 252 / (math.sqrt(2.5e-4) * math.sqrt(252))
    assert sortino_ratio(MIXED, 0.0) == pytest.approx(expected)


def test_sortino_zero_without_losing_days() -> None:
    assert sortino_ratio([0.01, 0.02, 0.005], 0.0) == 0.0
    assert sortino_ratio([], 0.02) == 0.0


def test_beta_scales_with_benchmark() -> None:
    assert beta(MIXED, [r / 2 for r in MIXED]) == pytest.approx(2.0)
    assert beta(MIXED, [-r * 2 for r in MIXED]) == pytest.approx(-0.5)
    assert beta(MIXED, [0.01] * 4) == 0.0
    assert beta(MIXED, MIXED[:3]) == 0.0


def test_value_at_risk_picks_5th_percentile() -> None:
    returns = [i / 100 for i in range(-10, 10)]  # 20 values, floor(20 * 0.05) = 1
    assert value_at_risk(returns) == pytest.approx(-0.09)
    assert conditional_var(returns) == pytest.approx(-0.095)
    assert value_at_risk([]) == 0.0


# ---------------------------------------------------------------------------
# compute_metrics
# ---------------------------------------------------------------------------


def test_no_trades_flat_curve() -> None:
    m = compute_metrics([], _curve([10_000.0] * 5), 10_000.0)
    assert m.total_return == 0.0
    assert m.max_drawdown == 0.0
    assert m.volatility == 0.0
    assert m.sharpe_ratio == 0.0
    assert m.total_trades == 0
    assert m.win_rate == 0.0
    assert m.profit_factor == 0.0
    assert m.final_equity == 10_000.0


def test_constant_growth_has_zero_ratios() -> None:
    values = [100.0 * 1.01 ** i for i in range(30)]
    m = compute_metrics([], _curve(values, bench=values), 100.0)
    assert m.total_return > 0
    assert m.sharpe_ratio == 0.0
    assert m.sortino_ratio == 0.0
    assert m.beta == 0.0
    assert m.correlation == 0.0
    assert m.information_ratio == 0.0


def test_empty_curve_uses_initial_capital() -> None:
    m = compute_metrics([], [], 10_000.0)
    assert m.final_equity == 10_000.0
    assert m.total_return == 0.0


def test_returns_and_drawdown() -> None:
    m = compute_metrics([], _curve([100.0, 110.0, 99.0, 104.5]), 100.0)
    assert m.total_return == pytest.approx(0.045)
    assert m.max_drawdown == pytest.approx(0.1)
    assert m.current_drawdown == pytest.approx(0.05)
    assert m.volatility > 0
    assert m.calmar_ratio == pytest.approx(m.annualized_return / 0.1)
    assert not math.isnan(m.sharpe_ratio)


def test_no_benchmark_zeroes_benchmark_stats() -> None:
    m = compute_metrics([], _curve([100.0, 101.0, 102.0]), 100.0, risk_free_rate=0.02)
    assert m.beta == 0.0
    assert m.correlation == 0.0
    assert m.tracking_error == 0.0
    assert m.information_ratio == 0.0
    assert m.alpha == pytest.approx(m.annualized_return - 0.02)


def test_tracking_benchmark_exactly() -> None:
    values = [100.0, 102.0, 101.0, 105.0]
    m = compute_metrics([], _curve(values, bench=values), 100.0)
    assert m.beta == pytest.approx(1.0)
    assert m.correlation == pytest.approx(1.0)
    assert m.tracking_error == pytest.approx(0.0)
    assert m.benchmark_return == pytest.approx(0.05)
    assert m.alpha == pytest.approx(0.0)


def test_trade_statistics() -> None:
    trades = [
        _trade(100.0, 110.0, days=2),   # +100
        _trade(100.0, 130.0, days=4),   # +300
        _trade(100.0, 90.0, days=6),    # -100
        _trade(100.0, 100.0, days=8),   # 0 counts as a loss
    ]
    m = compute_metrics(trades, _curve([1_000.0, 1_300.0]), 1_000.0)
    assert m.total_trades == 4
    assert m.winning_trades == 2
    assert m.losing_trades == 2
    assert m.win_rate == pytest.approx(0.5)
    assert m.avg_win == pytest.approx(200.0)
    assert m.avg_loss == pytest.approx(50.0)
    assert m.profit_factor == pytest.approx(4.0)
    assert m.avg_holding_days == pytest.approx(5.0)
