"""
Human-readable terminal output for orders, market status and backtests.

Every CLI command uses these formatters. The journal receives the same data.
"""

from __future__ import annotations

from typing import Sequence

from backtest.models import BacktestRun
from order_core.calendar_gate import MarketStatus, format_duration
from order_core.contracts import Order, OrderTransition, PortfolioSnapshot


def _price(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else "-"


def format_market_status(status: MarketStatus, exchange: str = "") -> str:
    label = f" {exchange}" if exchange else ""
    lines = [
        f"=== Market{label} @ {status.as_of:%Y-%m-%d %H:%M %Z} ===",
        f"Phase        : {status.phase.value}",
        f"Open         : {'yes' if status.is_open else 'no'}",
        f"Next open    : {status.next_open:%Y-%m-%d %H:%M %Z} (in {format_duration(status.time_until_next_open)})",
        f"Next close   : {status.next_close:%Y-%m-%d %H:%M %Z} (in {format_duration(status.time_until_next_close)})",
        "===",
    ]
    return "\n".join(lines)


def format_order(order: Order) -> str:
    lines = [
        f"Order {order.id}",
        f"  {order.side.value} {order.quantity} {order.symbol} {order.order_type.value}  [{order.status.value}]",
        f"  Limit {_price(order.limit_price)}  Stop {_price(order.stop_price)}"
        f"  SL {_price(order.stop_loss_price)}  TP {_price(order.take_profit_price)}",
        f"  Portfolio    : {order.portfolio_id or '-'}",
        f"  Expires      : {order.expires_at.isoformat()}",
    ]
    if order.parent_id:
        lines.append(f"  Parent       : {order.parent_id}  (OCO {order.oco_group or '-'})")
    if order.failure_reason:
        lines.append(f"  Failure      : {order.failure_reason}")
    if order.cancel_reason:
        lines.append(f"  Cancelled    : {order.cancel_reason}")
    if order.execution:
        ex = order.execution
        lines.append(
            f"  Filled       : {ex.quantity} @ {ex.fill_price:.2f} on {ex.filled_at.isoformat()} "
            f"(commission {ex.commission:.2f})"
        )
    return "\n".join(lines)


def format_order_table(orders: Sequence[Order]) -> str:
    if not orders:
        return "No orders."
    lines = [f"{'ID':36s}  {'STATUS':9s}  {'SIDE':4s}  {'QTY':>6s}  {'SYMBOL':6s}  TYPE"]
    for o in orders:
        lines.append(
            f"{o.id:36s}  {o.status.value:9s}  {o.side.value:4s}  {o.quantity:>6d}  {o.symbol:6s}  {o.order_type.value}"
        )
    return "\n".join(lines)


def format_transitions(transitions: Sequence[OrderTransition]) -> str:
    if not transitions:
        return "  No transitions."
    lines = []
    for t in transitions:
        src = t.from_status.value if t.from_status else "-"
        reason = f"  ({t.reason})" if t.reason else ""
        lines.append(f"  {t.order_id}: {src} -> {t.to_status.value}{reason}")
    return "\n".join(lines)


def format_portfolio(snapshot: PortfolioSnapshot) -> str:
    profile = snapshot.risk_profile
    lines = [
        f"=== Portfolio {snapshot.portfolio_id} ===",
        f"Cash         : ${snapshot.cash:,.2f}",
        f"Risk profile : max position {profile.max_position_percent:.1f}%  "
        f"tolerance {profile.risk_tolerance.value}  day trading {'on' if profile.day_trading_allowed else 'off'}",
        f"Today        : {snapshot.day_trade_count} day trade(s), realized P&L ${snapshot.daily_realized_pnl:+,.2f}",
    ]
    if snapshot.positions:
        for pos in snapshot.positions.values():
            lines.append(f"Position     : {pos.symbol} {pos.quantity} shares @ avg {pos.avg_price:.2f}")
    else:
        lines.append("Position     : flat (no open positions)")
    lines.append("===")
    return "\n".join(lines)


def format_backtest_summary(run: BacktestRun) -> str:
    """Format backtest run summary."""
    p = run.parameters
    lines = [
        f"=== Backtest {run.id}: {run.strategy_id} {p.symbol} ===",
        f"Status       : {run.status.value} ({run.progress_percentage:.0f}%)",
        f"Period       : {p.start_date.isoformat()} -> {p.end_date.isoformat()}",
        f"Initial cash : ${p.initial_capital:,.2f}",
    ]
    if run.error_message:
        lines.append(f"Error        : {run.error_message}")
    m = run.metrics
    if m is not None:
        lines.extend([
            f"Final equity : ${m.final_equity:,.2f}",
            f"Return       : {m.total_return:+.2%} (annualized {m.annualized_return:+.2%})",
            f"Volatility   : {m.volatility:.2%}",
            f"Sharpe       : {m.sharpe_ratio:.2f}  Sortino {m.sortino_ratio:.2f}  Calmar {m.calmar_ratio:.2f}",
            f"Drawdown     : max {m.max_drawdown:.2%}  current {m.current_drawdown:.2%}",
            f"VaR / CVaR   : {m.value_at_risk:+.2%} / {m.conditional_var:+.2%}",
            f"Benchmark    : {m.benchmark_return:+.2%}  beta {m.beta:.2f}  alpha {m.alpha:+.2%}  corr {m.correlation:.2f}",
            f"Trades       : {m.total_trades} (W:{m.winning_trades} / L:{m.losing_trades}, "
            f"win rate {m.win_rate:.0%}, profit factor {m.profit_factor:.2f})",
        ])
    if run.trades:
        lines.append("")
        for i, t in enumerate(run.trades, 1):
            lines.append(f"  Trade #{i}: {t.side.value} {t.quantity} | entry {t.entry_price:.2f} @ {t.entry_date.isoformat()}")
            lines.append(f"            exit  {t.exit_price:.2f} @ {t.exit_date.isoformat()} | PnL ${t.pnl:+.2f}")
    lines.append("===")
    return "\n".join(lines)
