"""
CLI entry point: tradeflow market-status | portfolio | order | sweep | backtest | health.

Every command loads config from --config (default config.yaml), prints
human-readable output, and records order transitions in the journal.
"""

import logging
import sys
from datetime import date, datetime, timedelta, timezone

import click
from dotenv import load_dotenv

from config import AppConfig, load_config, load_trading_schedule
from order_core.errors import OrderEngineError

load_dotenv()

logger = logging.getLogger("tradeflow")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _load_schedule(cfg: AppConfig):
    return load_trading_schedule(cfg.schedule_path or None, exchange=cfg.exchange or None)


def _events(cfg: AppConfig):
    from cli.structured_log import StructuredEventLogger

    return StructuredEventLogger(
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )


def _ledger(cfg: AppConfig, schedule=None):
    from execution import PaperLedger

    schedule = schedule or _load_schedule(cfg)
    return PaperLedger(cfg.ledger.state_path, initial_cash=cfg.ledger.initial_cash, day_tz=schedule.tz)


def _build_manager(cfg: AppConfig, events=None):
    from data import CsvPriceFeed
    from execution import SqliteOrderStore
    from journal import JournalWriter
    from order_core.lifecycle import OrderLifecycleManager

    schedule = _load_schedule(cfg)
    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    listeners = [journal.transition]
    if events is not None:
        listeners.append(events.on_transition)

    return OrderLifecycleManager(
        SqliteOrderStore(cfg.ledger.order_store_path),
        _ledger(cfg, schedule),
        CsvPriceFeed(cfg.backtest.prices_dir),
        schedule,
        orders_config=cfg.orders,
        execution_config=cfg.execution,
        listeners=listeners,
    )


def _parse_when(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        ts = datetime.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter(f"not an ISO timestamp: {value}") from exc
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """tradeflow: risk-gated order lifecycle and backtesting engine."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- tradeflow market-status ----------


@cli.command("market-status")
@click.option("--at", "at_str", default=None, help="Evaluate at this ISO timestamp (naive = UTC). Default: now.")
@click.pass_context
def market_status_cmd(ctx: click.Context, at_str: str | None) -> None:
    """Show whether trading is permitted, and the next open/close."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_market_status
    from order_core.calendar_gate import market_status

    schedule = _load_schedule(cfg)
    now = _parse_when(at_str) or datetime.now(timezone.utc)
    click.echo(format_market_status(market_status(now, schedule), schedule.exchange))


# ---------- tradeflow portfolio ----------


@cli.group()
def portfolio() -> None:
    """Paper portfolios held in the ledger."""


@portfolio.command("open")
@click.argument("portfolio_id")
@click.option("--cash", default=None, type=float, help="Starting cash (default: ledger.initial_cash).")
@click.option("--max-position-percent", default=10.0, type=float, show_default=True)
@click.option("--risk-tolerance", default="MEDIUM", type=click.Choice(["LOW", "MEDIUM", "HIGH"], case_sensitive=False))
@click.option("--day-trading/--no-day-trading", default=False)
@click.option("--daily-loss-limit", default=None, type=float, help="Dollar loss that blocks new buys for the day.")
@click.pass_context
def portfolio_open(
    ctx: click.Context,
    portfolio_id: str,
    cash: float | None,
    max_position_percent: float,
    risk_tolerance: str,
    day_trading: bool,
    daily_loss_limit: float | None,
) -> None:
    """Create a portfolio (no-op if it exists) and show it."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_portfolio
    from order_core.contracts import RiskLevel, RiskProfile

    profile = RiskProfile(
        max_position_percent=max_position_percent,
        risk_tolerance=RiskLevel(risk_tolerance.upper()),
        day_trading_allowed=day_trading,
        daily_loss_limit=daily_loss_limit,
    )
    snapshot = _ledger(cfg).open_portfolio(portfolio_id, cash=cash, risk_profile=profile)
    click.echo(format_portfolio(snapshot))


@portfolio.command("show")
@click.argument("portfolio_id")
@click.pass_context
def portfolio_show(ctx: click.Context, portfolio_id: str) -> None:
    """Show cash, positions and today's trading."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_portfolio

    try:
        snapshot = _ledger(cfg).get_snapshot(portfolio_id)
    except OrderEngineError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(format_portfolio(snapshot))


# ---------- tradeflow order ----------


@cli.group()
def order() -> None:
    """Create, assign, cancel and inspect orders."""


@order.command("create")
@click.argument("symbol")
@click.argument("side", type=click.Choice(["BUY", "SELL"], case_sensitive=False))
@click.argument("quantity", type=int)
@click.option("--type", "order_type", default="MARKET",
              type=click.Choice(["MARKET", "LIMIT", "STOP_LIMIT"], case_sensitive=False))
@click.option("--limit", "limit_price", default=None, type=float)
@click.option("--stop", "stop_price", default=None, type=float)
@click.option("--stop-loss", "stop_loss_price", default=None, type=float)
@click.option("--take-profit", "take_profit_price", default=None, type=float)
@click.option("--trail-amount", default=None, type=float)
@click.option("--trail-percent", default=None, type=float)
@click.option("--ttl-minutes", default=None, type=int, help="Minutes until expiry (default: orders.default_ttl_minutes).")
@click.option("--risk-level", default="MEDIUM", type=click.Choice(["LOW", "MEDIUM", "HIGH"], case_sensitive=False))
@click.option("--reason", "reasoning", multiple=True, help="Reasoning line (repeatable).")
@click.pass_context
def order_create(
    ctx: click.Context,
    symbol: str,
    side: str,
    quantity: int,
    order_type: str,
    limit_price: float | None,
    stop_price: float | None,
    stop_loss_price: float | None,
    take_profit_price: float | None,
    trail_amount: float | None,
    trail_percent: float | None,
    ttl_minutes: int | None,
    risk_level: str,
    reasoning: tuple[str, ...],
) -> None:
    """Validate and store a PENDING order."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_order
    from order_core.contracts import OrderRequest, OrderType, RiskLevel, Side

    expires_at = None
    if ttl_minutes is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)

    request = OrderRequest(
        symbol=symbol,
        side=Side(side.upper()),
        quantity=quantity,
        order_type=OrderType(order_type.upper()),
        limit_price=limit_price,
        stop_price=stop_price,
        stop_loss_price=stop_loss_price,
        take_profit_price=take_profit_price,
        trail_amount=trail_amount,
        trail_percent=trail_percent,
        expires_at=expires_at,
        reasoning=reasoning,
        risk_level=RiskLevel(risk_level.upper()),
    )
    manager = _build_manager(cfg, _events(cfg))
    try:
        created = manager.create_order(request)
    except OrderEngineError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(format_order(created))


@order.command("assign")
@click.argument("order_id")
@click.argument("portfolio_id")
@click.option("--max-position-percent", default=None, type=float, help="Override the portfolio's position cap.")
@click.option("--allow-risk-override", is_flag=True, default=False)
@click.option("--max-day-trades", default=None, type=int)
@click.pass_context
def order_assign(
    ctx: click.Context,
    order_id: str,
    portfolio_id: str,
    max_position_percent: float | None,
    allow_risk_override: bool,
    max_day_trades: int | None,
) -> None:
    """Run the risk gate: PENDING -> APPROVED or REJECTED."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_order
    from order_core.contracts import RiskConstraints

    constraints = RiskConstraints(
        max_position_percent=max_position_percent,
        allow_risk_override=allow_risk_override,
        max_day_trades=max_day_trades,
    )
    manager = _build_manager(cfg, _events(cfg))
    try:
        approved = manager.assign_order(order_id, portfolio_id, constraints)
    except OrderEngineError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(format_order(approved))


@order.command("cancel")
@click.argument("order_id")
@click.option("--reason", default="cancelled by user", show_default=True)
@click.pass_context
def order_cancel(ctx: click.Context, order_id: str, reason: str) -> None:
    """Cancel a PENDING or APPROVED order. Terminal orders are left alone."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_order

    manager = _build_manager(cfg, _events(cfg))
    try:
        manager.cancel_order(order_id, reason)
        click.echo(format_order(manager.get_order(order_id)))
    except OrderEngineError as exc:
        raise click.ClickException(str(exc)) from exc


@order.command("list")
@click.option("--status", "statuses", multiple=True,
              type=click.Choice(["PENDING", "APPROVED", "EXECUTING", "EXECUTED", "REJECTED",
                                 "EXPIRED", "CANCELLED", "FAILED"], case_sensitive=False),
              help="Filter by status (repeatable).")
@click.pass_context
def order_list(ctx: click.Context, statuses: tuple[str, ...]) -> None:
    """List orders, oldest first."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_order_table
    from order_core.contracts import OrderStatus

    manager = _build_manager(cfg)
    click.echo(format_order_table(manager.list_orders(*(OrderStatus(s.upper()) for s in statuses))))


@order.command("show")
@click.argument("order_id")
@click.pass_context
def order_show(ctx: click.Context, order_id: str) -> None:
    """Show one order in full."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_order

    try:
        click.echo(format_order(_build_manager(cfg).get_order(order_id)))
    except OrderEngineError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------- tradeflow sweep ----------


@cli.command()
@click.option("--live", is_flag=True, default=False, help="Run continuously every sweep.interval_seconds.")
@click.option("--at", "at_str", default=None, help="Evaluate at this ISO timestamp instead of now (one-shot only).")
@click.pass_context
def sweep(ctx: click.Context, live: bool, at_str: str | None) -> None:
    """Expire, trigger and execute approved orders."""
    cfg = load_config(ctx.obj["config_path"])
    events = _events(cfg)
    manager = _build_manager(cfg, events)

    if live:
        from cli.scheduler import run_sweep_loop
        run_sweep_loop(manager, cfg.sweep.interval_seconds, events=events)
        return

    from cli.output import format_market_status, format_transitions

    now = _parse_when(at_str)
    status = manager.market_status(now)
    transitions = manager.evaluate_sweep(now)
    events.sweep_complete(len(transitions))
    if not status.is_open:
        click.echo(format_market_status(status, manager.schedule.exchange))
    if cfg.execution.kill_switch:
        events.sweep_skipped("kill switch")
        click.echo("Kill switch active: no orders executed.")
    click.echo(f"Sweep: {len(transitions)} transition(s)")
    click.echo(format_transitions(transitions))


# ---------- tradeflow backtest ----------


@cli.command()
@click.argument("strategy_id")
@click.argument("symbol")
@click.option("--start", "start_str", required=True, help="Start date (ISO, e.g. 2024-01-01).")
@click.option("--end", "end_str", required=True, help="End date (ISO, e.g. 2024-12-31).")
@click.option("--capital", default=None, type=float, help="Initial capital (default: backtest.initial_capital).")
@click.option("--benchmark", default=None, help="Benchmark symbol (default: backtest.benchmark_symbol).")
@click.option("--option", "options", multiple=True, help="Strategy option key=value (repeatable).")
@click.pass_context
def backtest(
    ctx: click.Context,
    strategy_id: str,
    symbol: str,
    start_str: str,
    end_str: str,
    capital: float | None,
    benchmark: str | None,
    options: tuple[str, ...],
) -> None:
    """Run a strategy over stored daily closes and show its metrics."""
    cfg = load_config(ctx.obj["config_path"])
    from backtest import BacktestParameters, BacktestService
    from cli.output import format_backtest_summary
    from data import CsvPriceFeed
    from journal import JournalWriter

    parsed: dict[str, str] = {}
    for item in options:
        key, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--option")
        parsed[key.strip()] = value.strip()

    try:
        start_date = date.fromisoformat(start_str)
        end_date = date.fromisoformat(end_str)
    except ValueError as exc:
        raise click.BadParameter(f"dates must be ISO (YYYY-MM-DD): {exc}") from exc

    params = BacktestParameters(
        symbol=symbol.upper(),
        start_date=start_date,
        end_date=end_date,
        initial_capital=capital if capital is not None else cfg.backtest.initial_capital,
        commission_per_share=cfg.backtest.commission_per_share,
        slippage_bps=cfg.backtest.slippage_bps,
        benchmark_symbol=benchmark or cfg.backtest.benchmark_symbol or None,
        risk_free_rate=cfg.backtest.risk_free_rate,
        options=parsed,
    )

    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    events = _events(cfg)
    service = BacktestService(
        CsvPriceFeed(cfg.backtest.prices_dir),
        max_workers=cfg.backtest.max_workers,
        listeners=[journal.backtest, events.on_backtest],
    )
    try:
        run = service.run_backtest(strategy_id, params)
        click.echo(f"Running backtest {run.id}: {strategy_id} {params.symbol} {params.start_date} -> {params.end_date} ...")
        run = service.wait(run.id)
    except OrderEngineError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        service.shutdown()
    click.echo(format_backtest_summary(run))


# ---------- tradeflow health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, trading schedule, order store, ledger.

    Exit code 0 = healthy, 1 = unhealthy. Designed for Docker HEALTHCHECK.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (kill switch {'ON' if cfg.execution.kill_switch else 'off'})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        schedule = _load_schedule(cfg)
        checks.append(("schedule", True, f"validated ({schedule.exchange}, {len(schedule.holidays)} holidays)"))
    except Exception as e:
        checks.append(("schedule", False, str(e)))

    try:
        from execution import SqliteOrderStore
        from order_core.contracts import OrderStatus

        store = SqliteOrderStore(cfg.ledger.order_store_path)
        open_count = len(store.list_by_status(OrderStatus.PENDING, OrderStatus.APPROVED))
        checks.append(("orders", True, f"{open_count} open order(s)"))
    except Exception as e:
        checks.append(("orders", False, str(e)))

    try:
        from execution import PaperLedger

        ledger = PaperLedger(cfg.ledger.state_path, initial_cash=cfg.ledger.initial_cash)
        checks.append(("ledger", True, f"{len(ledger.list_portfolios())} portfolio(s)"))
    except Exception as e:
        checks.append(("ledger", False, str(e)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
