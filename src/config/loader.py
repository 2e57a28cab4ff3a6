"""
Config loader: YAML file -> frozen dataclass tree.

The kill switch can be forced on from the environment (TRADEFLOW_KILL_SWITCH=1)
so operators can halt execution without editing the config file.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class OrdersConfig:
    max_quantity: int = 10_000
    default_ttl_minutes: int = 1_440
    auto_approve_children: bool = True
    child_ttl_days: int = 30


@dataclass(frozen=True)
class ExecutionConfig:
    slippage_bps: float = 5.0
    commission_rate: float = 0.001
    kill_switch: bool = False


@dataclass(frozen=True)
class SweepConfig:
    interval_seconds: int = 30


@dataclass(frozen=True)
class BacktestConfig:
    initial_capital: float = 100_000.0
    commission_per_share: float = 0.005
    slippage_bps: float = 1.0
    risk_free_rate: float = 0.02
    benchmark_symbol: str = "SPY"
    max_workers: int = 2
    prices_dir: str = "data/prices"


@dataclass(frozen=True)
class LedgerConfig:
    state_path: str = "data/ledger.db"
    order_store_path: str = "data/orders.db"
    initial_cash: float = 100_000.0


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    orders: OrdersConfig = OrdersConfig()
    execution: ExecutionConfig = ExecutionConfig()
    sweep: SweepConfig = SweepConfig()
    backtest: BacktestConfig = BacktestConfig()
    ledger: LedgerConfig = LedgerConfig()
    journal: JournalConfig = JournalConfig()
    alerting: AlertingConfig = AlertingConfig()
    schedule_path: str = ""
    exchange: str = ""


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    Every section is optional; missing keys fall back to the dataclass
    defaults. ``TRADEFLOW_KILL_SWITCH`` in the environment overrides
    ``execution.kill_switch`` when set to a truthy value.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    o_raw = raw.get("orders", {})
    orders_cfg = OrdersConfig(
        max_quantity=int(o_raw.get("max_quantity", 10_000)),
        default_ttl_minutes=int(o_raw.get("default_ttl_minutes", 1_440)),
        auto_approve_children=bool(o_raw.get("auto_approve_children", True)),
        child_ttl_days=int(o_raw.get("child_ttl_days", 30)),
    )

    ex_raw = raw.get("execution", {})
    ex_cfg = ExecutionConfig(
        slippage_bps=float(ex_raw.get("slippage_bps", 5.0)),
        commission_rate=float(ex_raw.get("commission_rate", 0.001)),
        kill_switch=bool(ex_raw.get("kill_switch", False)) or _env_flag("TRADEFLOW_KILL_SWITCH"),
    )

    sw_raw = raw.get("sweep", {})
    sw_cfg = SweepConfig(interval_seconds=int(sw_raw.get("interval_seconds", 30)))

    bt_raw = raw.get("backtest", {})
    bt_cfg = BacktestConfig(
        initial_capital=float(bt_raw.get("initial_capital", 100_000)),
        commission_per_share=float(bt_raw.get("commission_per_share", 0.005)),
        slippage_bps=float(bt_raw.get("slippage_bps", 1.0)),
        risk_free_rate=float(bt_raw.get("risk_free_rate", 0.02)),
        benchmark_symbol=str(bt_raw.get("benchmark_symbol", "SPY")),
        max_workers=int(bt_raw.get("max_workers", 2)),
        prices_dir=str(bt_raw.get("prices_dir", "data/prices")),
    )

    l_raw = raw.get("ledger", {})
    l_cfg = LedgerConfig(
        state_path=l_raw.get("state_path", "data/ledger.db"),
        order_store_path=l_raw.get("order_store_path", "data/orders.db"),
        initial_cash=float(l_raw.get("initial_cash", 100_000)),
    )

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    return AppConfig(
        orders=orders_cfg,
        execution=ex_cfg,
        sweep=sw_cfg,
        backtest=bt_cfg,
        ledger=l_cfg,
        journal=j_cfg,
        alerting=a_cfg,
        schedule_path=str(raw.get("schedule_path", "")),
        exchange=str(raw.get("exchange", "")),
    )
