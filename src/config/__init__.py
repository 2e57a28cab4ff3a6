"""
Configuration loaders.

App config:       reads config.yaml, kill switch overridable from env.
Trading schedule: reads trading_schedule.default.json (or override), validates against JSON Schema.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    BacktestConfig,
    ExecutionConfig,
    JournalConfig,
    LedgerConfig,
    OrdersConfig,
    SweepConfig,
    load_config,
)
from config.schedule_config import (
    ScheduleConfigError,
    TradingSchedule,
    TradingWindow,
    load_trading_schedule,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "BacktestConfig",
    "ExecutionConfig",
    "JournalConfig",
    "LedgerConfig",
    "OrdersConfig",
    "SweepConfig",
    "load_config",
    # Trading schedule (JSON + schema)
    "ScheduleConfigError",
    "TradingSchedule",
    "TradingWindow",
    "load_trading_schedule",
]
