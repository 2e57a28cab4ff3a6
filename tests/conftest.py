"""Pytest fixtures: NYSE schedule, frozen clock, in-memory collaborators."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from config.loader import ExecutionConfig, OrdersConfig
from config.schedule_config import TradingSchedule, load_trading_schedule
from data.price_feed import StaticPriceFeed
from execution.order_store import InMemoryOrderStore
from execution.paper_ledger import PaperLedger
from order_core.contracts import RiskLevel, RiskProfile
from order_core.lifecycle import OrderLifecycleManager

ET = ZoneInfo("America/New_York")


def et(year: int, month: int, day: int, hour: int = 10, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=ET)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def schedule() -> TradingSchedule:
    return load_trading_schedule()


@pytest.fixture
def clock() -> FrozenClock:
    """Friday 2024-07-05 10:00 ET: a regular session."""
    return FrozenClock(et(2024, 7, 5, 10, 0))


@pytest.fixture
def feed() -> StaticPriceFeed:
    return StaticPriceFeed({"AAPL": 150.0, "MSFT": 400.0})


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def ledger(tmp_path: Path, schedule: TradingSchedule, clock: FrozenClock) -> PaperLedger:
    return PaperLedger(tmp_path / "ledger.db", day_tz=schedule.tz, clock=clock)


@pytest.fixture
def portfolio_id(ledger: PaperLedger) -> str:
    ledger.open_portfolio(
        "main",
        cash=100_000.0,
        risk_profile=RiskProfile(max_position_percent=25.0, risk_tolerance=RiskLevel.MEDIUM),
    )
    return "main"


@pytest.fixture
def execution_config() -> ExecutionConfig:
    return ExecutionConfig(slippage_bps=0.0, commission_rate=0.0)


@pytest.fixture
def manager(
    store: InMemoryOrderStore,
    ledger: PaperLedger,
    feed: StaticPriceFeed,
    schedule: TradingSchedule,
    clock: FrozenClock,
    execution_config: ExecutionConfig,
) -> OrderLifecycleManager:
    return OrderLifecycleManager(
        store,
        ledger,
        feed,
        schedule,
        orders_config=OrdersConfig(),
        execution_config=execution_config,
        clock=clock,
    )
