"""Tests for the paper ledger: portfolios, fills, day trades, daily P&L."""

from datetime import timedelta
from pathlib import Path

import pytest

from conftest import FrozenClock, et
from execution.paper_ledger import PaperLedger
from order_core.contracts import Fill, RiskLevel, RiskProfile, Side
from order_core.errors import LedgerError


def _fill(side: Side, qty: int, price: float, ts, commission: float = 0.0, order_id: str = "o") -> Fill:
    return Fill(order_id=order_id, symbol="AAPL", side=side, quantity=qty, price=price, timestamp=ts,
                commission=commission)


def test_open_portfolio_defaults(ledger: PaperLedger) -> None:
    snapshot = ledger.open_portfolio("p")
    assert snapshot.cash == pytest.approx(100_000.0)
    assert snapshot.positions == {}
    assert snapshot.risk_profile == RiskProfile()


def test_open_portfolio_is_idempotent(ledger: PaperLedger) -> None:
    ledger.open_portfolio("p", cash=5_000.0, risk_profile=RiskProfile(risk_tolerance=RiskLevel.HIGH))
    again = ledger.open_portfolio("p", cash=1.0)
    assert again.cash == pytest.approx(5_000.0)
    assert again.risk_profile.risk_tolerance is RiskLevel.HIGH
    assert ledger.list_portfolios() == ["p"]


def test_unknown_portfolio(ledger: PaperLedger, clock: FrozenClock) -> None:
    with pytest.raises(LedgerError, match="Unknown portfolio"):
        ledger.get_snapshot("ghost")
    with pytest.raises(LedgerError):
        ledger.apply_fill("ghost", _fill(Side.BUY, 1, 10.0, clock.now))


def test_buy_then_average_up(ledger: PaperLedger, clock: FrozenClock) -> None:
    ledger.open_portfolio("p")
    ledger.apply_fill("p", _fill(Side.BUY, 10, 100.0, clock.now, commission=1.0))
    ledger.apply_fill("p", _fill(Side.BUY, 10, 110.0, clock.now))
    snapshot = ledger.get_snapshot("p")
    pos = snapshot.positions["AAPL"]
    assert pos.quantity == 20
    assert pos.avg_price == pytest.approx(105.0)
    assert snapshot.cash == pytest.approx(100_000.0 - 1_000.0 - 1.0 - 1_100.0)


def test_buy_beyond_cash_writes_nothing(ledger: PaperLedger, clock: FrozenClock) -> None:
    ledger.open_portfolio("p", cash=500.0)
    with pytest.raises(LedgerError, match="Insufficient cash"):
        ledger.apply_fill("p", _fill(Side.BUY, 10, 100.0, clock.now))
    snapshot = ledger.get_snapshot("p")
    assert snapshot.cash == pytest.approx(500.0)
    assert ledger.list_fills("p") == []


def test_sell_more_than_held(ledger: PaperLedger, clock: FrozenClock) -> None:
    ledger.open_portfolio("p")
    ledger.apply_fill("p", _fill(Side.BUY, 5, 100.0, clock.now))
    with pytest.raises(LedgerError, match="Insufficient shares"):
        ledger.apply_fill("p", _fill(Side.SELL, 6, 100.0, clock.now))


def test_round_trip_same_day_counts_day_trade(ledger: PaperLedger, clock: FrozenClock) -> None:
    ledger.open_portfolio("p")
    ledger.apply_fill("p", _fill(Side.BUY, 10, 100.0, clock.now))
    ledger.apply_fill("p", _fill(Side.SELL, 10, 95.0, clock.now + timedelta(hours=1), commission=2.0))
    snapshot = ledger.get_snapshot("p")
    assert snapshot.positions == {}
    assert snapshot.day_trade_count == 1
    assert snapshot.daily_realized_pnl == pytest.approx(-52.0)
    assert snapshot.cash == pytest.approx(100_000.0 - 1_000.0 + 950.0 - 2.0)


def test_partial_sell_keeps_position(ledger: PaperLedger, clock: FrozenClock) -> None:
    ledger.open_portfolio("p")
    ledger.apply_fill("p", _fill(Side.BUY, 10, 100.0, clock.now))
    ledger.apply_fill("p", _fill(Side.SELL, 4, 120.0, clock.now))
    pos = ledger.get_snapshot("p").positions["AAPL"]
    assert pos.quantity == 6
    assert pos.avg_price == pytest.approx(100.0)


def test_overnight_position_is_not_day_trade(ledger: PaperLedger, clock: FrozenClock) -> None:
    ledger.open_portfolio("p")
    ledger.apply_fill("p", _fill(Side.BUY, 10, 100.0, et(2024, 7, 3, 11, 0)))
    ledger.apply_fill("p", _fill(Side.SELL, 10, 101.0, clock.now))
    snapshot = ledger.get_snapshot("p")
    assert snapshot.day_trade_count == 0
    assert snapshot.daily_realized_pnl == pytest.approx(10.0)


def test_daily_figures_reset_next_day(ledger: PaperLedger, clock: FrozenClock) -> None:
    ledger.open_portfolio("p")
    ledger.apply_fill("p", _fill(Side.BUY, 10, 100.0, clock.now))
    ledger.apply_fill("p", _fill(Side.SELL, 10, 90.0, clock.now))
    assert ledger.get_snapshot("p").daily_realized_pnl == pytest.approx(-100.0)

    clock.set(et(2024, 7, 8, 10, 0))
    snapshot = ledger.get_snapshot("p")
    assert snapshot.day_trade_count == 0
    assert snapshot.daily_realized_pnl == 0.0


def test_state_survives_reopen(tmp_path: Path, clock: FrozenClock) -> None:
    path = tmp_path / "ledger.db"
    first = PaperLedger(path, clock=clock)
    first.open_portfolio("p")
    first.apply_fill("p", _fill(Side.BUY, 3, 50.0, clock.now, order_id="o-9"))

    second = PaperLedger(path, clock=clock)
    assert second.get_snapshot("p").position_quantity("AAPL") == 3
    fills = second.list_fills("p")
    assert [f.order_id for f in fills] == ["o-9"]
    assert fills[0].side is Side.BUY
