"""
Strategy simulators: replay a daily close series and emit trades + equity.

Deterministic. Fills at the day's close with slippage (bps) against the
trade; commission is charged per share on each side. Any position still
open on the last day is closed at that day's close.

Simulators report progress as a percentage through ``progress``; the
callback may raise to abort the replay.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from backtest.metrics import EquityPoint, TradeRecord
from backtest.models import BacktestParameters, SimulationResult
from order_core.contracts import PricePoint, Side

ProgressCallback = Callable[[float], None]


class StrategySimulator(Protocol):
    def simulate(
        self,
        prices: Sequence[PricePoint],
        parameters: BacktestParameters,
        progress: ProgressCallback,
    ) -> SimulationResult: ...


@dataclass
class _Book:
    """Cash and a single long position during a replay."""

    params: BacktestParameters
    cash: float
    qty: int = 0
    entry: PricePoint | None = None
    entry_price: float = 0.0
    entry_commission: float = 0.0

    def _slip(self, price: float) -> float:
        return price * self.params.slippage_bps / 10_000

    def buy_all(self, point: PricePoint) -> None:
        fill = point.close + self._slip(point.close)
        qty = math.floor(self.cash / (fill + self.params.commission_per_share))
        if qty <= 0:
            return
        commission = qty * self.params.commission_per_share
        self.cash -= qty * fill + commission
        self.qty = qty
        self.entry = point
        self.entry_price = fill
        self.entry_commission = commission

    def sell_all(self, point: PricePoint) -> TradeRecord:
        fill = point.close - self._slip(point.close)
        commission = self.qty * self.params.commission_per_share
        self.cash += self.qty * fill - commission
        trade = TradeRecord(
            symbol=self.params.symbol,
            side=Side.BUY,
            quantity=self.qty,
            entry_date=self.entry.day,
            exit_date=point.day,
            entry_price=self.entry_price,
            exit_price=fill,
            commission=self.entry_commission + commission,
            slippage=self.qty * (self._slip(self.entry.close) + self._slip(point.close)),
        )
        self.qty = 0
        self.entry = None
        return trade

    def equity(self, point: PricePoint) -> float:
        return self.cash + self.qty * point.close


def _report(progress: ProgressCallback, index: int, total: int) -> None:
    progress(round((index + 1) / total * 100, 2))


class BuyAndHold:
    """Invest everything on the first day, hold to the last."""

    def simulate(
        self,
        prices: Sequence[PricePoint],
        parameters: BacktestParameters,
        progress: ProgressCallback,
    ) -> SimulationResult:
        book = _Book(parameters, cash=parameters.initial_capital)
        trades: list[TradeRecord] = []
        curve: list[EquityPoint] = []
        last = len(prices) - 1

        for i, point in enumerate(prices):
            if i == 0:
                book.buy_all(point)
            if i == last and book.qty:
                trades.append(book.sell_all(point))
            curve.append(EquityPoint(point.day, book.equity(point)))
            _report(progress, i, len(prices))

        return SimulationResult(tuple(trades), tuple(curve))


class SmaCross:
    """Long when the fast SMA is above the slow SMA, flat otherwise.

    Options: ``fast`` (default 10), ``slow`` (default 30).
    """

    def simulate(
        self,
        prices: Sequence[PricePoint],
        parameters: BacktestParameters,
        progress: ProgressCallback,
    ) -> SimulationResult:
        fast = int(parameters.options.get("fast", 10))
        slow = int(parameters.options.get("slow", 30))
        if fast <= 0 or slow <= fast:
            raise ValueError(f"sma_cross needs 0 < fast < slow, got fast={fast} slow={slow}")

        book = _Book(parameters, cash=parameters.initial_capital)
        trades: list[TradeRecord] = []
        curve: list[EquityPoint] = []
        closes: list[float] = []
        last = len(prices) - 1

        for i, point in enumerate(prices):
            closes.append(point.close)
            if len(closes) >= slow:
                fast_ma = sum(closes[-fast:]) / fast
                slow_ma = sum(closes[-slow:]) / slow
                if fast_ma > slow_ma and not book.qty and i < last:
                    book.buy_all(point)
                elif fast_ma < slow_ma and book.qty:
                    trades.append(book.sell_all(point))
            if i == last and book.qty:
                trades.append(book.sell_all(point))
            curve.append(EquityPoint(point.day, book.equity(point)))
            _report(progress, i, len(prices))

        return SimulationResult(tuple(trades), tuple(curve))


STRATEGIES: dict[str, StrategySimulator] = {
    "buy_and_hold": BuyAndHold(),
    "sma_cross": SmaCross(),
}
