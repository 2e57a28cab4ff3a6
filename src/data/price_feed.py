"""
Price feed adapters. Implement the PriceFeed port: current price per symbol
and a daily close series between two dates (inclusive).

StaticPriceFeed: in-memory; tests and scripted demos.
CsvPriceFeed:    one ``{SYMBOL}.csv`` per symbol with ``date,close`` columns.
"""

from __future__ import annotations

import csv
import threading
from datetime import date
from pathlib import Path
from typing import Iterable, Mapping

from order_core.contracts import PricePoint
from order_core.errors import PriceUnavailableError


def _window(points: Iterable[PricePoint], start: date, end: date) -> list[PricePoint]:
    return sorted((p for p in points if start <= p.day <= end), key=lambda p: p.day)


class StaticPriceFeed:
    """Mutable in-memory prices. ``set_price`` moves the market."""

    def __init__(
        self,
        prices: Mapping[str, float] | None = None,
        series: Mapping[str, Iterable[PricePoint]] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._prices = {k.upper(): float(v) for k, v in (prices or {}).items()}
        self._series = {k.upper(): list(v) for k, v in (series or {}).items()}

    def set_price(self, symbol: str, price: float) -> None:
        with self._lock:
            self._prices[symbol.upper()] = float(price)

    def set_series(self, symbol: str, points: Iterable[PricePoint]) -> None:
        with self._lock:
            self._series[symbol.upper()] = list(points)

    def get_current_price(self, symbol: str) -> float:
        with self._lock:
            price = self._prices.get(symbol.upper())
        if price is None:
            raise PriceUnavailableError(f"No price for {symbol}")
        return price

    def get_historical_series(self, symbol: str, start: date, end: date) -> list[PricePoint]:
        with self._lock:
            points = self._series.get(symbol.upper())
        if points is None:
            raise PriceUnavailableError(f"No price history for {symbol}")
        return _window(points, start, end)


class CsvPriceFeed:
    """Daily closes from ``<directory>/<SYMBOL>.csv``; current price is the last close."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, symbol: str) -> Path:
        return self._dir / f"{symbol.upper()}.csv"

    def _load(self, symbol: str) -> list[PricePoint]:
        path = self._path(symbol)
        if not path.exists():
            raise PriceUnavailableError(f"No price file for {symbol}: {path}")
        points: list[PricePoint] = []
        with open(path, newline="") as f:
            for row in csv.DictReader(f):
                try:
                    points.append(PricePoint(
                        day=date.fromisoformat(row["date"].strip()),
                        close=float(row["close"]),
                        symbol=symbol.upper(),
                    ))
                except (KeyError, ValueError) as exc:
                    raise PriceUnavailableError(f"Malformed row in {path.name}: {row}") from exc
        points.sort(key=lambda p: p.day)
        return points

    def get_current_price(self, symbol: str) -> float:
        points = self._load(symbol)
        if not points:
            raise PriceUnavailableError(f"Price file for {symbol} is empty")
        return points[-1].close

    def get_historical_series(self, symbol: str, start: date, end: date) -> list[PricePoint]:
        return _window(self._load(symbol), start, end)
