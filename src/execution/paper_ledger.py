"""
Paper portfolio ledger: cash, positions and fills per portfolio, restart-safe (SQLite).

Single writer (one process). Implements the PortfolioLedger port: snapshots
for the risk gate, fills applied by the lifecycle manager.
"""

from __future__ import annotations

import sqlite3
import threading
import uuid
from datetime import datetime, time, timezone, tzinfo
from pathlib import Path
from typing import Callable

from order_core.contracts import (
    Fill,
    PortfolioSnapshot,
    Position,
    RiskLevel,
    RiskProfile,
    Side,
)
from order_core.errors import LedgerError


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class PaperLedger:
    """
    Track portfolios, positions and fills in SQLite.

    ``day_tz`` decides where a trading day starts for the day-trade flag and
    for daily realized P&L.
    """

    def __init__(
        self,
        state_path: str | Path,
        *,
        initial_cash: float = 100_000.0,
        day_tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._path = Path(state_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initial_cash = initial_cash
        self._tz = day_tz
        self._clock = clock
        self._write_lock = threading.Lock()
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS portfolios (
                    id TEXT PRIMARY KEY,
                    cash REAL NOT NULL,
                    max_position_percent REAL NOT NULL,
                    risk_tolerance TEXT NOT NULL,
                    day_trading_allowed INTEGER NOT NULL,
                    daily_loss_limit REAL,
                    created_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS positions (
                    portfolio_id TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    qty INTEGER NOT NULL,
                    avg_price REAL NOT NULL,
                    opened_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (portfolio_id, symbol)
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS fills (
                    id TEXT PRIMARY KEY,
                    portfolio_id TEXT NOT NULL,
                    order_id TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    qty INTEGER NOT NULL,
                    price REAL NOT NULL,
                    commission REAL NOT NULL,
                    realized_pnl REAL NOT NULL,
                    day_trade INTEGER NOT NULL,
                    ts_utc TEXT NOT NULL
                )
                """
            )

    # ------------------------------------------------------------------
    # Portfolios
    # ------------------------------------------------------------------

    def open_portfolio(
        self,
        portfolio_id: str,
        *,
        cash: float | None = None,
        risk_profile: RiskProfile | None = None,
    ) -> PortfolioSnapshot:
        """Create *portfolio_id* if it does not exist yet, then return its snapshot."""
        profile = risk_profile or RiskProfile()
        with self._write_lock, self._conn() as c:
            c.execute(
                """INSERT OR IGNORE INTO portfolios
                   (id, cash, max_position_percent, risk_tolerance, day_trading_allowed, daily_loss_limit, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    portfolio_id,
                    self._initial_cash if cash is None else cash,
                    profile.max_position_percent,
                    profile.risk_tolerance.value,
                    int(profile.day_trading_allowed),
                    profile.daily_loss_limit,
                    _utc(self._clock()).isoformat(),
                ),
            )
        return self.get_snapshot(portfolio_id)

    def list_portfolios(self) -> list[str]:
        with self._conn() as c:
            return [r[0] for r in c.execute("SELECT id FROM portfolios ORDER BY id").fetchall()]

    def _day_start_utc(self, now: datetime) -> str:
        local_day = _utc(now).astimezone(self._tz).date()
        start = datetime.combine(local_day, time(0, 0), tzinfo=self._tz)
        return start.astimezone(timezone.utc).isoformat()

    def get_snapshot(self, portfolio_id: str) -> PortfolioSnapshot:
        now = _utc(self._clock())
        with self._conn() as c:
            row = c.execute(
                """SELECT cash, max_position_percent, risk_tolerance, day_trading_allowed, daily_loss_limit
                   FROM portfolios WHERE id = ?""",
                (portfolio_id,),
            ).fetchone()
            if row is None:
                raise LedgerError(f"Unknown portfolio: {portfolio_id}")
            pos_rows = c.execute(
                "SELECT symbol, qty, avg_price, opened_at FROM positions WHERE portfolio_id = ?",
                (portfolio_id,),
            ).fetchall()
            day_row = c.execute(
                """SELECT COALESCE(SUM(day_trade), 0), COALESCE(SUM(realized_pnl), 0)
                   FROM fills WHERE portfolio_id = ? AND ts_utc >= ?""",
                (portfolio_id, self._day_start_utc(now)),
            ).fetchone()

        positions = {
            r[0]: Position(symbol=r[0], quantity=int(r[1]), avg_price=float(r[2]), opened_at=_parse(r[3]))
            for r in pos_rows
            if r[1] != 0
        }
        return PortfolioSnapshot(
            portfolio_id=portfolio_id,
            cash=float(row[0]),
            positions=positions,
            risk_profile=RiskProfile(
                max_position_percent=float(row[1]),
                risk_tolerance=RiskLevel(row[2]),
                day_trading_allowed=bool(row[3]),
                daily_loss_limit=row[4],
            ),
            day_trade_count=int(day_row[0]),
            daily_realized_pnl=float(day_row[1]),
            as_of=now,
        )

    # ------------------------------------------------------------------
    # Fills
    # ------------------------------------------------------------------

    def apply_fill(self, portfolio_id: str, fill: Fill) -> None:
        """Book *fill*: move cash, update the position, record the fill.

        Raises
        ------
        LedgerError
            Unknown portfolio, not enough cash for a BUY, or not enough
            shares for a SELL. Nothing is written in that case.
        """
        ts = _utc(fill.timestamp)
        with self._write_lock, self._conn() as c:
            cash_row = c.execute("SELECT cash FROM portfolios WHERE id = ?", (portfolio_id,)).fetchone()
            if cash_row is None:
                raise LedgerError(f"Unknown portfolio: {portfolio_id}")
            cash = float(cash_row[0])
            pos = c.execute(
                "SELECT qty, avg_price, opened_at FROM positions WHERE portfolio_id = ? AND symbol = ?",
                (portfolio_id, fill.symbol),
            ).fetchone()
            held, avg, opened_at = (int(pos[0]), float(pos[1]), pos[2]) if pos else (0, 0.0, None)

            realized = 0.0
            day_trade = False
            if fill.side is Side.BUY:
                cost = fill.gross_value + fill.commission
                if cost > cash:
                    raise LedgerError(f"Insufficient cash: need {cost:.2f}, have {cash:.2f}")
                new_qty = held + fill.quantity
                new_avg = (held * avg + fill.gross_value) / new_qty
                cash -= cost
                c.execute(
                    """INSERT OR REPLACE INTO positions (portfolio_id, symbol, qty, avg_price, opened_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (portfolio_id, fill.symbol, new_qty, new_avg, opened_at or ts.isoformat(), ts.isoformat()),
                )
            else:
                if fill.quantity > held:
                    raise LedgerError(f"Insufficient shares: selling {fill.quantity}, holding {held}")
                realized = (fill.price - avg) * fill.quantity - fill.commission
                cash += fill.gross_value - fill.commission
                day_trade = _parse(opened_at).astimezone(self._tz).date() == ts.astimezone(self._tz).date()
                remaining = held - fill.quantity
                if remaining == 0:
                    c.execute(
                        "DELETE FROM positions WHERE portfolio_id = ? AND symbol = ?",
                        (portfolio_id, fill.symbol),
                    )
                else:
                    c.execute(
                        "UPDATE positions SET qty = ?, updated_at = ? WHERE portfolio_id = ? AND symbol = ?",
                        (remaining, ts.isoformat(), portfolio_id, fill.symbol),
                    )

            c.execute("UPDATE portfolios SET cash = ? WHERE id = ?", (cash, portfolio_id))
            c.execute(
                """INSERT INTO fills
                   (id, portfolio_id, order_id, symbol, side, qty, price, commission, realized_pnl, day_trade, ts_utc)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    str(uuid.uuid4()),
                    portfolio_id,
                    fill.order_id,
                    fill.symbol,
                    fill.side.value,
                    fill.quantity,
                    fill.price,
                    fill.commission,
                    realized,
                    int(day_trade),
                    ts.isoformat(),
                ),
            )

    def list_fills(self, portfolio_id: str | None = None, limit: int = 100) -> list[Fill]:
        with self._conn() as c:
            if portfolio_id:
                rows = c.execute(
                    """SELECT order_id, symbol, side, qty, price, ts_utc, commission FROM fills
                       WHERE portfolio_id = ? ORDER BY ts_utc DESC LIMIT ?""",
                    (portfolio_id, limit),
                ).fetchall()
            else:
                rows = c.execute(
                    "SELECT order_id, symbol, side, qty, price, ts_utc, commission FROM fills ORDER BY ts_utc DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [
            Fill(
                order_id=r[0],
                symbol=r[1],
                side=Side(r[2]),
                quantity=int(r[3]),
                price=float(r[4]),
                timestamp=_parse(r[5]),
                commission=float(r[6]),
            )
            for r in rows
        ]
