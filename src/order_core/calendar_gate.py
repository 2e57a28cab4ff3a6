"""
Trading calendar gate: is trading permitted at a given instant?

Pure functions of ``(now, schedule)``. Naive datetimes are treated as UTC.
Weekends and holidays are closed all day; early-close dates shut at the
schedule's early close time (13:00 local by default).

Usage:
    from order_core.calendar_gate import market_status
    status = market_status(datetime.now(timezone.utc), schedule)
    status.is_open, status.phase, status.next_open
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from config.schedule_config import TradingSchedule
from order_core.errors import MarketClosedError

_MAX_LOOKAHEAD_DAYS = 366


class MarketPhase(str, Enum):
    OPEN = "open"
    PRE_MARKET = "pre-market"
    AFTER_HOURS = "after-hours"
    CLOSED = "closed"


@dataclass(frozen=True)
class MarketStatus:
    is_open: bool
    phase: MarketPhase
    next_open: datetime
    next_close: datetime
    as_of: datetime

    @property
    def time_until_next_open(self) -> timedelta:
        return max(self.next_open - self.as_of, timedelta(0))

    @property
    def time_until_next_close(self) -> timedelta:
        return max(self.next_close - self.as_of, timedelta(0))

    def describe(self) -> str:
        if self.is_open:
            return (
                f"Market is {self.phase.value}. Closes in "
                f"{format_duration(self.time_until_next_close)} at {self.next_close:%Y-%m-%d %H:%M %Z}"
            )
        return (
            f"Market is closed. Next opening in "
            f"{format_duration(self.time_until_next_open)} at {self.next_open:%Y-%m-%d %H:%M %Z}"
        )


def _to_local(now: datetime, schedule: TradingSchedule) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(schedule.tz)


def _at(day: date, clock: time, schedule: TradingSchedule) -> datetime:
    return datetime.combine(day, clock, tzinfo=schedule.tz)


def is_trading_day(day: date, schedule: TradingSchedule) -> bool:
    """Weekdays that are not listed holidays."""
    return day.weekday() < 5 and day not in schedule.holidays


def next_trading_day(day: date, schedule: TradingSchedule) -> date:
    """First trading day strictly after *day*."""
    candidate = day + timedelta(days=1)
    for _ in range(_MAX_LOOKAHEAD_DAYS):
        if is_trading_day(candidate, schedule):
            return candidate
        candidate += timedelta(days=1)
    raise ValueError(f"No trading day within a year after {day.isoformat()}")


def effective_close(day: date, schedule: TradingSchedule) -> time:
    if day in schedule.early_closes:
        return schedule.early_close_time
    return schedule.regular_hours.close


def _next_open(local: datetime, schedule: TradingSchedule) -> datetime:
    today = local.date()
    if is_trading_day(today, schedule) and local.time() < schedule.regular_hours.open:
        return _at(today, schedule.regular_hours.open, schedule)
    return _at(next_trading_day(today, schedule), schedule.regular_hours.open, schedule)


def _next_close(local: datetime, schedule: TradingSchedule) -> datetime:
    today = local.date()
    if is_trading_day(today, schedule) and local.time() < effective_close(today, schedule):
        return _at(today, effective_close(today, schedule), schedule)
    nxt = next_trading_day(today, schedule)
    return _at(nxt, effective_close(nxt, schedule), schedule)


def market_status(now: datetime, schedule: TradingSchedule) -> MarketStatus:
    """Classify *now* against *schedule*.

    Pre-market and after-hours count as open only when their enable flags
    are set; after-hours starts at the effective close of the day.
    """
    local = _to_local(now, schedule)
    today = local.date()
    clock = local.time()
    next_open = _next_open(local, schedule)
    next_close = _next_close(local, schedule)

    def closed() -> MarketStatus:
        return MarketStatus(False, MarketPhase.CLOSED, next_open, next_close, local)

    if not is_trading_day(today, schedule):
        return closed()

    close_at = effective_close(today, schedule)
    if schedule.regular_hours.open <= clock < close_at:
        return MarketStatus(True, MarketPhase.OPEN, next_open, next_close, local)

    pre = schedule.pre_market
    if schedule.allow_pre_market and pre is not None and pre.contains(clock):
        return MarketStatus(True, MarketPhase.PRE_MARKET, next_open, _at(today, pre.close, schedule), local)

    after = schedule.after_hours
    if schedule.allow_after_hours and after is not None and close_at <= clock < after.close:
        return MarketStatus(True, MarketPhase.AFTER_HOURS, next_open, _at(today, after.close, schedule), local)

    return closed()


def validate_trading_hours(now: datetime, schedule: TradingSchedule, strict: bool = True) -> bool:
    """True when trading is permitted at *now*.

    Raises ``MarketClosedError`` when closed and *strict*; returns False otherwise.
    """
    status = market_status(now, schedule)
    if status.is_open:
        return True
    if strict:
        raise MarketClosedError(status.describe())
    return False


def format_duration(delta: timedelta) -> str:
    """Compact human duration: ``2d 3h``, ``4h 15m``, ``12m``."""
    total_minutes = int(delta.total_seconds() // 60)
    days, rem = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
