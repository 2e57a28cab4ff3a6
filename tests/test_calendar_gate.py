"""Tests for the trading calendar gate (pure functions of now + schedule)."""

from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import ET, et
from order_core.calendar_gate import (
    MarketPhase,
    format_duration,
    is_trading_day,
    market_status,
    next_trading_day,
    validate_trading_hours,
)
from order_core.errors import MarketClosedError

# ---------------------------------------------------------------------------
# Regular session
# ---------------------------------------------------------------------------


def test_open_during_regular_session(schedule) -> None:
    status = market_status(et(2024, 7, 5, 10, 0), schedule)
    assert status.is_open is True
    assert status.phase is MarketPhase.OPEN
    assert status.next_close == et(2024, 7, 5, 16, 0)
    assert status.next_open == et(2024, 7, 8, 9, 30)


def test_open_at_exact_open(schedule) -> None:
    assert market_status(et(2024, 7, 5, 9, 30), schedule).is_open is True


def test_closed_at_exact_close(schedule) -> None:
    status = market_status(et(2024, 7, 5, 16, 0), schedule)
    assert status.is_open is False
    assert status.phase is MarketPhase.CLOSED


def test_closed_before_open_reports_same_day_open(schedule) -> None:
    status = market_status(et(2024, 7, 5, 9, 29), schedule)
    assert status.is_open is False
    assert status.next_open == et(2024, 7, 5, 9, 30)
    assert status.time_until_next_open == timedelta(minutes=1)


def test_naive_datetime_is_utc(schedule) -> None:
    # 14:00 UTC == 10:00 EDT
    assert market_status(datetime(2024, 7, 5, 14, 0), schedule).is_open is True
    # 13:00 UTC == 09:00 EDT
    assert market_status(datetime(2024, 7, 5, 13, 0), schedule).is_open is False


def test_as_of_is_local_time(schedule) -> None:
    status = market_status(datetime(2024, 7, 5, 14, 0, tzinfo=timezone.utc), schedule)
    assert status.as_of.tzinfo == ET
    assert status.as_of.hour == 10


# ---------------------------------------------------------------------------
# Holidays, weekends, early closes
# ---------------------------------------------------------------------------


def test_closed_on_holiday(schedule) -> None:
    status = market_status(et(2024, 7, 4, 10, 0), schedule)
    assert status.is_open is False
    assert status.next_open == et(2024, 7, 5, 9, 30)


def test_closed_on_weekend(schedule) -> None:
    status = market_status(et(2024, 7, 6, 12, 0), schedule)
    assert status.is_open is False
    assert status.next_open == et(2024, 7, 8, 9, 30)
    assert status.next_close == et(2024, 7, 8, 16, 0)


def test_early_close_day(schedule) -> None:
    assert market_status(et(2024, 7, 3, 12, 59), schedule).is_open is True
    assert market_status(et(2024, 7, 3, 13, 0), schedule).is_open is False
    assert market_status(et(2024, 7, 3, 10, 0), schedule).next_close == et(2024, 7, 3, 13, 0)


def test_next_close_skips_holiday(schedule) -> None:
    # after the early close on 07-03, next session is 07-05 (07-04 holiday)
    status = market_status(et(2024, 7, 3, 14, 0), schedule)
    assert status.next_close == et(2024, 7, 5, 16, 0)


def test_is_trading_day(schedule) -> None:
    assert is_trading_day(date(2024, 7, 5), schedule) is True
    assert is_trading_day(date(2024, 7, 4), schedule) is False
    assert is_trading_day(date(2024, 7, 6), schedule) is False


def test_next_trading_day(schedule) -> None:
    assert next_trading_day(date(2024, 7, 5), schedule) == date(2024, 7, 8)
    assert next_trading_day(date(2024, 7, 3), schedule) == date(2024, 7, 5)


# ---------------------------------------------------------------------------
# Daylight saving
# ---------------------------------------------------------------------------


def test_open_tracks_dst(schedule) -> None:
    # Friday before DST starts: 09:30 EST == 14:30 UTC
    assert market_status(datetime(2024, 3, 8, 14, 30, tzinfo=timezone.utc), schedule).is_open is True
    assert market_status(datetime(2024, 3, 8, 13, 30, tzinfo=timezone.utc), schedule).is_open is False
    # Monday after DST starts: 09:30 EDT == 13:30 UTC
    assert market_status(datetime(2024, 3, 11, 13, 30, tzinfo=timezone.utc), schedule).is_open is True


# ---------------------------------------------------------------------------
# Extended hours
# ---------------------------------------------------------------------------


def test_pre_market_closed_by_default(schedule) -> None:
    assert market_status(et(2024, 7, 5, 8, 0), schedule).is_open is False


def test_pre_market_when_enabled(schedule) -> None:
    extended = schedule.with_extended_hours(pre_market=True, after_hours=False)
    status = market_status(et(2024, 7, 5, 8, 0), extended)
    assert status.is_open is True
    assert status.phase is MarketPhase.PRE_MARKET
    assert status.next_close == et(2024, 7, 5, 9, 30)


def test_after_hours_when_enabled(schedule) -> None:
    extended = schedule.with_extended_hours(pre_market=False, after_hours=True)
    status = market_status(et(2024, 7, 5, 17, 0), extended)
    assert status.is_open is True
    assert status.phase is MarketPhase.AFTER_HOURS
    assert status.next_close == et(2024, 7, 5, 20, 0)
    assert market_status(et(2024, 7, 5, 20, 0), extended).is_open is False


def test_after_hours_starts_at_early_close(schedule) -> None:
    extended = schedule.with_extended_hours(pre_market=False, after_hours=True)
    assert market_status(et(2024, 7, 3, 13, 30), extended).phase is MarketPhase.AFTER_HOURS


def test_extended_hours_never_on_holiday(schedule) -> None:
    extended = schedule.with_extended_hours(pre_market=True, after_hours=True)
    assert market_status(et(2024, 7, 4, 8, 0), extended).is_open is False


# ---------------------------------------------------------------------------
# validate_trading_hours / format_duration
# ---------------------------------------------------------------------------


def test_validate_trading_hours_open(schedule) -> None:
    assert validate_trading_hours(et(2024, 7, 5, 10, 0), schedule) is True


def test_validate_trading_hours_strict_raises(schedule) -> None:
    with pytest.raises(MarketClosedError, match="Next opening"):
        validate_trading_hours(et(2024, 7, 4, 10, 0), schedule)


def test_validate_trading_hours_lenient(schedule) -> None:
    assert validate_trading_hours(et(2024, 7, 4, 10, 0), schedule, strict=False) is False


def test_format_duration() -> None:
    assert format_duration(timedelta(days=2, hours=3, minutes=10)) == "2d 3h"
    assert format_duration(timedelta(hours=4, minutes=15)) == "4h 15m"
    assert format_duration(timedelta(minutes=12, seconds=40)) == "12m"
    assert format_duration(timedelta(0)) == "0m"


def test_time_until_never_negative(schedule) -> None:
    status = market_status(et(2024, 7, 5, 10, 0), schedule)
    assert status.time_until_next_open > timedelta(0)
    assert status.time_until_next_close == timedelta(hours=6)
