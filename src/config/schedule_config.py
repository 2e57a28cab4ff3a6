"""
Trading schedule loader: JSON file -> frozen TradingSchedule, validated against JSON Schema.

Default values: docs/config/trading_schedule.default.json
Schema:         docs/config/trading_schedule.schema.json

Per-exchange overrides: place a partial JSON file named
``trading_schedule.{EXCHANGE}.json`` next to the default file. Only the keys
you want to change need to be present; they are deep-merged on top of the
default before schema validation.

Usage:
    from config.schedule_config import load_trading_schedule
    schedule = load_trading_schedule()                  # NYSE default
    schedule = load_trading_schedule(exchange="LSE")    # merges trading_schedule.LSE.json
    schedule.regular_hours.open  # -> datetime.time(9, 30)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, time
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jsonschema

logger = logging.getLogger("tradeflow.config")


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    Falls back to CWD when installed as a package and no pyproject.toml
    is reachable.
    """
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()

DEFAULT_SCHEDULE_PATH = _PROJECT_ROOT / "docs" / "config" / "trading_schedule.default.json"
DEFAULT_SCHEMA_PATH = _PROJECT_ROOT / "docs" / "config" / "trading_schedule.schema.json"


class ScheduleConfigError(Exception):
    """Raised when the trading schedule cannot be loaded or is inconsistent."""


def parse_clock(value: str) -> time:
    """Parse a local wall-clock string ``HH:MM``."""
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (ValueError, AttributeError) as exc:
        raise ScheduleConfigError(f"Invalid clock time {value!r} (expected HH:MM)") from exc


@dataclass(frozen=True)
class TradingWindow:
    open: time
    close: time

    def __post_init__(self) -> None:
        if self.open >= self.close:
            raise ScheduleConfigError(
                f"Window open {self.open:%H:%M} must be before close {self.close:%H:%M}"
            )

    def contains(self, moment: time) -> bool:
        return self.open <= moment < self.close


@dataclass(frozen=True)
class TradingSchedule:
    """Immutable exchange calendar used by the calendar gate."""

    regular_hours: TradingWindow
    timezone: str = "America/New_York"
    pre_market: TradingWindow | None = None
    after_hours: TradingWindow | None = None
    allow_pre_market: bool = False
    allow_after_hours: bool = False
    holidays: frozenset[date] = field(default_factory=frozenset)
    early_closes: frozenset[date] = field(default_factory=frozenset)
    early_close_time: time = time(13, 0)
    exchange: str = "NYSE"

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ScheduleConfigError(f"Unknown timezone: {self.timezone!r}") from exc
        if not self.regular_hours.open < self.early_close_time < self.regular_hours.close:
            raise ScheduleConfigError("Early close time must fall inside regular hours")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def with_extended_hours(self, *, pre_market: bool, after_hours: bool) -> TradingSchedule:
        """Copy of this schedule with the extended-hours flags replaced."""
        return TradingSchedule(
            regular_hours=self.regular_hours,
            timezone=self.timezone,
            pre_market=self.pre_market,
            after_hours=self.after_hours,
            allow_pre_market=pre_market,
            allow_after_hours=after_hours,
            holidays=self.holidays,
            early_closes=self.early_closes,
            early_close_time=self.early_close_time,
            exchange=self.exchange,
        )


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base* (override keys win)."""
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    if not schema_path.exists():
        raise ScheduleConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise ScheduleConfigError(f"Trading schedule validation failed: {exc.message}") from exc


def _window(raw: dict[str, str] | None) -> TradingWindow | None:
    if raw is None:
        return None
    return TradingWindow(open=parse_clock(raw["open"]), close=parse_clock(raw["close"]))


def _dates(values: list[str]) -> frozenset[date]:
    try:
        return frozenset(date.fromisoformat(v) for v in values)
    except ValueError as exc:
        raise ScheduleConfigError(f"Invalid calendar date: {exc}") from exc


def build_schedule(data: dict[str, Any]) -> TradingSchedule:
    """Convert a raw (already validated) dict into a TradingSchedule."""
    return TradingSchedule(
        regular_hours=_window(data["regular_hours"]),
        timezone=data["timezone"],
        pre_market=_window(data.get("pre_market")),
        after_hours=_window(data.get("after_hours")),
        allow_pre_market=data.get("allow_pre_market", False),
        allow_after_hours=data.get("allow_after_hours", False),
        holidays=_dates(data["holidays"]),
        early_closes=_dates(data["early_closes"]),
        early_close_time=parse_clock(data.get("early_close_time", "13:00")),
        exchange=data.get("exchange", "NYSE"),
    )


def load_trading_schedule(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    exchange: str | None = None,
) -> TradingSchedule:
    """Load and validate the trading schedule.

    Parameters
    ----------
    config_path:
        Path to a schedule JSON file. Defaults to
        ``docs/config/trading_schedule.default.json``.
    schema_path:
        Path to the JSON Schema. Defaults to
        ``docs/config/trading_schedule.schema.json``.
    exchange:
        Optional exchange code. When given, ``trading_schedule.{EXCHANGE}.json``
        next to the base file is deep-merged on top if it exists.

    Raises
    ------
    ScheduleConfigError
        If the file is missing, unparseable, fails schema validation, or
        describes an inconsistent calendar (e.g. open after close).
    """
    cfg_path = Path(config_path) if config_path else DEFAULT_SCHEDULE_PATH
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    if not cfg_path.exists():
        raise ScheduleConfigError(f"Trading schedule file not found: {cfg_path}")

    try:
        with open(cfg_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ScheduleConfigError(f"Trading schedule is not valid JSON: {exc}") from exc

    if exchange:
        override_path = cfg_path.parent / f"trading_schedule.{exchange.upper()}.json"
        if override_path.exists():
            try:
                with open(override_path) as f:
                    overrides = json.load(f)
            except json.JSONDecodeError as exc:
                raise ScheduleConfigError(
                    f"Exchange schedule {override_path.name} is not valid JSON: {exc}"
                ) from exc
            data = _deep_merge(data, overrides)
            logger.info("Loaded exchange schedule: %s", override_path.name)
        else:
            logger.debug("No exchange schedule found at %s; using defaults", override_path)

    _validate_schema(data, sch_path)

    return build_schedule(data)
