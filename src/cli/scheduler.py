"""
Live sweep scheduler: market-aware loop that runs the order sweep every
``sweep.interval_seconds`` while trading is permitted.

Outside trading hours it runs one sweep (expiry still applies), then
sleeps until the next open. Ctrl+C for graceful shutdown.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import click

from cli.structured_log import StructuredEventLogger
from order_core.lifecycle import OrderLifecycleManager

logger = logging.getLogger("tradeflow.scheduler")


def run_sweep_loop(
    manager: OrderLifecycleManager,
    interval_seconds: int,
    *,
    events: StructuredEventLogger | None = None,
    sleep: Callable[[float], None] = time.sleep,
    max_cycles: int | None = None,
) -> int:
    """
    Main loop: sweep, wait, repeat. Returns the number of sweeps run.

    ``max_cycles`` bounds the loop (tests, one-off runs); None runs until
    interrupted.
    """
    cycles = 0
    exchange = manager.schedule.exchange

    click.echo(f"Order sweep started: every {interval_seconds}s on {exchange} hours  |  Ctrl+C to stop\n")

    try:
        while max_cycles is None or cycles < max_cycles:
            status = manager.market_status()
            transitions = manager.evaluate_sweep()
            cycles += 1
            if events:
                events.sweep_complete(len(transitions))
            if transitions:
                click.echo(f"[{status.as_of:%H:%M:%S}] {len(transitions)} transition(s)")

            if not status.is_open:
                wait = status.time_until_next_open.total_seconds()
                click.echo(f"[{status.as_of:%H:%M:%S}] Market closed. "
                           f"Sleeping until {status.next_open:%Y-%m-%d %H:%M %Z} ({wait / 3600:.1f}h)")
                if events:
                    events.market_closed(status.next_open.isoformat(), wait / 3600)
                sleep(max(wait, interval_seconds))
                continue

            sleep(interval_seconds)

    except KeyboardInterrupt:
        click.echo(f"\n\nShutting down after {cycles} sweep(s). Goodbye.")
        if events:
            events.shutdown(cycles)
    logger.info("Sweep loop stopped after %d cycle(s)", cycles)
    return cycles
