#!/usr/bin/env python3
"""Watchtower entrypoint: wires the bridge monitors and runs until stopped.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from watchtower.core.config import load_settings
from watchtower.core.logging import setup_logging
from watchtower.factory import create_watchtower

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start all components and run until interrupted or a watcher dies."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level, config=settings.logging)

    logger.info(
        "watchtower_starting",
        ethereum_rpc=settings.ethereum.rpc_url,
        fuel_graphql=settings.fuel.graphql_url,
        read_only=settings.read_only,
    )

    watchtower = create_watchtower(settings)

    try:
        await watchtower.start()
    except Exception:
        logger.exception("watchtower_start_failed")
        await watchtower.stop()
        return 1

    # ── Wait for shutdown signal or watcher failure ─────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    stop_waiter = asyncio.create_task(stop_event.wait())
    watcher_waiter = asyncio.create_task(watchtower.wait())
    code = 0
    try:
        done, _ = await asyncio.wait(
            {stop_waiter, watcher_waiter}, return_when=asyncio.FIRST_COMPLETED,
        )
        if watcher_waiter in done:
            try:
                watcher_waiter.result()
            except Exception:
                logger.exception("watcher_failed")
            else:
                logger.error("watcher_exited")
            code = 1
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")
    finally:
        stop_waiter.cancel()
        watcher_waiter.cancel()

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("watchtower_shutting_down")
    await watchtower.stop()
    return code


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Monitor the Fuel bridge and pause it when things go wrong.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
