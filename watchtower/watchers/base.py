"""Abstract base watcher: poll loop, heartbeat, lifecycle management."""

from __future__ import annotations

import abc
import asyncio
import time

import structlog

from watchtower.actions.dispatcher import ActionSender
from watchtower.alerts.router import AlertSender
from watchtower.core.types import AlertLevel, AlertType
from watchtower.watchers.indicators import Indicator, evaluate

logger = structlog.stdlib.get_logger()

DEFAULT_POLL_INTERVAL_SECS = 6.0


class BaseWatcher(abc.ABC):
    """Drives one chain's indicators on a fixed interval.

    Subclasses implement ``indicators()`` (and optionally ``initialize()``
    and ``after_iteration()``); the base class runs the loop.  The loop does
    not swallow unexpected exceptions: the task returned by ``start()``
    fails and the embedder must treat that as fatal.

    Usage::

        watcher = FuelWatcher(fuel, fuel, config, alerts, actions)
        task = await watcher.start()
        await task  # only returns if the loop crashed
    """

    chain_name: str = ""
    heartbeat_category: AlertType

    def __init__(
        self,
        alerts: AlertSender,
        actions: ActionSender,
        poll_interval_secs: float = DEFAULT_POLL_INTERVAL_SECS,
    ) -> None:
        self._alerts = alerts
        self._actions = actions
        self._poll_interval_secs = poll_interval_secs
        self._task: asyncio.Task[None] | None = None
        self._iterations = 0
        self._last_poll_time: float = 0.0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def iterations(self) -> int:
        return self._iterations

    @property
    def last_poll_time(self) -> float:
        return self._last_poll_time

    @abc.abstractmethod
    def indicators(self) -> list[Indicator[object]]:
        """Indicators to run this iteration, in evaluation order."""

    async def initialize(self) -> None:
        """One-off setup before the first iteration."""

    async def run_indicators(self) -> None:
        for indicator in self.indicators():
            await evaluate(indicator, self._alerts, self._actions)

    async def after_iteration(self) -> None:
        """Hook run after every indicator has been evaluated."""

    async def poll_once(self) -> None:
        """One loop iteration: heartbeat, indicators, post-iteration hook."""
        self._alerts.submit_alert(
            f"Watching {self.chain_name} chain.",
            AlertLevel.INFO,
            self.heartbeat_category,
        )
        await self.run_indicators()
        await self.after_iteration()
        self._iterations += 1
        self._last_poll_time = time.time()

    async def start(self) -> asyncio.Task[None]:
        """Initialize and spawn the poll loop.  Returns the loop task."""
        if self._task is not None and not self._task.done():
            return self._task
        await self.initialize()
        self._task = asyncio.create_task(
            self._poll_loop(), name=f"{self.chain_name.lower()}-watcher",
        )
        logger.info(
            "watcher_started",
            chain=self.chain_name,
            poll_interval_secs=self._poll_interval_secs,
        )
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            # A crashed loop is reported by whoever awaits start()'s task.
            if not self._task.done():
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None
        logger.info("watcher_stopped", chain=self.chain_name, iterations=self._iterations)

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._poll_interval_secs)
