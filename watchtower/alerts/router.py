"""Alert cache & router: dedups alerts by category and pages fresh ones."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable

import structlog

from watchtower.alerts.channels import NullTransport, PagingTransport
from watchtower.alerts.exceptions import WiringError
from watchtower.core.channel import ChannelClosedError, Receiver, Sender
from watchtower.core.config import AlertsConfig
from watchtower.core.logging import ALERTS_LOGGER
from watchtower.core.types import AlertCategory, AlertEvent, AlertLevel, AlertType

# Local sink for every non-None alert.
alert_logger = structlog.get_logger(ALERTS_LOGGER)

logger = structlog.get_logger(__name__)

THREAD_CONNECTIONS_ERR = "Connections to the alerts thread have all closed."

# Only these levels are ever paged externally.
_PAGER_SEVERITY: dict[AlertLevel, str] = {
    AlertLevel.WARN: "warning",
    AlertLevel.ERROR: "critical",
}

FatalHandler = Callable[[BaseException], None]
Clock = Callable[[], float]


def terminate_process(exc: BaseException) -> None:
    """Flush logs and exit immediately so process supervision notices."""
    logging.shutdown()
    os._exit(1)


class AlertSender:
    """Producer handle for the alert router.  Never blocks the caller."""

    def __init__(self, sender: Sender[AlertEvent]) -> None:
        self._sender = sender

    @property
    def closed(self) -> bool:
        return self._sender.closed

    def submit(self, event: AlertEvent) -> None:
        self._sender.send(event)

    def submit_alert(
        self,
        text: str,
        level: AlertLevel,
        category: AlertType,
        scope: str = "",
    ) -> None:
        """Enqueue an alert for the router."""
        self._sender.send(
            AlertEvent(text=text, level=level, category=category, scope=scope),
        )

    def clone(self) -> AlertSender:
        return AlertSender(self._sender.clone())

    def close(self) -> None:
        self._sender.close()


class AlertRouter:
    """Single consumer of the alert queue.

    - Every alert except ``None`` level is written to the *alerts* logger.
    - Alerts are deduplicated by category within a fixed TTL window; the
      first occurrence governs suppression, duplicates never refresh it.
    - Fresh WARN/ERROR alerts are paged once the startup grace period has
      elapsed.  Paging failures are logged and swallowed.
    - Losing every producer handle is fatal: ``on_fatal`` is invoked.

    Usage::

        router = AlertRouter(transport, cache_expiry=600.0)
        alerts = router.sender()
        await router.start()
        alerts.submit_alert("Ethereum block is late", AlertLevel.WARN,
                            AlertType.ETHEREUM_BLOCK_PRODUCTION_STALLED)
    """

    def __init__(
        self,
        transport: PagingTransport | None = None,
        cache_expiry: float = 600.0,
        min_duration_from_start_to_err: float = 3600.0,
        source: str = "Watchtower System",
        clock: Clock = time.monotonic,
        on_fatal: FatalHandler = terminate_process,
    ) -> None:
        self._transport = transport or NullTransport()
        self._cache_expiry = cache_expiry
        self._source = source
        self._clock = clock
        self._on_fatal = on_fatal
        self._allowed_alerting_start_time = clock() + min_duration_from_start_to_err

        self._receiver: Receiver[AlertEvent] = Receiver()
        # category -> suppressed_until
        self._cache: dict[AlertCategory, float] = {}
        self._cache_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._pages_sent = 0

    @classmethod
    def from_config(
        cls,
        config: AlertsConfig,
        transport: PagingTransport | None = None,
        **kwargs: object,
    ) -> AlertRouter:
        return cls(
            transport=transport,
            cache_expiry=config.alert_cache_expiry_secs,
            min_duration_from_start_to_err=config.min_duration_from_start_to_err_secs,
            source=config.pagerduty.source,
            **kwargs,  # type: ignore[arg-type]
        )

    # ── Properties ──────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def allowed_alerting_start_time(self) -> float:
        return self._allowed_alerting_start_time

    @property
    def cache(self) -> dict[AlertCategory, float]:
        """Read-only copy of the dedup cache."""
        return dict(self._cache)

    @property
    def pages_sent(self) -> int:
        return self._pages_sent

    # ── Producers ───────────────────────────────────────────────

    def sender(self) -> AlertSender:
        """Open a new producer handle."""
        return AlertSender(self._receiver.new_sender())

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> asyncio.Task[None]:
        """Spawn the consumer task (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="alert-router")
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._transport.close()

    async def _run(self) -> None:
        while True:
            try:
                event = await self._receiver.recv()
            except ChannelClosedError:
                logger.error("alert_channel_closed", detail=THREAD_CONNECTIONS_ERR)
                self._on_fatal(WiringError(THREAD_CONNECTIONS_ERR))
                return
            await self.process(event)

    # ── Processing ──────────────────────────────────────────────

    async def process(self, event: AlertEvent) -> bool:
        """Handle one alert.  Returns True if it was paged externally."""
        if event.level == AlertLevel.NONE:
            return False

        self._log(event)

        now = self._clock()
        async with self._cache_lock:
            fresh = self._record(event, now)

        severity = _PAGER_SEVERITY.get(event.level)
        if not fresh or severity is None:
            return False
        if now < self._allowed_alerting_start_time:
            logger.debug("page_suppressed_startup_grace", category=event.category)
            return False

        try:
            await self._transport.send(severity, event.text, self._source)
        except Exception:
            logger.exception(
                "paging_send_error",
                transport=type(self._transport).__name__,
                category=event.category,
            )
            return False

        self._pages_sent += 1
        return True

    def _record(self, event: AlertEvent, now: float) -> bool:
        """Purge expired entries, then register *event*.  True if fresh."""
        expired = [key for key, until in self._cache.items() if now >= until]
        for key in expired:
            del self._cache[key]

        if event.key in self._cache:
            return False

        self._cache[event.key] = now + self._cache_expiry
        return True

    def _log(self, event: AlertEvent) -> None:
        fields = {"category": event.category.value}
        if event.scope:
            fields["scope"] = event.scope
        if event.level == AlertLevel.ERROR:
            alert_logger.error(event.text, **fields)
        elif event.level == AlertLevel.WARN:
            alert_logger.warning(event.text, **fields)
        else:
            alert_logger.info(event.text, **fields)
