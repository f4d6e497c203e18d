"""Paging transports: external delivery of Warn/Error alerts."""

from __future__ import annotations

import abc

import aiohttp
import structlog

from watchtower.alerts.exceptions import PagingError
from watchtower.core.config import PagerDutyConfig

logger = structlog.get_logger(__name__)


class PagingTransport(abc.ABC):
    """Base class for external incident-paging providers."""

    @abc.abstractmethod
    async def send(self, severity: str, summary: str, source: str) -> None:
        """Deliver one page.  Raises PagingError on failure."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class NullTransport(PagingTransport):
    """Transport used when external paging is disabled."""

    async def send(self, severity: str, summary: str, source: str) -> None:
        logger.debug("paging_disabled", severity=severity, summary=summary)

    async def close(self) -> None:
        return None


class PagerDutyTransport(PagingTransport):
    """Triggers incidents through the PagerDuty Events API v2."""

    def __init__(self, config: PagerDutyConfig) -> None:
        self._routing_key = config.api_key.get_secret_value()
        self._url = config.url
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def send(self, severity: str, summary: str, source: str) -> None:
        payload = {
            "payload": {
                "summary": summary,
                "severity": severity,
                "source": source,
            },
            "routing_key": self._routing_key,
            "event_action": "trigger",
        }

        try:
            session = self._get_session()
            async with session.post(self._url, json=payload) as resp:
                if 200 <= resp.status < 300:
                    return
                body = await resp.text()
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PagingError(f"PagerDuty request failed: {exc}") from exc

        raise PagingError(f"PagerDuty returned {resp.status}: {body[:200]}")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


def create_transport(config: PagerDutyConfig) -> PagingTransport:
    """Build the configured paging transport."""
    if config.enabled and config.api_key.get_secret_value():
        return PagerDutyTransport(config)
    return NullTransport()
