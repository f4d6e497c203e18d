"""Ethereum JSON-RPC client and chain probe."""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from watchtower.chains.base import ChainProbe
from watchtower.chains.exceptions import (
    ChainConnectionError,
    ChainError,
    ChainResponseError,
)

logger = structlog.stdlib.get_logger()

CONNECTION_RETRIES = 2
ETHEREUM_BLOCK_TIME = 12


def hex_to_int(value: object) -> int:
    """Decode a JSON-RPC quantity (``"0x1a"``)."""
    if not isinstance(value, str):
        raise ChainResponseError(f"expected hex quantity, got {value!r}")
    try:
        return int(value, 16)
    except ValueError as exc:
        raise ChainResponseError(f"invalid hex quantity {value!r}") from exc


class EthereumRpc:
    """Minimal async JSON-RPC client.

    Every call is attempted ``retries`` times, without backoff, before the
    last error is raised.

    Usage::

        rpc = EthereumRpc("https://mainnet.example/rpc")
        await rpc.connect()
        height = hex_to_int(await rpc.call("eth_blockNumber"))
        await rpc.close()
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        retries: int = CONNECTION_RETRIES,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._retries = retries
        self._http = http
        self._ids = itertools.count(1)

    @property
    def connected(self) -> bool:
        return self._http is not None and not self._http.is_closed

    async def connect(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Invoke *method*, returning the ``result`` member."""
        for attempt in range(1, self._retries):
            try:
                return await self._call_once(method, params or [])
            except ChainError as exc:
                logger.debug("ethereum_rpc_retry", method=method, attempt=attempt,
                             error=str(exc))
        return await self._call_once(method, params or [])

    async def _call_once(self, method: str, params: list[Any]) -> Any:
        if self._http is None:
            raise ChainConnectionError("HTTP client not connected")

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        try:
            response = await self._http.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ChainConnectionError(
                f"{method} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ChainConnectionError(f"{method} request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ChainResponseError(f"{method} returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise ChainResponseError(f"{method} returned {type(body).__name__}")

        error = body.get("error")
        if error is not None:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ChainResponseError(f"{method} failed: {message}")

        return body.get("result")


class EthereumChain(ChainProbe):
    """Health probes against an Ethereum node."""

    def __init__(self, rpc: EthereumRpc, clock: Callable[[], float] = time.time) -> None:
        self._rpc = rpc
        self._clock = clock

    async def check_connection(self) -> None:
        try:
            await self._rpc.call("eth_chainId")
        except ChainError as exc:
            raise ChainConnectionError(
                f"Failed to establish connection after {CONNECTION_RETRIES} retries: {exc}"
            ) from exc

    async def chain_id(self) -> int:
        return hex_to_int(await self._rpc.call("eth_chainId"))

    async def latest_block_number(self) -> int:
        return hex_to_int(await self._rpc.call("eth_blockNumber"))

    async def seconds_since_last_block(self) -> int:
        block = await self._rpc.call("eth_getBlockByNumber", ["latest", False])
        if not isinstance(block, dict):
            raise ChainResponseError("Failed to get latest block")

        last_block_timestamp = hex_to_int(block.get("timestamp"))
        now = int(self._clock())
        if now < last_block_timestamp:
            raise ChainResponseError("Block time is ahead of current time")
        return now - last_block_timestamp

    async def account_balance(self, address: str) -> int:
        return hex_to_int(await self._rpc.call("eth_getBalance", [address, "latest"]))
