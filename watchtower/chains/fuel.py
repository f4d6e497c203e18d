"""Fuel GraphQL client: chain health, commit verification, withdrawal scans."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from watchtower.chains.base import ChainProbe, CommitVerifier, LogWindowSource
from watchtower.chains.exceptions import (
    ChainConnectionError,
    ChainError,
    ChainResponseError,
)

logger = structlog.stdlib.get_logger()

CONNECTION_RETRIES = 2
FUEL_BLOCK_TIME = 1
# TAI64 labels are offset by 2**62 and TAI runs 10s ahead of UTC.
_TAI64_OFFSET = 2**62 + 10
_PAGE_SIZE = 50

_WITHDRAWAL_OUTPUTS = {"CoinOutput", "ChangeOutput", "VariableOutput"}

CHAIN_QUERY = """
query {
  chain {
    name
    latestBlock {
      id
      height
      header { time }
    }
  }
}
"""

BLOCK_BY_ID_QUERY = """
query BlockById($id: BlockId!) {
  block(id: $id) { id }
}
"""

BLOCKS_QUERY = """
query LatestBlocks($last: Int!, $before: String) {
  blocks(last: $last, before: $before) {
    pageInfo { hasPreviousPage startCursor }
    nodes {
      height
      transactions {
        id
        isScript
        script
        status { __typename }
        outputs {
          __typename
          ... on CoinOutput { amount assetId }
          ... on ChangeOutput { amount assetId }
          ... on VariableOutput { amount assetId }
        }
      }
    }
  }
}
"""


def tai64_to_unix(value: str | int) -> int:
    try:
        return int(value) - _TAI64_OFFSET
    except (TypeError, ValueError) as exc:
        raise ChainResponseError(f"invalid TAI64 timestamp {value!r}") from exc


def _normalize_hex(value: str) -> str:
    return value.lower().removeprefix("0x")


def _asset_key(value: str) -> str:
    return _normalize_hex(value).rjust(64, "0")


class FuelChain(ChainProbe, CommitVerifier, LogWindowSource):
    """Fuel node client over its GraphQL API.

    Withdrawals are counted from successful script transactions whose
    bytecode starts with ``withdrawal_script``, summing their coin, change
    and variable outputs (filtered to ``token`` when one is given).
    """

    def __init__(
        self,
        url: str,
        withdrawal_script: str = "",
        timeout: float = 10.0,
        retries: int = CONNECTION_RETRIES,
        http: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._url = url
        self._withdrawal_script = _normalize_hex(withdrawal_script)
        self._timeout = timeout
        self._retries = retries
        self._http = http
        self._clock = clock

    async def connect(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ── GraphQL transport ───────────────────────────────────────

    async def query(self, document: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a GraphQL document, returning its ``data`` member."""
        for attempt in range(1, self._retries):
            try:
                return await self._query_once(document, variables or {})
            except ChainError as exc:
                logger.debug("fuel_query_retry", attempt=attempt, error=str(exc))
        return await self._query_once(document, variables or {})

    async def _query_once(self, document: str, variables: dict[str, Any]) -> dict[str, Any]:
        if self._http is None:
            raise ChainConnectionError("HTTP client not connected")

        try:
            response = await self._http.post(
                self._url, json={"query": document, "variables": variables},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ChainConnectionError(
                f"fuel query returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ChainConnectionError(f"fuel query failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ChainResponseError("fuel query returned invalid JSON") from exc

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            message = "; ".join(str(e.get("message", e)) for e in errors if isinstance(e, dict))
            raise ChainResponseError(f"fuel query failed: {message or errors}")

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ChainResponseError("fuel query returned no data")
        return data

    # ── ChainProbe ──────────────────────────────────────────────

    async def _latest_block(self) -> dict[str, Any]:
        data = await self.query(CHAIN_QUERY)
        block = (data.get("chain") or {}).get("latestBlock")
        if not isinstance(block, dict):
            raise ChainResponseError("fuel chain has no latest block")
        return block

    async def check_connection(self) -> None:
        try:
            await self.query(CHAIN_QUERY)
        except ChainError as exc:
            raise ChainConnectionError(
                f"Failed to establish connection after {self._retries} retries: {exc}"
            ) from exc

    async def latest_block_number(self) -> int:
        block = await self._latest_block()
        try:
            return int(block["height"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainResponseError("latest block has no height") from exc

    async def seconds_since_last_block(self) -> int:
        block = await self._latest_block()
        header = block.get("header") or {}
        last_block_time = tai64_to_unix(header.get("time"))
        now = int(self._clock())
        if now < last_block_time:
            raise ChainResponseError("Block time is ahead of current time")
        return now - last_block_time

    # ── CommitVerifier ──────────────────────────────────────────

    async def verify(self, block_hash: str) -> bool:
        data = await self.query(BLOCK_BY_ID_QUERY, {"id": block_hash})
        return data.get("block") is not None

    # ── LogWindowSource ─────────────────────────────────────────

    async def withdrawals(
        self, time_frame: int, token: str | None, from_block: int | None = None,
    ) -> int:
        if not self._withdrawal_script:
            raise ChainResponseError("fuel withdrawal script not configured")
        asset = _asset_key(token) if token is not None else None
        total = 0
        for block in await self.recent_blocks(time_frame // FUEL_BLOCK_TIME):
            for tx in block.get("transactions") or []:
                if self._is_withdrawal(tx):
                    total += self._withdrawn_amount(tx, asset)
        return total

    async def recent_blocks(self, count: int) -> list[dict[str, Any]]:
        """The last *count* blocks, paging backwards from the head."""
        blocks: list[dict[str, Any]] = []
        cursor: str | None = None
        while len(blocks) < count:
            page_size = min(_PAGE_SIZE, count - len(blocks))
            data = await self.query(BLOCKS_QUERY, {"last": page_size, "before": cursor})
            connection = data.get("blocks") or {}
            nodes = connection.get("nodes") or []
            blocks.extend(nodes)

            page_info = connection.get("pageInfo") or {}
            if not nodes or not page_info.get("hasPreviousPage"):
                break
            cursor = page_info.get("startCursor")
        return blocks

    def _is_withdrawal(self, tx: dict[str, Any]) -> bool:
        if not tx.get("isScript"):
            return False
        if (tx.get("status") or {}).get("__typename") != "SuccessStatus":
            return False
        script = _normalize_hex(tx.get("script") or "")
        return script.startswith(self._withdrawal_script)

    @staticmethod
    def _withdrawn_amount(tx: dict[str, Any], asset: str | None) -> int:
        total = 0
        for output in tx.get("outputs") or []:
            if output.get("__typename") not in _WITHDRAWAL_OUTPUTS:
                continue
            if asset is not None and _asset_key(output.get("assetId") or "") != asset:
                continue
            try:
                total += int(output.get("amount", 0))
            except (TypeError, ValueError) as exc:
                raise ChainResponseError(f"invalid output amount in tx {tx.get('id')}") from exc
        return total
