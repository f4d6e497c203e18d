"""Bridge contract bindings: event log scans and the ``pause()`` call."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from eth_account import Account
from eth_utils import (
    encode_hex,
    function_signature_to_4byte_selector,
    keccak,
    to_checksum_address,
)

from watchtower.chains.base import CommitSource, LogWindowSource, PausableContract
from watchtower.chains.ethereum import ETHEREUM_BLOCK_TIME, EthereumRpc, hex_to_int
from watchtower.chains.exceptions import (
    ChainError,
    ChainResponseError,
    ContractNotConfiguredError,
    PauseError,
)

logger = structlog.stdlib.get_logger()


def event_topic(signature: str) -> str:
    return encode_hex(keccak(text=signature))


# CommitSubmitted(uint256 indexed commitHeight, bytes32 blockHash)
COMMIT_SUBMITTED_TOPIC = event_topic("CommitSubmitted(uint256,bytes32)")
# MessageSent(bytes32 indexed sender, bytes32 indexed recipient,
#             uint256 indexed nonce, uint64 amount, bytes data)
MESSAGE_SENT_TOPIC = event_topic("MessageSent(bytes32,bytes32,uint256,uint64,bytes)")
# MessageRelayed(bytes32 indexed messageId, bytes32 indexed sender,
#                bytes32 indexed recipient, uint64 amount)
MESSAGE_RELAYED_TOPIC = event_topic("MessageRelayed(bytes32,bytes32,bytes32,uint64)")
# Deposit(bytes32 indexed sender, address indexed tokenId, bytes32 fuelTokenId, uint256 amount)
DEPOSIT_TOPIC = event_topic("Deposit(bytes32,address,bytes32,uint256)")
# Withdrawal(bytes32 indexed recipient, address indexed tokenId, bytes32 fuelTokenId, uint256 amount)
WITHDRAWAL_TOPIC = event_topic("Withdrawal(bytes32,address,bytes32,uint256)")

PAUSE_SELECTOR = encode_hex(function_signature_to_4byte_selector("pause()"))

READ_ONLY_ERR = "Ethereum account not configured."

# Portal amounts are emitted in Fuel's 9-decimal units.
_FUEL_TO_ETHER_SCALE = 10**9


def get_public_address(private_key: str) -> str:
    return Account.from_key(private_key).address


def address_topic(address: str) -> str:
    """Left-pad an address to a 32-byte indexed topic."""
    raw = address.lower().removeprefix("0x")
    try:
        bytes.fromhex(raw)
    except ValueError as exc:
        raise ChainResponseError(f"invalid token address {address!r}") from exc
    if len(raw) > 64:
        raise ChainResponseError(f"invalid token address {address!r}")
    return "0x" + raw.rjust(64, "0")


def log_data(log: dict[str, Any]) -> bytes:
    data = log.get("data")
    if not isinstance(data, str):
        raise ChainResponseError("log is missing its data field")
    try:
        return bytes.fromhex(data.removeprefix("0x"))
    except ValueError as exc:
        raise ChainResponseError("log data is not valid hex") from exc


def _word(data: bytes, index: int) -> int:
    start = index * 32
    if len(data) < start + 32:
        raise ChainResponseError(f"log data too short ({len(data)} bytes)")
    return int.from_bytes(data[start:start + 32], "big")


class TransactionSigner:
    """Signs and submits transactions from the watchtower's operator account.

    Gas price is bumped by ``gas_price_multiplier`` over the node's quote so
    protective transactions are picked up quickly.
    """

    def __init__(
        self,
        rpc: EthereumRpc,
        private_key: str,
        gas_price_multiplier: float = 1.125,
        receipt_poll_secs: float = 2.0,
        receipt_timeout_secs: float = 600.0,
    ) -> None:
        self._rpc = rpc
        self._account = Account.from_key(private_key)
        self._gas_price_multiplier = gas_price_multiplier
        self._receipt_poll_secs = receipt_poll_secs
        self._receipt_timeout_secs = receipt_timeout_secs

    @property
    def address(self) -> str:
        return self._account.address

    async def send_transaction(self, to: str, data: str) -> str:
        """Sign, submit and wait for a successful receipt.  Returns the tx hash."""
        to = to_checksum_address(to)
        chain_id = hex_to_int(await self._rpc.call("eth_chainId"))
        nonce = hex_to_int(
            await self._rpc.call("eth_getTransactionCount", [self.address, "pending"]),
        )
        gas_price = hex_to_int(await self._rpc.call("eth_gasPrice"))
        gas = hex_to_int(await self._rpc.call(
            "eth_estimateGas", [{"from": self.address, "to": to, "data": data}],
        ))

        signed = self._account.sign_transaction({
            "to": to,
            "data": data,
            "value": 0,
            "nonce": nonce,
            "gas": gas,
            "gasPrice": int(gas_price * self._gas_price_multiplier),
            "chainId": chain_id,
        })
        tx_hash = await self._rpc.call(
            "eth_sendRawTransaction", [encode_hex(signed.raw_transaction)],
        )
        logger.info("transaction_sent", to=to, tx_hash=tx_hash, nonce=nonce)

        receipt = await self._wait_for_receipt(tx_hash)
        if hex_to_int(receipt.get("status")) != 1:
            raise PauseError(f"transaction {tx_hash} reverted")
        return str(tx_hash)

    async def _wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._receipt_timeout_secs
        while loop.time() < deadline:
            receipt = await self._rpc.call("eth_getTransactionReceipt", [tx_hash])
            if isinstance(receipt, dict):
                return receipt
            await asyncio.sleep(self._receipt_poll_secs)
        raise PauseError(f"no receipt for {tx_hash} after {self._receipt_timeout_secs}s")


class BridgeContract(PausableContract):
    """Shared plumbing for the three bridge contracts."""

    name: str = ""

    def __init__(
        self,
        address: str,
        rpc: EthereumRpc,
        signer: TransactionSigner | None = None,
    ) -> None:
        self._address = address
        self._rpc = rpc
        self._signer = signer

    @property
    def address(self) -> str:
        return self._address

    @property
    def read_only(self) -> bool:
        return self._signer is None

    async def initialize(self) -> None:
        """Check that code is deployed at the configured address."""
        code = await self._rpc.call("eth_getCode", [self._address, "latest"])
        if not isinstance(code, str) or code in ("0x", "0x0", ""):
            raise ChainResponseError(f"Invalid {self.name} contract.")

    async def pause(self) -> None:
        if self._signer is None:
            raise ContractNotConfiguredError(READ_ONLY_ERR)
        try:
            await self._signer.send_transaction(self._address, PAUSE_SELECTOR)
        except ChainError as exc:
            raise PauseError(f"Failed to pause {self.name} contract: {exc}") from exc

    async def _get_logs(self, topics: list[str | None], from_block: int) -> list[dict[str, Any]]:
        logs = await self._rpc.call("eth_getLogs", [{
            "address": self._address,
            "topics": topics,
            "fromBlock": hex(from_block),
            "toBlock": "latest",
        }])
        if not isinstance(logs, list):
            raise ChainResponseError("eth_getLogs returned no log list")
        return logs

    async def _window_start(self, time_frame: int, from_block: int | None) -> int:
        if from_block is None:
            from_block = hex_to_int(await self._rpc.call("eth_blockNumber"))
        offset = time_frame // ETHEREUM_BLOCK_TIME
        return max(from_block, offset) - offset


class StateContract(BridgeContract, CommitSource):
    """Fuel chain state contract: source of block commits."""

    name = "state"

    async def commits_since(self, from_block: int) -> list[str]:
        logs = await self._get_logs([COMMIT_SUBMITTED_TOPIC], from_block)
        hashes: list[str] = []
        for log in logs:
            data = log_data(log)
            if len(data) != 32:
                raise ChainResponseError("Length of log data does not match that of 32")
            hashes.append(encode_hex(data))
        return hashes


class PortalContract(BridgeContract, LogWindowSource):
    """Fuel message portal: base asset deposits and withdrawals."""

    name = "portal"

    async def deposits(
        self, time_frame: int, token: str | None = None, from_block: int | None = None,
    ) -> int:
        start = await self._window_start(time_frame, from_block)
        return await self._sum_amounts(MESSAGE_SENT_TOPIC, start)

    async def withdrawals(
        self, time_frame: int, token: str | None = None, from_block: int | None = None,
    ) -> int:
        start = await self._window_start(time_frame, from_block)
        return await self._sum_amounts(MESSAGE_RELAYED_TOPIC, start)

    async def _sum_amounts(self, topic: str, start: int) -> int:
        logs = await self._get_logs([topic], start)
        return sum(_word(log_data(log), 0) * _FUEL_TO_ETHER_SCALE for log in logs)


class GatewayContract(BridgeContract, LogWindowSource):
    """Fuel ERC20 gateway: per-token deposits and withdrawals."""

    name = "gateway"

    async def deposits(
        self, time_frame: int, token: str | None, from_block: int | None = None,
    ) -> int:
        return await self._sum_token_amounts(DEPOSIT_TOPIC, time_frame, token, from_block)

    async def withdrawals(
        self, time_frame: int, token: str | None, from_block: int | None = None,
    ) -> int:
        return await self._sum_token_amounts(WITHDRAWAL_TOPIC, time_frame, token, from_block)

    async def _sum_token_amounts(
        self, topic: str, time_frame: int, token: str | None, from_block: int | None,
    ) -> int:
        if token is None:
            raise ChainResponseError("gateway scans require a token address")
        token_topic = address_topic(token)
        start = await self._window_start(time_frame, from_block)
        logs = await self._get_logs([topic, None, token_topic], start)
        return sum(_word(log_data(log), 1) for log in logs)
