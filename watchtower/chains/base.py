"""Capability interfaces the watchers and dispatcher are written against.

Concrete implementations live in ``chains.ethereum``, ``chains.contracts``
and ``chains.fuel``; tests provide in-memory fakes.  Every method raises a
``ChainError`` subclass once the implementation's own retries are spent.
"""

from __future__ import annotations

import abc


class ChainProbe(abc.ABC):
    """Health probes against one chain."""

    @abc.abstractmethod
    async def check_connection(self) -> None:
        """Raise if the chain endpoint is unreachable."""

    @abc.abstractmethod
    async def latest_block_number(self) -> int:
        """Height of the chain head."""

    @abc.abstractmethod
    async def seconds_since_last_block(self) -> int:
        """Age of the chain head in whole seconds."""

    async def account_balance(self, address: str) -> int:
        """Balance of *address* in base units."""
        raise NotImplementedError(f"{type(self).__name__} has no account balances")


class PausableContract(abc.ABC):
    """A bridge contract exposing a one-directional, idempotent ``pause()``."""

    @property
    @abc.abstractmethod
    def read_only(self) -> bool:
        """True when no signing key is available."""

    @abc.abstractmethod
    async def pause(self) -> None:
        """Pause the contract.

        Raises ContractNotConfiguredError immediately when read-only.
        """


class LogWindowSource(abc.ABC):
    """Sums bridge transfer amounts over a trailing time window.

    The scan starts ``time_frame`` seconds' worth of blocks before
    ``from_block`` (the chain head when None) and runs to the chain head.
    ``token`` is None for the base asset.
    """

    async def deposits(
        self, time_frame: int, token: str | None, from_block: int | None = None,
    ) -> int:
        """Total deposited amount in base units."""
        raise NotImplementedError(f"{type(self).__name__} does not track deposits")

    @abc.abstractmethod
    async def withdrawals(
        self, time_frame: int, token: str | None, from_block: int | None = None,
    ) -> int:
        """Total withdrawn amount in base units."""


class CommitSource(abc.ABC):
    """Block commits posted to the settlement chain's state contract."""

    @abc.abstractmethod
    async def commits_since(self, from_block: int) -> list[str]:
        """Committed rollup block hashes (0x-prefixed hex) since *from_block*."""


class CommitVerifier(abc.ABC):
    """Checks committed hashes against the rollup chain."""

    @abc.abstractmethod
    async def verify(self, block_hash: str) -> bool:
        """True if *block_hash* is a real rollup block."""
