"""Exception hierarchy for chain and contract collaborators."""

from __future__ import annotations


class ChainError(Exception):
    """Base exception for chain probe failures (after retries)."""


class ChainConnectionError(ChainError):
    """Failed to reach the chain's RPC / GraphQL endpoint."""


class ChainResponseError(ChainError):
    """The endpoint answered with an error or an unparseable payload."""


class ContractError(ChainError):
    """Base exception for bridge contract calls."""


class ContractNotConfiguredError(ContractError):
    """The contract was built read-only (no signing key available)."""


class PauseError(ContractError):
    """A pause transaction could not be sent or was reverted."""
