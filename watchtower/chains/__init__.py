"""Chain collaborators: Ethereum JSON-RPC, bridge contracts, Fuel GraphQL."""

from watchtower.chains.base import (
    ChainProbe,
    CommitSource,
    CommitVerifier,
    LogWindowSource,
    PausableContract,
)
from watchtower.chains.contracts import (
    GatewayContract,
    PortalContract,
    StateContract,
    TransactionSigner,
    get_public_address,
)
from watchtower.chains.ethereum import EthereumChain, EthereumRpc
from watchtower.chains.exceptions import (
    ChainConnectionError,
    ChainError,
    ChainResponseError,
    ContractError,
    ContractNotConfiguredError,
    PauseError,
)
from watchtower.chains.fuel import FuelChain

__all__ = [
    "ChainConnectionError",
    "ChainError",
    "ChainProbe",
    "ChainResponseError",
    "CommitSource",
    "CommitVerifier",
    "ContractError",
    "ContractNotConfiguredError",
    "EthereumChain",
    "EthereumRpc",
    "FuelChain",
    "GatewayContract",
    "LogWindowSource",
    "PausableContract",
    "PauseError",
    "PortalContract",
    "StateContract",
    "TransactionSigner",
    "get_public_address",
]
