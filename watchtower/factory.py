"""Wires the alert router, action dispatcher and both watchers from settings."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx
import structlog

from watchtower.actions.dispatcher import ActionDispatcher
from watchtower.alerts.channels import PagingTransport, create_transport
from watchtower.alerts.router import AlertRouter, FatalHandler, terminate_process
from watchtower.chains.contracts import (
    BridgeContract,
    GatewayContract,
    PortalContract,
    StateContract,
    TransactionSigner,
)
from watchtower.chains.ethereum import EthereumChain, EthereumRpc
from watchtower.chains.fuel import FuelChain
from watchtower.core.config import Settings
from watchtower.watchers.base import BaseWatcher
from watchtower.watchers.ethereum import EthereumWatcher
from watchtower.watchers.fuel import FuelWatcher

logger = structlog.stdlib.get_logger()


@dataclass
class Watchtower:
    """Every long-running component, in start order."""

    rpc: EthereumRpc
    fuel: FuelChain
    contracts: list[BridgeContract]
    router: AlertRouter
    dispatcher: ActionDispatcher
    watchers: list[BaseWatcher]
    tasks: list[asyncio.Task[None]] = field(default_factory=list)

    async def start(self) -> list[asyncio.Task[None]]:
        """Start everything.  Returns the watcher tasks.

        Any startup failure (unreachable node, bad contract address, watermark
        initialisation) propagates to the caller.
        """
        await self.rpc.connect()
        await self.fuel.connect()
        for contract in self.contracts:
            await contract.initialize()

        await self.router.start()
        await self.dispatcher.start()
        self.tasks = [await watcher.start() for watcher in self.watchers]
        logger.info("watchtower_started", watchers=[w.chain_name for w in self.watchers])
        return self.tasks

    async def wait(self) -> None:
        """Block until a watcher task ends, re-raising its exception."""
        done, _ = await asyncio.wait(self.tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()

    async def stop(self) -> None:
        for watcher in self.watchers:
            await watcher.stop()
        await self.dispatcher.stop()
        await self.router.stop()
        await self.fuel.close()
        await self.rpc.close()
        logger.info("watchtower_stopped")


def create_watchtower(
    settings: Settings,
    transport: PagingTransport | None = None,
    on_fatal: FatalHandler = terminate_process,
    ethereum_http: httpx.AsyncClient | None = None,
    fuel_http: httpx.AsyncClient | None = None,
) -> Watchtower:
    """Build the full component graph from settings.

    Without a wallet key the contracts are read-only: pause actions fail
    with an alert, everything else runs.
    """
    eth = settings.ethereum
    rpc = EthereumRpc(eth.rpc_url, timeout=eth.request_timeout_secs, http=ethereum_http)
    fuel = FuelChain(
        settings.fuel.graphql_url,
        withdrawal_script=settings.fuel.withdrawal_script,
        timeout=settings.fuel.request_timeout_secs,
        http=fuel_http,
    )

    signer: TransactionSigner | None = None
    if eth.wallet_key is not None and not settings.read_only:
        signer = TransactionSigner(rpc, eth.wallet_key.get_secret_value())

    state = StateContract(eth.state_contract_address, rpc, signer)
    portal = PortalContract(eth.portal_contract_address, rpc, signer)
    gateway = GatewayContract(eth.gateway_contract_address, rpc, signer)

    if transport is None:
        transport = create_transport(settings.alerts.pagerduty)
    router = AlertRouter.from_config(settings.alerts, transport, on_fatal=on_fatal)

    dispatcher = ActionDispatcher(
        router.sender(),
        state=state,
        gateway=gateway,
        portal=portal,
        pause_timeout=settings.actions.pause_timeout_secs,
        on_fatal=on_fatal,
    )

    watchers: list[BaseWatcher] = [
        EthereumWatcher(
            chain=EthereumChain(rpc),
            state=state,
            portal=portal,
            gateway=gateway,
            verifier=fuel,
            config=settings.ethereum_client_watcher,
            alerts=router.sender(),
            actions=dispatcher.sender(),
            account_address=signer.address if signer is not None else None,
        ),
        FuelWatcher(
            chain=fuel,
            withdrawals=fuel,
            config=settings.fuel_client_watcher,
            alerts=router.sender(),
            actions=dispatcher.sender(),
        ),
    ]

    logger.info(
        "watchtower_configured",
        read_only=settings.read_only,
        pagerduty=settings.alerts.pagerduty.enabled,
    )
    return Watchtower(
        rpc=rpc,
        fuel=fuel,
        contracts=[state, portal, gateway],
        router=router,
        dispatcher=dispatcher,
        watchers=watchers,
    )
