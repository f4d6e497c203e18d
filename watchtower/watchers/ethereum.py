"""Ethereum watcher: settlement-chain indicators and the commit watermark."""

from __future__ import annotations

from functools import partial

import structlog

from watchtower.actions.dispatcher import ActionSender
from watchtower.alerts.router import AlertSender
from watchtower.chains.base import ChainProbe, CommitSource, CommitVerifier, LogWindowSource
from watchtower.chains.ethereum import ETHEREUM_BLOCK_TIME
from watchtower.chains.exceptions import ChainError
from watchtower.core.config import DepositAlert, EthereumClientWatcher, WithdrawAlert
from watchtower.core.types import AlertType
from watchtower.watchers.base import BaseWatcher
from watchtower.watchers.indicators import (
    Indicator,
    amount_reached,
    balance_below,
    block_time_exceeded,
    commit_invalid,
    evaluate,
    no_breach,
    to_base_units,
)

logger = structlog.stdlib.get_logger()

# Startup lookback for log-based indicators: one day of blocks.
COMMIT_CHECK_STARTING_OFFSET = 24 * 60 * 60
ETHER_DECIMALS = 18


def initial_watermark(height: int, window: int) -> int:
    """Watermark that makes the first pass cover the trailing *window* blocks."""
    return max(height, window) - window


def _scope(alert: DepositAlert | WithdrawAlert) -> str:
    return f"{alert.token_address}:{alert.time_frame}"


class EthereumWatcher(BaseWatcher):
    """Runs the settlement-chain indicators in a fixed order.

    The watermark bounds the commit scan and anchors the deposit/withdrawal
    windows.  It is set once in ``initialize()`` and afterwards only moves
    forward, to the chain head observed right after a successful commit
    listing.  The transfer windows are built after that move, so they cover
    the trailing ``time_frame`` from the head.
    """

    chain_name = "Ethereum"
    heartbeat_category = AlertType.ETHEREUM_WATCHING

    def __init__(
        self,
        chain: ChainProbe,
        state: CommitSource,
        portal: LogWindowSource,
        gateway: LogWindowSource,
        verifier: CommitVerifier,
        config: EthereumClientWatcher,
        alerts: AlertSender,
        actions: ActionSender,
        account_address: str | None = None,
    ) -> None:
        super().__init__(alerts, actions, poll_interval_secs=config.poll_interval_secs)
        self._chain = chain
        self._state = state
        self._portal = portal
        self._gateway = gateway
        self._verifier = verifier
        self._config = config
        self._account_address = account_address
        self._watermark: int | None = None

    @property
    def watermark(self) -> int:
        if self._watermark is None:
            raise RuntimeError("watcher not initialized")
        return self._watermark

    async def initialize(self) -> None:
        """Set the watermark one day of blocks behind the head.

        A failure here propagates: the watcher cannot start without it.
        """
        if self._watermark is not None:
            return
        height = await self._chain.latest_block_number()
        window = COMMIT_CHECK_STARTING_OFFSET // ETHEREUM_BLOCK_TIME
        self._watermark = initial_watermark(height, window)
        logger.info("ethereum_watermark_initialized", height=height, watermark=self._watermark)

    async def advance_watermark(self) -> None:
        """Move the watermark forward to the current head, if it can be read."""
        try:
            height = await self._chain.latest_block_number()
        except ChainError as exc:
            logger.warning("ethereum_watermark_not_advanced", error=str(exc))
            return
        self._watermark = max(self.watermark, height)

    async def run_indicators(self) -> None:
        for indicator in self.health_indicators():
            await evaluate(indicator, self._alerts, self._actions)

        if await self.check_invalid_commits():
            await self.advance_watermark()
        else:
            logger.warning("ethereum_watermark_held", watermark=self.watermark)

        for indicator in self.indicators():
            amount = await evaluate(indicator, self._alerts, self._actions)
            if amount is not None:
                logger.info("ethereum_transfer_total", indicator=indicator.name,
                            scope=indicator.scope, amount=amount)

    # ── Indicators ──────────────────────────────────────────────

    def health_indicators(self) -> list[Indicator[object]]:
        """Connection, block production and (when an account exists) balance."""
        cfg = self._config
        indicators: list[Indicator[object]] = [
            Indicator(
                name="ethereum_connection",
                alert_level=cfg.connection_alert.alert_level,
                action=cfg.connection_alert.alert_action,
                probe=self._chain.check_connection,
                compare=no_breach,
                failure_category=AlertType.ETHEREUM_CONNECTION_FAILED,
                breach_category=AlertType.ETHEREUM_CONNECTION_FAILED,
                failure_text="Failed to check ethereum connection",
            ),
            Indicator(
                name="ethereum_block_production",
                alert_level=cfg.block_production_alert.alert_level,
                action=cfg.block_production_alert.alert_action,
                probe=self._chain.seconds_since_last_block,
                compare=block_time_exceeded(
                    "ethereum", cfg.block_production_alert.max_block_time,
                ),
                failure_category=AlertType.ETHEREUM_BLOCK_CHECK_FAILED,
                breach_category=AlertType.ETHEREUM_BLOCK_PRODUCTION_STALLED,
                failure_text="Failed to check ethereum block production",
            ),
        ]

        if self._account_address is not None:
            funds = cfg.account_funds_alert
            indicators.append(Indicator(
                name="ethereum_account_balance",
                alert_level=funds.alert_level,
                action=funds.alert_action,
                probe=partial(self._chain.account_balance, self._account_address),
                compare=balance_below(
                    "Ethereum",
                    self._account_address,
                    to_base_units(funds.min_balance, ETHER_DECIMALS),
                ),
                failure_category=AlertType.ETHEREUM_BALANCE_CHECK_FAILED,
                breach_category=AlertType.ETHEREUM_ACCOUNT_LOW_FUNDS,
                failure_text="Failed to check ethereum account funds",
            ))

        return indicators

    def indicators(self) -> list[Indicator[object]]:
        """Deposit and withdrawal volume indicators, anchored at the watermark."""
        cfg = self._config
        anchor = self.watermark
        indicators: list[Indicator[object]] = []

        for alert in cfg.portal_deposit_alerts:
            indicators.append(Indicator(
                name="ethereum_base_deposits",
                alert_level=alert.alert_level,
                action=alert.alert_action,
                probe=partial(self._portal.deposits, alert.time_frame, None, anchor),
                compare=amount_reached(
                    "Ethereum Chain: Base asset deposit",
                    to_base_units(alert.amount, alert.token_decimals),
                    alert.time_frame,
                ),
                failure_category=AlertType.ETHEREUM_BASE_DEPOSIT_CHECK_FAILED,
                breach_category=AlertType.ETHEREUM_BASE_DEPOSIT_THRESHOLD,
                failure_text="Failed to check base asset deposits",
                scope=_scope(alert),
            ))

        for alert in cfg.portal_withdrawal_alerts:
            indicators.append(Indicator(
                name="ethereum_base_withdrawals",
                alert_level=alert.alert_level,
                action=alert.alert_action,
                probe=partial(self._portal.withdrawals, alert.time_frame, None, anchor),
                compare=amount_reached(
                    "Ethereum Chain: Base asset withdrawal",
                    to_base_units(alert.amount, alert.token_decimals),
                    alert.time_frame,
                ),
                failure_category=AlertType.ETHEREUM_BASE_WITHDRAWAL_CHECK_FAILED,
                breach_category=AlertType.ETHEREUM_BASE_WITHDRAWAL_THRESHOLD,
                failure_text="Failed to check base asset withdrawals",
                scope=_scope(alert),
            ))

        for alert in cfg.gateway_deposit_alerts:
            indicators.append(Indicator(
                name="ethereum_token_deposits",
                alert_level=alert.alert_level,
                action=alert.alert_action,
                probe=partial(
                    self._gateway.deposits, alert.time_frame, alert.token_address, anchor,
                ),
                compare=amount_reached(
                    f"ERC20 {alert.token_name} at address {alert.token_address} deposit",
                    to_base_units(alert.amount, alert.token_decimals),
                    alert.time_frame,
                ),
                failure_category=AlertType.ETHEREUM_TOKEN_DEPOSIT_CHECK_FAILED,
                breach_category=AlertType.ETHEREUM_TOKEN_DEPOSIT_THRESHOLD,
                failure_text=(
                    f"Failed to check ERC20 {alert.token_name} deposits "
                    f"at address {alert.token_address}"
                ),
                scope=_scope(alert),
            ))

        for alert in cfg.gateway_withdrawal_alerts:
            indicators.append(Indicator(
                name="ethereum_token_withdrawals",
                alert_level=alert.alert_level,
                action=alert.alert_action,
                probe=partial(
                    self._gateway.withdrawals, alert.time_frame, alert.token_address, anchor,
                ),
                compare=amount_reached(
                    f"ERC20 {alert.token_name} at address {alert.token_address} withdrawal",
                    to_base_units(alert.amount, alert.token_decimals),
                    alert.time_frame,
                ),
                failure_category=AlertType.ETHEREUM_TOKEN_WITHDRAWAL_CHECK_FAILED,
                breach_category=AlertType.ETHEREUM_TOKEN_WITHDRAWAL_THRESHOLD,
                failure_text=(
                    f"Failed to check ERC20 {alert.token_name} withdrawals "
                    f"at address {alert.token_address}"
                ),
                scope=_scope(alert),
            ))

        return indicators

    async def check_invalid_commits(self) -> bool:
        """Verify every commit posted since the watermark exists on Fuel.

        A failed verification of one hash is reported and the remaining
        hashes are still checked.  Returns False when the commits could not
        be listed, in which case the watermark must stay where it is so the
        skipped range is scanned again.  A disabled check returns True.
        """
        cfg = self._config.invalid_state_commit_alert
        listing: Indicator[list[str]] = Indicator(
            name="ethereum_state_commits",
            alert_level=cfg.alert_level,
            action=cfg.alert_action,
            probe=partial(self._state.commits_since, self.watermark),
            compare=no_breach,
            failure_category=AlertType.ETHEREUM_COMMIT_CHECK_FAILED,
            breach_category=AlertType.ETHEREUM_INVALID_COMMIT,
            failure_text="Failed to check state contract commits",
        )
        if not listing.enabled:
            return True
        hashes = await evaluate(listing, self._alerts, self._actions)
        if hashes is None:
            return False

        for block_hash in hashes:
            await evaluate(
                Indicator(
                    name="ethereum_commit_verification",
                    alert_level=cfg.alert_level,
                    action=cfg.alert_action,
                    probe=partial(self._verifier.verify, block_hash),
                    compare=commit_invalid(block_hash),
                    failure_category=AlertType.ETHEREUM_COMMIT_CHECK_FAILED,
                    breach_category=AlertType.ETHEREUM_INVALID_COMMIT,
                    failure_text="Failed to check fuel chain state commit",
                ),
                self._alerts,
                self._actions,
            )
        return True
