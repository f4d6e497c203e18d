"""Fuel watcher: rollup-chain health and withdrawal volume."""

from __future__ import annotations

from functools import partial

import structlog

from watchtower.actions.dispatcher import ActionSender
from watchtower.alerts.router import AlertSender
from watchtower.chains.base import ChainProbe, LogWindowSource
from watchtower.core.config import FuelClientWatcher
from watchtower.core.types import AlertType
from watchtower.watchers.base import BaseWatcher
from watchtower.watchers.indicators import (
    Indicator,
    amount_reached,
    block_time_exceeded,
    evaluate,
    no_breach,
    to_base_units,
)

logger = structlog.stdlib.get_logger()


class FuelWatcher(BaseWatcher):
    """Runs the rollup-chain indicators in a fixed order.  Keeps no watermark."""

    chain_name = "Fuel"
    heartbeat_category = AlertType.FUEL_WATCHING

    def __init__(
        self,
        chain: ChainProbe,
        withdrawals: LogWindowSource,
        config: FuelClientWatcher,
        alerts: AlertSender,
        actions: ActionSender,
    ) -> None:
        super().__init__(alerts, actions, poll_interval_secs=config.poll_interval_secs)
        self._chain = chain
        self._withdrawals = withdrawals
        self._config = config

    async def run_indicators(self) -> None:
        for indicator in self.indicators():
            metric = await evaluate(indicator, self._alerts, self._actions)
            if metric is not None and indicator.name.endswith("_withdrawals"):
                logger.info("fuel_transfer_total", indicator=indicator.name,
                            scope=indicator.scope, amount=metric)

    def indicators(self) -> list[Indicator[object]]:
        cfg = self._config
        indicators: list[Indicator[object]] = [
            Indicator(
                name="fuel_connection",
                alert_level=cfg.connection_alert.alert_level,
                action=cfg.connection_alert.alert_action,
                probe=self._chain.check_connection,
                compare=no_breach,
                failure_category=AlertType.FUEL_CONNECTION_FAILED,
                breach_category=AlertType.FUEL_CONNECTION_FAILED,
                failure_text="Failed to check fuel connection",
            ),
            Indicator(
                name="fuel_block_production",
                alert_level=cfg.block_production_alert.alert_level,
                action=cfg.block_production_alert.alert_action,
                probe=self._chain.seconds_since_last_block,
                compare=block_time_exceeded(
                    "fuel", cfg.block_production_alert.max_block_time,
                ),
                failure_category=AlertType.FUEL_BLOCK_CHECK_FAILED,
                breach_category=AlertType.FUEL_BLOCK_PRODUCTION_STALLED,
                failure_text="Failed to check fuel block production",
            ),
        ]

        for alert in cfg.portal_withdraw_alerts:
            indicators.append(Indicator(
                name="fuel_base_withdrawals",
                alert_level=alert.alert_level,
                action=alert.alert_action,
                probe=partial(self._withdrawals.withdrawals, alert.time_frame, None),
                compare=amount_reached(
                    "Fuel Chain: Base asset withdrawal",
                    to_base_units(alert.amount, alert.token_decimals),
                    alert.time_frame,
                ),
                failure_category=AlertType.FUEL_BASE_WITHDRAWAL_CHECK_FAILED,
                breach_category=AlertType.FUEL_BASE_WITHDRAWAL_THRESHOLD,
                failure_text="Failed to check fuel chain for base asset withdrawals",
                scope=f"{alert.token_address}:{alert.time_frame}",
            ))

        for alert in cfg.gateway_withdraw_alerts:
            indicators.append(Indicator(
                name="fuel_token_withdrawals",
                alert_level=alert.alert_level,
                action=alert.alert_action,
                probe=partial(
                    self._withdrawals.withdrawals, alert.time_frame, alert.token_address,
                ),
                compare=amount_reached(
                    f"Fuel Chain: ERC20 {alert.token_name} at address "
                    f"{alert.token_address} withdrawal",
                    to_base_units(alert.amount, alert.token_decimals),
                    alert.time_frame,
                ),
                failure_category=AlertType.FUEL_TOKEN_WITHDRAWAL_CHECK_FAILED,
                breach_category=AlertType.FUEL_TOKEN_WITHDRAWAL_THRESHOLD,
                failure_text=(
                    f"Failed to check fuel chain for ERC20 {alert.token_name} "
                    f"withdrawals at address {alert.token_address}"
                ),
                scope=f"{alert.token_address}:{alert.time_frame}",
            ))

        return indicators
