"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, SecretStr, model_validator

from watchtower.core.types import ActionKind, AlertLevel

logger = structlog.stdlib.get_logger()

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

PRIVATE_KEY_ENV_VAR = "WATCHTOWER_ETH_PRIVATE_KEY"

_ZERO_TOKEN_ADDRESS = "0x" + "0" * 64


# ── Indicator configs ───────────────────────────────────────────


class GenericAlert(BaseModel):
    """Alert level + action pair for threshold-free indicators."""

    alert_level: AlertLevel = AlertLevel.NONE
    alert_action: ActionKind = ActionKind.NONE


class BlockProductionAlert(GenericAlert):
    """Fires when the latest block is older than ``max_block_time`` seconds."""

    max_block_time: int = 60


class AccountFundsAlert(GenericAlert):
    """Fires when the operator account balance (in ether) drops below ``min_balance``."""

    min_balance: float = 0.1


class DepositAlert(GenericAlert):
    """Fires when deposits of a token over ``time_frame`` seconds reach ``amount``."""

    token_name: str = "ETH"
    token_decimals: int = 18
    token_address: str = _ZERO_TOKEN_ADDRESS
    time_frame: int = 300
    amount: float = 1000.0


class WithdrawAlert(GenericAlert):
    """Fires when withdrawals of a token over ``time_frame`` seconds reach ``amount``."""

    token_name: str = "ETH"
    token_decimals: int = 9
    token_address: str = _ZERO_TOKEN_ADDRESS
    time_frame: int = 300
    amount: float = 1000.0


class EthereumWithdrawAlert(WithdrawAlert):
    """Withdrawal alert measured on Ethereum (18-decimal base units)."""

    token_decimals: int = 18


class FuelClientWatcher(BaseModel):
    """Indicators evaluated against the Fuel chain."""

    poll_interval_secs: float = 6.0
    connection_alert: GenericAlert = GenericAlert()
    block_production_alert: BlockProductionAlert = BlockProductionAlert()
    portal_withdraw_alerts: list[WithdrawAlert] = []
    gateway_withdraw_alerts: list[WithdrawAlert] = []


class EthereumClientWatcher(BaseModel):
    """Indicators evaluated against the Ethereum chain."""

    poll_interval_secs: float = 6.0
    connection_alert: GenericAlert = GenericAlert()
    block_production_alert: BlockProductionAlert = BlockProductionAlert()
    account_funds_alert: AccountFundsAlert = AccountFundsAlert()
    invalid_state_commit_alert: GenericAlert = GenericAlert()
    portal_deposit_alerts: list[DepositAlert] = []
    portal_withdrawal_alerts: list[EthereumWithdrawAlert] = []
    gateway_deposit_alerts: list[DepositAlert] = []
    gateway_withdrawal_alerts: list[EthereumWithdrawAlert] = []


# ── Connection configs ──────────────────────────────────────────


class EthereumConfig(BaseModel):
    """Ethereum RPC endpoint and bridge contract addresses."""

    rpc_url: str = "http://localhost:8545"
    state_contract_address: str = ""
    portal_contract_address: str = ""
    gateway_contract_address: str = ""
    wallet_key: SecretStr | None = None
    request_timeout_secs: float = 10.0


class FuelConfig(BaseModel):
    """Fuel GraphQL endpoint."""

    graphql_url: str = "http://localhost:4000/v1/graphql"
    # Hex bytecode prefix identifying the base-layer withdrawal script.
    withdrawal_script: str = ""
    request_timeout_secs: float = 10.0


class PagerDutyConfig(BaseModel):
    """PagerDuty Events API v2 transport."""

    enabled: bool = False
    api_key: SecretStr = SecretStr("")
    url: str = "https://events.eu.pagerduty.com/v2/enqueue"
    source: str = "Watchtower System"


class AlertsConfig(BaseModel):
    """Alert dedup and external paging configuration."""

    alert_cache_expiry_secs: float = 600.0
    min_duration_from_start_to_err_secs: float = 3600.0
    pagerduty: PagerDutyConfig = PagerDutyConfig()


class ActionsConfig(BaseModel):
    """Protective action configuration."""

    pause_timeout_secs: float = 30.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    # JSON-lines audit file receiving every routed alert, Info included.
    alerts_file: str | None = None


class Settings(BaseModel):
    """Root settings container."""

    ethereum: EthereumConfig = EthereumConfig()
    fuel: FuelConfig = FuelConfig()
    alerts: AlertsConfig = AlertsConfig()
    actions: ActionsConfig = ActionsConfig()
    ethereum_client_watcher: EthereumClientWatcher = EthereumClientWatcher()
    fuel_client_watcher: FuelClientWatcher = FuelClientWatcher()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _withdrawal_script_required(self) -> Settings:
        watcher = self.fuel_client_watcher
        alerts = [*watcher.portal_withdraw_alerts, *watcher.gateway_withdraw_alerts]
        script = self.fuel.withdrawal_script.strip().lower().removeprefix("0x")
        if not script and any(a.alert_level != AlertLevel.NONE for a in alerts):
            raise ValueError(
                "fuel.withdrawal_script must be set when Fuel withdrawal alerts are enabled"
            )
        return self

    @property
    def read_only(self) -> bool:
        """True when no signing key is available (pausing disabled)."""
        key = self.ethereum.wallet_key
        return key is None or not key.get_secret_value()


def _resolve_wallet_key(settings: Settings) -> None:
    """Fill the wallet key from the environment if the file does not set it."""
    if not settings.read_only:
        logger.warning(
            "wallet_key_in_config_file",
            hint=f"use the {PRIVATE_KEY_ENV_VAR} environment variable instead",
        )
        return

    env_key = os.environ.get(PRIVATE_KEY_ENV_VAR)
    if env_key:
        settings.ethereum.wallet_key = SecretStr(env_key)
        return

    logger.warning(
        "wallet_key_not_configured",
        env_var=PRIVATE_KEY_ENV_VAR,
        detail="some alerts and actions have been disabled",
    )


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML (or JSON) file and cache globally.

    Args:
        path: Path to the config file. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    _resolve_wallet_key(_settings)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
