"""Domain types for alerts and protective actions."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class AlertLevel(StrEnum):
    """Alert severity as written in the configuration file."""

    NONE = "None"
    INFO = "Info"
    WARN = "Warn"
    ERROR = "Error"


class AlertType(StrEnum):
    """One member per distinct condition the watchtower can detect."""

    # Ethereum (settlement chain)
    ETHEREUM_WATCHING = "ETHEREUM_WATCHING"
    ETHEREUM_CONNECTION_FAILED = "ETHEREUM_CONNECTION_FAILED"
    ETHEREUM_BLOCK_CHECK_FAILED = "ETHEREUM_BLOCK_CHECK_FAILED"
    ETHEREUM_BLOCK_PRODUCTION_STALLED = "ETHEREUM_BLOCK_PRODUCTION_STALLED"
    ETHEREUM_BALANCE_CHECK_FAILED = "ETHEREUM_BALANCE_CHECK_FAILED"
    ETHEREUM_ACCOUNT_LOW_FUNDS = "ETHEREUM_ACCOUNT_LOW_FUNDS"
    ETHEREUM_COMMIT_CHECK_FAILED = "ETHEREUM_COMMIT_CHECK_FAILED"
    ETHEREUM_INVALID_COMMIT = "ETHEREUM_INVALID_COMMIT"
    ETHEREUM_BASE_DEPOSIT_CHECK_FAILED = "ETHEREUM_BASE_DEPOSIT_CHECK_FAILED"
    ETHEREUM_BASE_DEPOSIT_THRESHOLD = "ETHEREUM_BASE_DEPOSIT_THRESHOLD"
    ETHEREUM_BASE_WITHDRAWAL_CHECK_FAILED = "ETHEREUM_BASE_WITHDRAWAL_CHECK_FAILED"
    ETHEREUM_BASE_WITHDRAWAL_THRESHOLD = "ETHEREUM_BASE_WITHDRAWAL_THRESHOLD"
    ETHEREUM_TOKEN_DEPOSIT_CHECK_FAILED = "ETHEREUM_TOKEN_DEPOSIT_CHECK_FAILED"
    ETHEREUM_TOKEN_DEPOSIT_THRESHOLD = "ETHEREUM_TOKEN_DEPOSIT_THRESHOLD"
    ETHEREUM_TOKEN_WITHDRAWAL_CHECK_FAILED = "ETHEREUM_TOKEN_WITHDRAWAL_CHECK_FAILED"
    ETHEREUM_TOKEN_WITHDRAWAL_THRESHOLD = "ETHEREUM_TOKEN_WITHDRAWAL_THRESHOLD"

    # Fuel (rollup chain)
    FUEL_WATCHING = "FUEL_WATCHING"
    FUEL_CONNECTION_FAILED = "FUEL_CONNECTION_FAILED"
    FUEL_BLOCK_CHECK_FAILED = "FUEL_BLOCK_CHECK_FAILED"
    FUEL_BLOCK_PRODUCTION_STALLED = "FUEL_BLOCK_PRODUCTION_STALLED"
    FUEL_BASE_WITHDRAWAL_CHECK_FAILED = "FUEL_BASE_WITHDRAWAL_CHECK_FAILED"
    FUEL_BASE_WITHDRAWAL_THRESHOLD = "FUEL_BASE_WITHDRAWAL_THRESHOLD"
    FUEL_TOKEN_WITHDRAWAL_CHECK_FAILED = "FUEL_TOKEN_WITHDRAWAL_CHECK_FAILED"
    FUEL_TOKEN_WITHDRAWAL_THRESHOLD = "FUEL_TOKEN_WITHDRAWAL_THRESHOLD"

    # Pause actions
    PAUSE_STATE_ATTEMPT = "PAUSE_STATE_ATTEMPT"
    PAUSE_STATE_SUCCEEDED = "PAUSE_STATE_SUCCEEDED"
    PAUSE_STATE_FAILED = "PAUSE_STATE_FAILED"
    PAUSE_STATE_TIMED_OUT = "PAUSE_STATE_TIMED_OUT"
    PAUSE_GATEWAY_ATTEMPT = "PAUSE_GATEWAY_ATTEMPT"
    PAUSE_GATEWAY_SUCCEEDED = "PAUSE_GATEWAY_SUCCEEDED"
    PAUSE_GATEWAY_FAILED = "PAUSE_GATEWAY_FAILED"
    PAUSE_GATEWAY_TIMED_OUT = "PAUSE_GATEWAY_TIMED_OUT"
    PAUSE_PORTAL_ATTEMPT = "PAUSE_PORTAL_ATTEMPT"
    PAUSE_PORTAL_SUCCEEDED = "PAUSE_PORTAL_SUCCEEDED"
    PAUSE_PORTAL_FAILED = "PAUSE_PORTAL_FAILED"
    PAUSE_PORTAL_TIMED_OUT = "PAUSE_PORTAL_TIMED_OUT"

    # Wiring
    ALERT_CHANNEL_CLOSED = "ALERT_CHANNEL_CLOSED"
    ACTION_CHANNEL_CLOSED = "ACTION_CHANNEL_CLOSED"


# Dedup key: the alert type plus an optional config-derived qualifier
# (e.g. a token address). Never built from observed values.
AlertCategory = tuple[AlertType, str]


class AlertEvent(BaseModel):
    """A single alert, immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    text: str
    level: AlertLevel
    category: AlertType
    scope: str = ""

    @property
    def key(self) -> AlertCategory:
        return (self.category, self.scope)


class ActionKind(StrEnum):
    """Protective action requested by an indicator."""

    NONE = "None"
    PAUSE_STATE = "PauseState"  # settlement core (state contract)
    PAUSE_GATEWAY = "PauseGateway"
    PAUSE_PORTAL = "PausePortal"
    PAUSE_ALL = "PauseAll"


class ActionCommand(BaseModel):
    """A protective action plus the level to report if it fails."""

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    escalation_level: AlertLevel = AlertLevel.INFO


class PauseTarget(StrEnum):
    """Bridge contracts exposing a one-directional ``pause()``."""

    STATE = "state"
    GATEWAY = "gateway"
    PORTAL = "portal"

    @property
    def attempt_category(self) -> AlertType:
        return AlertType[f"PAUSE_{self.name}_ATTEMPT"]

    @property
    def succeeded_category(self) -> AlertType:
        return AlertType[f"PAUSE_{self.name}_SUCCEEDED"]

    @property
    def failed_category(self) -> AlertType:
        return AlertType[f"PAUSE_{self.name}_FAILED"]

    @property
    def timed_out_category(self) -> AlertType:
        return AlertType[f"PAUSE_{self.name}_TIMED_OUT"]
