"""Tests for the watchtower factory: wiring logic with various config combinations."""

from __future__ import annotations

from unittest.mock import MagicMock

from pydantic import SecretStr

from watchtower.alerts.channels import NullTransport, PagerDutyTransport
from watchtower.chains.contracts import GatewayContract, PortalContract, StateContract
from watchtower.core.config import AlertsConfig, EthereumConfig, PagerDutyConfig, Settings
from watchtower.factory import create_watchtower
from watchtower.watchers.ethereum import EthereumWatcher
from watchtower.watchers.fuel import FuelWatcher

PRIVATE_KEY = "0x" + "11" * 32


# ── Helpers ─────────────────────────────────────────────────────


def _settings(**kw: object) -> Settings:
    defaults: dict[str, object] = {
        "ethereum": EthereumConfig(
            state_contract_address="0x" + "01" * 20,
            portal_contract_address="0x" + "02" * 20,
            gateway_contract_address="0x" + "03" * 20,
        ),
    }
    defaults.update(kw)
    return Settings(**defaults)  # type: ignore[arg-type]


# ── Wiring ──────────────────────────────────────────────────────


class TestFactoryWiring:
    def test_read_only_wiring(self) -> None:
        tower = create_watchtower(_settings(), on_fatal=MagicMock())

        assert [type(w) for w in tower.watchers] == [EthereumWatcher, FuelWatcher]
        assert [type(c) for c in tower.contracts] == [StateContract, PortalContract,
                                                      GatewayContract]
        assert all(c.read_only for c in tower.contracts)
        assert isinstance(tower.router._transport, NullTransport)
        assert tower.watchers[0]._account_address is None

    def test_signing_key_enables_pause(self) -> None:
        settings = _settings(ethereum=EthereumConfig(
            state_contract_address="0x" + "01" * 20,
            wallet_key=SecretStr(PRIVATE_KEY),
        ))
        tower = create_watchtower(settings, on_fatal=MagicMock())

        assert not any(c.read_only for c in tower.contracts)
        assert tower.watchers[0]._account_address is not None

    def test_empty_signing_key_is_read_only(self) -> None:
        settings = _settings(ethereum=EthereumConfig(wallet_key=SecretStr("")))
        tower = create_watchtower(settings, on_fatal=MagicMock())
        assert all(c.read_only for c in tower.contracts)

    def test_pagerduty_enabled(self) -> None:
        settings = _settings(alerts=AlertsConfig(
            pagerduty=PagerDutyConfig(enabled=True, api_key=SecretStr("key")),
        ))
        tower = create_watchtower(settings, on_fatal=MagicMock())
        assert isinstance(tower.router._transport, PagerDutyTransport)

    def test_every_producer_holds_a_handle(self) -> None:
        tower = create_watchtower(_settings(), on_fatal=MagicMock())
        # dispatcher + two watchers on the alert channel, two watchers on actions
        assert tower.router._receiver.sender_count == 3
        assert tower.dispatcher._receiver.sender_count == 2
