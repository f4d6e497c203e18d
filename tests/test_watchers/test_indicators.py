"""Tests for indicator evaluation and the threshold comparisons."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from watchtower.actions.dispatcher import ActionSender
from watchtower.alerts.router import AlertSender
from watchtower.chains.exceptions import ChainConnectionError
from watchtower.core.types import ActionKind, AlertLevel, AlertType
from watchtower.watchers.indicators import (
    Breach,
    Indicator,
    amount_reached,
    balance_below,
    block_time_exceeded,
    commit_invalid,
    evaluate,
    no_breach,
    to_base_units,
)


# ── Helpers ─────────────────────────────────────────────────────


def _indicator(
    probe: AsyncMock,
    level: AlertLevel = AlertLevel.WARN,
    action: ActionKind = ActionKind.NONE,
    compare=no_breach,
    scope: str = "",
) -> Indicator[object]:
    return Indicator(
        name="test",
        alert_level=level,
        action=action,
        probe=probe,
        compare=compare,
        failure_category=AlertType.FUEL_BLOCK_CHECK_FAILED,
        breach_category=AlertType.FUEL_BLOCK_PRODUCTION_STALLED,
        failure_text="Failed to check fuel block production",
        scope=scope,
    )


def _senders() -> tuple[MagicMock, MagicMock]:
    return MagicMock(spec=AlertSender), MagicMock(spec=ActionSender)


# ── evaluate ────────────────────────────────────────────────────


class TestEvaluate:
    async def test_disabled_never_probes(self) -> None:
        probe = AsyncMock(return_value=1)
        alerts, actions = _senders()

        result = await evaluate(_indicator(probe, level=AlertLevel.NONE), alerts, actions)

        assert result is None
        probe.assert_not_awaited()
        alerts.submit_alert.assert_not_called()
        actions.submit_action.assert_not_called()

    async def test_ok_returns_metric_without_alert(self) -> None:
        probe = AsyncMock(return_value=5)
        alerts, actions = _senders()

        result = await evaluate(
            _indicator(probe, compare=block_time_exceeded("fuel", 60)), alerts, actions,
        )

        assert result == 5
        alerts.submit_alert.assert_not_called()
        actions.submit_action.assert_not_called()

    async def test_breach_alerts_and_acts(self) -> None:
        probe = AsyncMock(return_value=61)
        alerts, actions = _senders()
        indicator = _indicator(
            probe,
            level=AlertLevel.ERROR,
            action=ActionKind.PAUSE_ALL,
            compare=block_time_exceeded("fuel", 60),
            scope="s",
        )

        await evaluate(indicator, alerts, actions)

        alerts.submit_alert.assert_called_once_with(
            "Next fuel block is taking longer than 60 seconds. Last block was 61 seconds ago.",
            AlertLevel.ERROR,
            AlertType.FUEL_BLOCK_PRODUCTION_STALLED,
            "s",
        )
        actions.submit_action.assert_called_once_with(ActionKind.PAUSE_ALL, AlertLevel.ERROR)

    async def test_probe_failure_alerts_and_acts(self) -> None:
        probe = AsyncMock(side_effect=ChainConnectionError("connection refused"))
        alerts, actions = _senders()
        indicator = _indicator(probe, level=AlertLevel.WARN, action=ActionKind.PAUSE_PORTAL)

        result = await evaluate(indicator, alerts, actions)

        assert result is None
        text, level, category, _ = alerts.submit_alert.call_args[0]
        assert text == "Failed to check fuel block production: connection refused"
        assert level == AlertLevel.WARN
        assert category == AlertType.FUEL_BLOCK_CHECK_FAILED
        actions.submit_action.assert_called_once_with(ActionKind.PAUSE_PORTAL, AlertLevel.WARN)

    async def test_unexpected_exception_propagates(self) -> None:
        probe = AsyncMock(side_effect=KeyError("bug"))
        alerts, actions = _senders()
        with pytest.raises(KeyError):
            await evaluate(_indicator(probe), alerts, actions)


# ── Comparisons ─────────────────────────────────────────────────


class TestComparisons:
    def test_block_time_boundary(self) -> None:
        compare = block_time_exceeded("ethereum", 20)
        assert compare(20) is None
        assert isinstance(compare(21), Breach)

    def test_amount_reached_is_inclusive(self) -> None:
        compare = amount_reached("Base asset deposit", 100, 300)
        assert compare(99) is None
        breach = compare(100)
        assert breach is not None
        assert "threshold of 100 over 300 seconds" in breach.text
        assert "Amount: 100." in breach.text

    def test_balance_below_is_strict(self) -> None:
        compare = balance_below("Ethereum", "0xabc", 10)
        assert compare(10) is None
        breach = compare(9)
        assert breach is not None
        assert "0xabc" in breach.text

    def test_commit_invalid(self) -> None:
        compare = commit_invalid("0xfeed")
        assert compare(True) is None
        breach = compare(False)
        assert breach is not None
        assert breach.text == "An invalid commit was made on the state contract. Hash: 0xfeed"

    def test_no_breach(self) -> None:
        assert no_breach(object()) is None


class TestToBaseUnits:
    @pytest.mark.parametrize(
        ("amount", "decimals", "expected"),
        [
            (1000.0, 18, 1000 * 10**18),
            (0.1, 18, 10**17),
            (1.5, 9, 1_500_000_000),
            (0.0, 6, 0),
        ],
    )
    def test_scaling(self, amount: float, decimals: int, expected: int) -> None:
        assert to_base_units(amount, decimals) == expected
