"""Indicator evaluation: probe, compare against a threshold, alert and act.

Every check the watchers run is an ``Indicator``: an async ``probe`` that
reads one metric from a collaborator plus a pure ``compare`` that turns the
metric into a ``Breach`` (or None).  ``evaluate`` is the single protocol
shared by all of them.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, TypeVar

import structlog

from watchtower.actions.dispatcher import ActionSender
from watchtower.alerts.router import AlertSender
from watchtower.chains.exceptions import ChainError
from watchtower.core.types import ActionKind, AlertLevel, AlertType

logger = structlog.stdlib.get_logger()

M = TypeVar("M")


@dataclass(frozen=True)
class Breach:
    """An indicator crossed its threshold."""

    text: str


@dataclass
class Indicator(Generic[M]):
    """A probe + threshold-comparison pair, evaluated once per loop iteration."""

    name: str
    alert_level: AlertLevel
    action: ActionKind
    probe: Callable[[], Awaitable[M]]
    compare: Callable[[M], Breach | None]
    failure_category: AlertType
    breach_category: AlertType
    failure_text: str
    scope: str = ""

    @property
    def enabled(self) -> bool:
        return self.alert_level != AlertLevel.NONE


async def evaluate(
    indicator: Indicator[M],
    alerts: AlertSender,
    actions: ActionSender,
) -> M | None:
    """Run one indicator.

    Returns the observed metric, or None when the indicator is disabled or
    its probe failed.  Probe failures and breaches both submit an alert at
    the indicator's level together with its configured action.
    """
    if not indicator.enabled:
        return None

    try:
        metric = await indicator.probe()
    except ChainError as exc:
        logger.debug("indicator_probe_failed", indicator=indicator.name, error=str(exc))
        _report(
            indicator,
            f"{indicator.failure_text}: {exc}",
            indicator.failure_category,
            alerts,
            actions,
        )
        return None

    breach = indicator.compare(metric)
    if breach is not None:
        _report(indicator, breach.text, indicator.breach_category, alerts, actions)

    return metric


def _report(
    indicator: Indicator[M],
    text: str,
    category: AlertType,
    alerts: AlertSender,
    actions: ActionSender,
) -> None:
    alerts.submit_alert(text, indicator.alert_level, category, indicator.scope)
    actions.submit_action(indicator.action, indicator.alert_level)


# ── Threshold comparisons (pure) ────────────────────────────────


def to_base_units(amount: float, decimals: int) -> int:
    """Scale a human-readable amount to integer base units."""
    return int(Decimal(str(amount)).scaleb(decimals))


def block_time_exceeded(
    chain_name: str, max_block_time: int,
) -> Callable[[int], Breach | None]:
    def compare(seconds: int) -> Breach | None:
        if seconds > max_block_time:
            return Breach(
                f"Next {chain_name} block is taking longer than {max_block_time} seconds. "
                f"Last block was {seconds} seconds ago.",
            )
        return None

    return compare


def balance_below(
    chain_name: str, address: str, min_balance: int,
) -> Callable[[int], Breach | None]:
    def compare(balance: int) -> Breach | None:
        if balance < min_balance:
            return Breach(
                f"{chain_name} account ({address}) is low on funds. "
                f"Current balance: {balance}. Minimum: {min_balance}.",
            )
        return None

    return compare


def amount_reached(
    description: str, threshold: int, time_frame: int,
) -> Callable[[int], Breach | None]:
    """Breach once *threshold* is reached (inclusive)."""

    def compare(amount: int) -> Breach | None:
        if amount >= threshold:
            return Breach(
                f"{description} threshold of {threshold} over {time_frame} seconds "
                f"has been reached. Amount: {amount}.",
            )
        return None

    return compare


def commit_invalid(block_hash: str) -> Callable[[bool], Breach | None]:
    def compare(valid: bool) -> Breach | None:
        if not valid:
            return Breach(
                f"An invalid commit was made on the state contract. Hash: {block_hash}",
            )
        return None

    return compare


def no_breach(_: object) -> Breach | None:
    """Comparison for probes whose only failure mode is the probe itself."""
    return None
