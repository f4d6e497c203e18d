"""Tests for the Ethereum watcher: indicator order, watermark, commit checks."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from watchtower.actions.dispatcher import ActionSender
from watchtower.alerts.channels import PagingTransport
from watchtower.alerts.router import AlertRouter, AlertSender
from watchtower.chains.base import ChainProbe, CommitSource, CommitVerifier, LogWindowSource
from watchtower.chains.exceptions import ChainConnectionError, ChainResponseError
from watchtower.core.config import (
    AccountFundsAlert,
    BlockProductionAlert,
    DepositAlert,
    EthereumClientWatcher,
    EthereumWithdrawAlert,
    GenericAlert,
)
from watchtower.core.types import ActionKind, AlertLevel, AlertType
from watchtower.watchers.ethereum import EthereumWatcher, initial_watermark


# ── Fakes ───────────────────────────────────────────────────────


class FakeChain(ChainProbe):
    def __init__(self, height: int = 100_000, seconds: int = 5, balance: int = 10**18) -> None:
        self.height = height
        self.seconds = seconds
        self.balance = balance
        self.fail_height = False
        self.calls: dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    async def check_connection(self) -> None:
        self._count("check_connection")

    async def latest_block_number(self) -> int:
        self._count("latest_block_number")
        if self.fail_height:
            raise ChainConnectionError("down")
        return self.height

    async def seconds_since_last_block(self) -> int:
        self._count("seconds_since_last_block")
        return self.seconds

    async def account_balance(self, address: str) -> int:
        self._count("account_balance")
        return self.balance


class FakeLogs(LogWindowSource):
    def __init__(self, deposit: int = 0, withdrawal: int = 0) -> None:
        self.deposit = deposit
        self.withdrawal = withdrawal
        self.calls: list[tuple[str, int, str | None, int | None]] = []

    async def deposits(self, time_frame: int, token: str | None, from_block: int | None = None) -> int:
        self.calls.append(("deposits", time_frame, token, from_block))
        return self.deposit

    async def withdrawals(self, time_frame: int, token: str | None, from_block: int | None = None) -> int:
        self.calls.append(("withdrawals", time_frame, token, from_block))
        return self.withdrawal


class FakeCommits(CommitSource):
    def __init__(self, hashes: list[str] | None = None) -> None:
        self.hashes = hashes or []
        self.fail = False
        self.from_blocks: list[int] = []

    async def commits_since(self, from_block: int) -> list[str]:
        self.from_blocks.append(from_block)
        if self.fail:
            raise ChainConnectionError("state contract unreachable")
        return self.hashes


class FakeVerifier(CommitVerifier):
    def __init__(self, invalid: set[str] | None = None, broken: set[str] | None = None) -> None:
        self.invalid = invalid or set()
        self.broken = broken or set()
        self.checked: list[str] = []

    async def verify(self, block_hash: str) -> bool:
        self.checked.append(block_hash)
        if block_hash in self.broken:
            raise ChainResponseError("bad response")
        return block_hash not in self.invalid


class RecordingTransport(PagingTransport):
    def __init__(self) -> None:
        self.pages: list[tuple[str, str, str]] = []

    async def send(self, severity: str, summary: str, source: str) -> None:
        self.pages.append((severity, summary, source))

    async def close(self) -> None:
        return None


def _watcher(
    config: EthereumClientWatcher | None = None,
    chain: FakeChain | None = None,
    state: FakeCommits | None = None,
    portal: FakeLogs | None = None,
    gateway: FakeLogs | None = None,
    verifier: FakeVerifier | None = None,
    alerts: MagicMock | AlertSender | None = None,
    actions: MagicMock | None = None,
    account_address: str | None = None,
) -> EthereumWatcher:
    return EthereumWatcher(
        chain=chain or FakeChain(),
        state=state or FakeCommits(),
        portal=portal or FakeLogs(),
        gateway=gateway or FakeLogs(),
        verifier=verifier or FakeVerifier(),
        config=config or EthereumClientWatcher(),
        alerts=alerts or MagicMock(spec=AlertSender),
        actions=actions or MagicMock(spec=ActionSender),
        account_address=account_address,
    )


def _categories(alerts: MagicMock) -> list[AlertType]:
    return [c.args[2] for c in alerts.submit_alert.call_args_list]


# ── Watermark ───────────────────────────────────────────────────


class TestWatermark:
    def test_initial_watermark(self) -> None:
        assert initial_watermark(10_000, 7200) == 2800
        assert initial_watermark(100, 7200) == 0

    async def test_initialize_uses_one_day_of_blocks(self) -> None:
        watcher = _watcher(chain=FakeChain(height=10_000))
        await watcher.initialize()
        assert watcher.watermark == 10_000 - 86400 // 12

    async def test_uninitialized_watermark_raises(self) -> None:
        with pytest.raises(RuntimeError):
            _ = _watcher().watermark

    async def test_start_fails_when_head_unavailable(self) -> None:
        chain = FakeChain()
        chain.fail_height = True
        watcher = _watcher(chain=chain)
        with pytest.raises(ChainConnectionError):
            await watcher.start()
        assert watcher.running is False

    async def test_advances_to_head_after_commit_check(self) -> None:
        chain = FakeChain(height=10_000)
        watcher = _watcher(chain=chain)
        await watcher.initialize()

        chain.height = 10_005
        await watcher.poll_once()
        assert watcher.watermark == 10_005

    async def test_never_decreases(self) -> None:
        chain = FakeChain(height=10_000)
        watcher = _watcher(chain=chain)
        await watcher.initialize()
        await watcher.poll_once()

        chain.height = 9_000
        await watcher.poll_once()
        assert watcher.watermark == 10_000

    async def test_unchanged_when_head_fetch_fails(self) -> None:
        chain = FakeChain(height=10_000)
        watcher = _watcher(chain=chain)
        await watcher.initialize()
        before = watcher.watermark

        chain.fail_height = True
        await watcher.poll_once()
        assert watcher.watermark == before
        assert watcher.iterations == 1

    async def test_held_when_commit_listing_fails(self) -> None:
        chain = FakeChain(height=100_000)
        state = FakeCommits(["0xaa"])
        state.fail = True
        config = EthereumClientWatcher(
            invalid_state_commit_alert=GenericAlert(alert_level=AlertLevel.ERROR),
        )
        watcher = _watcher(config=config, chain=chain, state=state)
        await watcher.initialize()

        chain.height = 100_050
        await watcher.poll_once()
        assert watcher.watermark == 92_800

        # The skipped range is listed again once the state contract recovers.
        state.fail = False
        await watcher.poll_once()
        assert state.from_blocks == [92_800, 92_800]
        assert watcher.watermark == 100_050

    async def test_first_pass_transfer_window_starts_at_head(self) -> None:
        portal = FakeLogs()
        config = EthereumClientWatcher(
            portal_deposit_alerts=[DepositAlert(alert_level=AlertLevel.WARN, time_frame=300)],
        )
        watcher = _watcher(config=config, chain=FakeChain(height=100_000), portal=portal)
        await watcher.initialize()
        await watcher.poll_once()

        assert portal.calls == [("deposits", 300, None, 100_000)]


# ── Indicators ──────────────────────────────────────────────────


class TestIndicators:
    async def test_heartbeat_first(self) -> None:
        alerts = MagicMock(spec=AlertSender)
        watcher = _watcher(alerts=alerts)
        await watcher.initialize()
        await watcher.poll_once()

        first = alerts.submit_alert.call_args_list[0].args
        assert first == ("Watching Ethereum chain.", AlertLevel.INFO, AlertType.ETHEREUM_WATCHING)

    async def test_disabled_indicators_not_probed(self) -> None:
        chain = FakeChain()
        watcher = _watcher(chain=chain, account_address="0xabc")
        await watcher.initialize()
        await watcher.poll_once()

        assert "check_connection" not in chain.calls
        assert "seconds_since_last_block" not in chain.calls
        assert "account_balance" not in chain.calls

    async def test_balance_skipped_without_account(self) -> None:
        chain = FakeChain()
        config = EthereumClientWatcher(
            account_funds_alert=AccountFundsAlert(alert_level=AlertLevel.WARN),
        )
        watcher = _watcher(config=config, chain=chain)
        await watcher.initialize()
        await watcher.poll_once()
        assert "account_balance" not in chain.calls

    async def test_low_balance(self) -> None:
        alerts = MagicMock(spec=AlertSender)
        config = EthereumClientWatcher(
            account_funds_alert=AccountFundsAlert(alert_level=AlertLevel.WARN, min_balance=0.1),
        )
        watcher = _watcher(
            config=config, chain=FakeChain(balance=10**17 - 1),
            alerts=alerts, account_address="0xabc",
        )
        await watcher.initialize()
        await watcher.poll_once()
        assert AlertType.ETHEREUM_ACCOUNT_LOW_FUNDS in _categories(alerts)

    async def test_transfer_windows_anchor_at_advanced_watermark(self) -> None:
        portal = FakeLogs()
        gateway = FakeLogs()
        token = "0x" + "22" * 20
        config = EthereumClientWatcher(
            portal_deposit_alerts=[DepositAlert(alert_level=AlertLevel.WARN, time_frame=600)],
            portal_withdrawal_alerts=[EthereumWithdrawAlert(alert_level=AlertLevel.WARN)],
            gateway_deposit_alerts=[
                DepositAlert(alert_level=AlertLevel.WARN, token_address=token),
            ],
            gateway_withdrawal_alerts=[
                EthereumWithdrawAlert(alert_level=AlertLevel.WARN, token_address=token),
            ],
        )
        watcher = _watcher(config=config, chain=FakeChain(height=10_000),
                           portal=portal, gateway=gateway)
        await watcher.initialize()
        await watcher.poll_once()

        assert portal.calls == [
            ("deposits", 600, None, 10_000),
            ("withdrawals", 300, None, 10_000),
        ]
        assert gateway.calls == [
            ("deposits", 300, token, 10_000),
            ("withdrawals", 300, token, 10_000),
        ]

    async def test_deposit_threshold_breach(self) -> None:
        alerts = MagicMock(spec=AlertSender)
        actions = MagicMock(spec=ActionSender)
        config = EthereumClientWatcher(
            portal_deposit_alerts=[DepositAlert(
                alert_level=AlertLevel.ERROR,
                alert_action=ActionKind.PAUSE_PORTAL,
                amount=1.0,
            )],
        )
        watcher = _watcher(config=config, portal=FakeLogs(deposit=10**18),
                           alerts=alerts, actions=actions)
        await watcher.initialize()
        await watcher.poll_once()

        call = next(c for c in alerts.submit_alert.call_args_list
                    if c.args[2] == AlertType.ETHEREUM_BASE_DEPOSIT_THRESHOLD)
        assert call.args[1] == AlertLevel.ERROR
        assert call.args[3] == f"{'0x' + '0' * 64}:300"
        actions.submit_action.assert_any_call(ActionKind.PAUSE_PORTAL, AlertLevel.ERROR)


# ── Commits ─────────────────────────────────────────────────────


class TestCommits:
    def _config(self) -> EthereumClientWatcher:
        return EthereumClientWatcher(
            invalid_state_commit_alert=GenericAlert(
                alert_level=AlertLevel.ERROR, alert_action=ActionKind.PAUSE_STATE,
            ),
            account_funds_alert=AccountFundsAlert(alert_level=AlertLevel.INFO),
        )

    async def test_invalid_commit_pauses_state(self) -> None:
        alerts = MagicMock(spec=AlertSender)
        actions = MagicMock(spec=ActionSender)
        state = FakeCommits(["0xaa", "0xbb"])
        verifier = FakeVerifier(invalid={"0xbb"})
        watcher = _watcher(config=self._config(), chain=FakeChain(height=10_000),
                           state=state, verifier=verifier, alerts=alerts, actions=actions)
        await watcher.initialize()
        await watcher.poll_once()

        assert state.from_blocks == [2800]
        assert verifier.checked == ["0xaa", "0xbb"]
        invalid = [c.args for c in alerts.submit_alert.call_args_list
                   if c.args[2] == AlertType.ETHEREUM_INVALID_COMMIT]
        assert len(invalid) == 1
        assert invalid[0][0] == "An invalid commit was made on the state contract. Hash: 0xbb"
        assert invalid[0][1] == AlertLevel.ERROR
        actions.submit_action.assert_any_call(ActionKind.PAUSE_STATE, AlertLevel.ERROR)

    async def test_uses_commit_alert_level_not_funds_level(self) -> None:
        alerts = MagicMock(spec=AlertSender)
        watcher = _watcher(config=self._config(), state=FakeCommits(["0xbb"]),
                           verifier=FakeVerifier(invalid={"0xbb"}), alerts=alerts)
        await watcher.initialize()
        await watcher.poll_once()
        levels = [c.args[1] for c in alerts.submit_alert.call_args_list
                  if c.args[2] == AlertType.ETHEREUM_INVALID_COMMIT]
        assert levels == [AlertLevel.ERROR]

    async def test_verify_failure_continues_with_next_hash(self) -> None:
        alerts = MagicMock(spec=AlertSender)
        verifier = FakeVerifier(invalid={"0xcc"}, broken={"0xaa"})
        watcher = _watcher(config=self._config(), state=FakeCommits(["0xaa", "0xcc"]),
                           verifier=verifier, alerts=alerts)
        await watcher.initialize()
        await watcher.poll_once()

        assert verifier.checked == ["0xaa", "0xcc"]
        categories = _categories(alerts)
        assert AlertType.ETHEREUM_COMMIT_CHECK_FAILED in categories
        assert AlertType.ETHEREUM_INVALID_COMMIT in categories


# ── End to end ──────────────────────────────────────────────────


class TestBlockProductionEndToEnd:
    async def _run(self, seconds: int) -> RecordingTransport:
        transport = RecordingTransport()
        router = AlertRouter(transport, min_duration_from_start_to_err=0.0,
                             on_fatal=MagicMock())
        config = EthereumClientWatcher(
            block_production_alert=BlockProductionAlert(
                alert_level=AlertLevel.WARN, max_block_time=20,
            ),
        )
        watcher = _watcher(config=config, chain=FakeChain(seconds=seconds),
                           alerts=router.sender())
        await router.start()
        await watcher.initialize()
        await watcher.poll_once()
        for _ in range(20):
            await asyncio.sleep(0)
        await router.stop()
        return transport

    async def test_slow_block_pages_warning(self) -> None:
        transport = await self._run(25)
        assert transport.pages == [(
            "warning",
            "Next ethereum block is taking longer than 20 seconds. "
            "Last block was 25 seconds ago.",
            "Watchtower System",
        )]

    async def test_on_time_block_is_quiet(self) -> None:
        transport = await self._run(20)
        assert transport.pages == []
