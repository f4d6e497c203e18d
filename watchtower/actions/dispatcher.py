"""Action dispatcher: executes pause commands against bridge contracts."""

from __future__ import annotations

import asyncio
from enum import StrEnum

import structlog

from watchtower.actions.exceptions import DispatchError, PauseTimeoutError
from watchtower.alerts.exceptions import WiringError
from watchtower.alerts.router import AlertSender, FatalHandler, terminate_process
from watchtower.chains.base import PausableContract
from watchtower.core.channel import ChannelClosedError, Receiver, Sender
from watchtower.core.types import (
    ActionCommand,
    ActionKind,
    AlertLevel,
    AlertType,
    PauseTarget,
)

logger = structlog.stdlib.get_logger()

THREAD_CONNECTIONS_ERR = "Connections to the ethereum actions thread have all closed."

DEFAULT_PAUSE_TIMEOUT_SECS = 30.0

# PAUSE_ALL order.
_PAUSE_ALL_ORDER = (PauseTarget.STATE, PauseTarget.GATEWAY, PauseTarget.PORTAL)

_SINGLE_TARGETS: dict[ActionKind, PauseTarget] = {
    ActionKind.PAUSE_STATE: PauseTarget.STATE,
    ActionKind.PAUSE_GATEWAY: PauseTarget.GATEWAY,
    ActionKind.PAUSE_PORTAL: PauseTarget.PORTAL,
}


class PauseOutcome(StrEnum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


class ActionSender:
    """Producer handle for the action dispatcher.  Never blocks the caller."""

    def __init__(self, sender: Sender[ActionCommand]) -> None:
        self._sender = sender

    @property
    def closed(self) -> bool:
        return self._sender.closed

    def submit(self, command: ActionCommand) -> None:
        self._sender.send(command)

    def submit_action(
        self,
        kind: ActionKind,
        escalation_level: AlertLevel | None = None,
    ) -> None:
        """Enqueue a protective action; failures report at *escalation_level*."""
        self._sender.send(
            ActionCommand(
                kind=kind,
                escalation_level=escalation_level or AlertLevel.INFO,
            ),
        )

    def clone(self) -> ActionSender:
        return ActionSender(self._sender.clone())

    def close(self) -> None:
        self._sender.close()


class ActionDispatcher:
    """Single consumer of the action queue.

    Pauses are executed one at a time.  ``PAUSE_ALL`` attempts state,
    gateway and portal in that order; one failure never prevents the
    remaining attempts and nothing already paused is rolled back.

    A pause that does not finish within ``pause_timeout`` is abandoned: the
    dispatcher stops waiting and whatever the call does later is never
    reported.

    Usage::

        dispatcher = ActionDispatcher(alerts, state, gateway, portal)
        actions = dispatcher.sender()
        await dispatcher.start()
        actions.submit_action(ActionKind.PAUSE_ALL, AlertLevel.ERROR)
    """

    def __init__(
        self,
        alerts: AlertSender,
        state: PausableContract,
        gateway: PausableContract,
        portal: PausableContract,
        pause_timeout: float = DEFAULT_PAUSE_TIMEOUT_SECS,
        on_fatal: FatalHandler = terminate_process,
    ) -> None:
        self._alerts = alerts
        self._contracts: dict[PauseTarget, PausableContract] = {
            PauseTarget.STATE: state,
            PauseTarget.GATEWAY: gateway,
            PauseTarget.PORTAL: portal,
        }
        self._pause_timeout = pause_timeout
        self._on_fatal = on_fatal
        self._receiver: Receiver[ActionCommand] = Receiver()
        self._task: asyncio.Task[None] | None = None
        self._abandoned: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def abandoned_count(self) -> int:
        """Pause calls still running after their timeout."""
        return len(self._abandoned)

    def sender(self) -> ActionSender:
        """Open a new producer handle."""
        return ActionSender(self._receiver.new_sender())

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> asyncio.Task[None]:
        """Spawn the consumer task (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="action-dispatcher")
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                command = await self._receiver.recv()
            except ChannelClosedError:
                logger.error("action_channel_closed", detail=THREAD_CONNECTIONS_ERR)
                if not self._alerts.closed:
                    self._alerts.submit_alert(
                        THREAD_CONNECTIONS_ERR,
                        AlertLevel.ERROR,
                        AlertType.ACTION_CHANNEL_CLOSED,
                    )
                self._on_fatal(WiringError(THREAD_CONNECTIONS_ERR))
                return
            await self.handle(command)

    # ── Handling ────────────────────────────────────────────────

    async def handle(self, command: ActionCommand) -> list[PauseOutcome]:
        """Execute one command.  Returns the outcome of each pause attempted."""
        if command.kind == ActionKind.NONE:
            return []

        if command.kind == ActionKind.PAUSE_ALL:
            targets: tuple[PauseTarget, ...] = _PAUSE_ALL_ORDER
        else:
            targets = (_SINGLE_TARGETS[command.kind],)

        logger.info("action_dispatch", kind=command.kind, targets=list(targets))
        return [
            await self.pause_one(
                target, self._contracts[target], command.escalation_level,
            )
            for target in targets
        ]

    async def pause_one(
        self,
        target: PauseTarget,
        contract: PausableContract,
        escalation_level: AlertLevel,
    ) -> PauseOutcome:
        """Pause a single contract, reporting every step as an alert."""
        self._alerts.submit_alert(
            f"Pausing {target} contract.",
            AlertLevel.INFO,
            target.attempt_category,
        )

        try:
            await self._pause_with_timeout(contract)
        except PauseTimeoutError:
            self._alerts.submit_alert(
                f"Timed out after {self._pause_timeout:g} seconds pausing {target} contract.",
                escalation_level,
                target.timed_out_category,
            )
            return PauseOutcome.TIMED_OUT
        except DispatchError as exc:
            self._alerts.submit_alert(
                str(exc), escalation_level, target.failed_category,
            )
            return PauseOutcome.FAILED

        self._alerts.submit_alert(
            f"Successfully paused {target} contract.",
            AlertLevel.INFO,
            target.succeeded_category,
        )
        return PauseOutcome.SUCCEEDED

    async def _pause_with_timeout(self, contract: PausableContract) -> None:
        task = asyncio.ensure_future(contract.pause())
        done, _ = await asyncio.wait({task}, timeout=self._pause_timeout)

        if not done:
            # Abandon without cancelling; the late result is discarded.
            self._abandoned.add(task)
            task.add_done_callback(self._discard_abandoned)
            raise PauseTimeoutError(f"pause did not complete within {self._pause_timeout}s")

        exc = task.exception()
        if exc is not None:
            raise DispatchError(str(exc) or type(exc).__name__) from exc

    def _discard_abandoned(self, task: asyncio.Task[None]) -> None:
        self._abandoned.discard(task)
        if not task.cancelled():
            # Retrieve so asyncio does not log "exception was never retrieved".
            task.exception()
