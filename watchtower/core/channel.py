"""Unbounded multi-producer / single-consumer command channel.

Each consumer (alert router, action dispatcher) owns one ``Receiver``;
producers hold ``Sender`` handles opened from it.  Once at least one
handle has existed and every handle has been closed, the receiver drains
what is left and then raises ``ChannelClosedError`` so the consumer can
treat the loss of all producers as a wiring failure.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")

# Wakes a consumer blocked in recv() when the last sender closes.
_CLOSED = object()


class ChannelClosedError(Exception):
    """Every sender handle of the channel has been closed."""


class _State:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[object] = asyncio.Queue()
        self.senders = 0
        self.opened = False


class Sender(Generic[T]):
    """Producer handle.  Cheap to clone and share across tasks."""

    def __init__(self, state: _State) -> None:
        self._state = state
        self._closed = False
        state.senders += 1
        state.opened = True

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: T) -> None:
        """Enqueue *item* without blocking."""
        if self._closed:
            raise ChannelClosedError("send on a closed sender")
        self._state.queue.put_nowait(item)

    def clone(self) -> Sender[T]:
        if self._closed:
            raise ChannelClosedError("clone of a closed sender")
        return Sender(self._state)

    def close(self) -> None:
        """Release this handle.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._state.senders -= 1
        if self._state.senders == 0:
            self._state.queue.put_nowait(_CLOSED)


class Receiver(Generic[T]):
    """Single consumer end of the channel."""

    def __init__(self) -> None:
        self._state = _State()

    @property
    def sender_count(self) -> int:
        return self._state.senders

    @property
    def disconnected(self) -> bool:
        return self._state.opened and self._state.senders == 0

    def new_sender(self) -> Sender[T]:
        """Open a producer handle on this channel."""
        return Sender(self._state)

    async def recv(self) -> T:
        """Wait for the next item in FIFO order."""
        while True:
            if self.disconnected and self._state.queue.empty():
                raise ChannelClosedError("all senders closed")
            item = await self._state.queue.get()
            if item is _CLOSED:
                # Stale marker if a sender was opened again afterwards.
                continue
            return item  # type: ignore[return-value]
