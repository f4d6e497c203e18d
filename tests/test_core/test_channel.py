"""Tests for watchtower/core/channel.py: ordering and disconnect detection."""

from __future__ import annotations

import asyncio

import pytest

from watchtower.core.channel import ChannelClosedError, Receiver


class TestReceiver:
    async def test_fifo_order(self) -> None:
        rx: Receiver[int] = Receiver()
        tx = rx.new_sender()
        for i in range(3):
            tx.send(i)
        assert [await rx.recv() for _ in range(3)] == [0, 1, 2]

    async def test_fresh_receiver_is_not_disconnected(self) -> None:
        rx: Receiver[int] = Receiver()
        assert rx.disconnected is False
        assert rx.sender_count == 0

    async def test_close_last_sender_raises_after_drain(self) -> None:
        rx: Receiver[str] = Receiver()
        tx = rx.new_sender()
        tx.send("last")
        tx.close()
        assert rx.disconnected is True
        assert await rx.recv() == "last"
        with pytest.raises(ChannelClosedError):
            await rx.recv()

    async def test_blocked_recv_wakes_on_close(self) -> None:
        rx: Receiver[int] = Receiver()
        tx = rx.new_sender()
        waiter = asyncio.create_task(rx.recv())
        await asyncio.sleep(0)
        tx.close()
        with pytest.raises(ChannelClosedError):
            await asyncio.wait_for(waiter, timeout=1.0)

    async def test_clone_keeps_channel_open(self) -> None:
        rx: Receiver[int] = Receiver()
        tx = rx.new_sender()
        other = tx.clone()
        tx.close()
        assert rx.disconnected is False
        other.send(7)
        assert await rx.recv() == 7

    async def test_reopened_channel_skips_stale_marker(self) -> None:
        rx: Receiver[int] = Receiver()
        rx.new_sender().close()
        tx = rx.new_sender()
        tx.send(1)
        assert await rx.recv() == 1


class TestSender:
    def test_close_is_idempotent(self) -> None:
        rx: Receiver[int] = Receiver()
        tx = rx.new_sender()
        keep = rx.new_sender()
        tx.close()
        tx.close()
        assert rx.sender_count == 1
        assert keep.closed is False

    def test_send_after_close_raises(self) -> None:
        rx: Receiver[int] = Receiver()
        tx = rx.new_sender()
        tx.close()
        with pytest.raises(ChannelClosedError):
            tx.send(1)
        with pytest.raises(ChannelClosedError):
            tx.clone()
