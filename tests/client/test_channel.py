"""Tests for request/response correlation over a message transport."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from craftsync.client.sync.channel import CorrelationChannel
from craftsync.core.errors import CallTimeout, ChannelClosed, ProtocolError

_CLOSE = object()


class FakeTransport:
    """In-memory transport: records sent messages, replays queued ones."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.inbound: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    async def send(self, message: str) -> None:
        if self.closed:
            raise ChannelClosed("closed")
        self.sent.append(json.loads(message))

    async def recv(self) -> str | bytes:
        item = await self.inbound.get()
        if item is _CLOSE:
            raise ChannelClosed("peer went away")
        return item  # type: ignore[no-any-return]

    async def close(self) -> None:
        self.closed = True
        self.inbound.put_nowait(_CLOSE)

    def reply(self, operation: str, payload: Any) -> None:
        self.inbound.put_nowait(json.dumps({"operation": operation, "payload": payload}))


async def wait_sent(transport: FakeTransport, count: int) -> None:
    """Wait until the transport has seen ``count`` outgoing messages."""
    for _ in range(200):
        if len(transport.sent) >= count:
            return
        await asyncio.sleep(0.005)
    raise AssertionError("Message was never sent")


class TestCorrelationChannel:
    """Tests for CorrelationChannel."""

    @pytest.mark.asyncio
    async def test_call_resolves_with_matching_reply(self) -> None:
        """A reply with the same operation resolves the call."""
        transport = FakeTransport()
        channel = CorrelationChannel(transport)
        reader = asyncio.create_task(channel.run())

        call = asyncio.create_task(channel.call("check-files-update", "abc"))
        await wait_sent(transport, 1)
        assert transport.sent[0] == {"operation": "check-files-update", "payload": "abc"}
        assert channel.pending_operations == {"check-files-update"}

        transport.reply("check-files-update", {"update": True})
        assert await call == {"update": True}
        assert channel.pending_operations == set()

        await channel.close()
        await reader

    @pytest.mark.asyncio
    async def test_replies_matched_by_operation_not_order(self) -> None:
        """Two different operations can be in flight and resolve out of order."""
        transport = FakeTransport()
        channel = CorrelationChannel(transport)
        reader = asyncio.create_task(channel.run())

        probe = asyncio.create_task(channel.call("check-files-update", "x"))
        diff = asyncio.create_task(channel.call("get-file-diff", []))
        await wait_sent(transport, 2)

        transport.reply("get-file-diff", {"toUpload": []})
        transport.reply("check-files-update", {"update": False})

        assert await probe == {"update": False}
        assert await diff == {"toUpload": []}

        await channel.close()
        await reader

    @pytest.mark.asyncio
    async def test_unmatched_and_malformed_messages_dropped(self) -> None:
        """Stray and undecodable messages are ignored."""
        transport = FakeTransport()
        channel = CorrelationChannel(transport)
        reader = asyncio.create_task(channel.run())

        call = asyncio.create_task(channel.call("check-files-update", "x"))
        await wait_sent(transport, 1)

        transport.reply("get-file-diff", {"unexpected": True})
        transport.inbound.put_nowait("{not json")
        transport.inbound.put_nowait(json.dumps({"payload": 1}))
        transport.reply("check-files-update", {"update": True})

        assert await call == {"update": True}
        assert not channel.closed

        await channel.close()
        await reader

    @pytest.mark.asyncio
    async def test_duplicate_pending_call_rejected(self) -> None:
        """A second call for a pending operation raises ProtocolError."""
        transport = FakeTransport()
        channel = CorrelationChannel(transport)
        reader = asyncio.create_task(channel.run())

        first = asyncio.create_task(channel.call("check-files-update", "x"))
        await wait_sent(transport, 1)

        with pytest.raises(ProtocolError):
            await channel.call("check-files-update", "y")
        assert len(transport.sent) == 1

        transport.reply("check-files-update", {"update": False})
        assert await first == {"update": False}

        await channel.close()
        await reader

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """A call without reply fails with CallTimeout and is deregistered."""
        transport = FakeTransport()
        channel = CorrelationChannel(transport, call_timeout=0.05)
        reader = asyncio.create_task(channel.run())

        with pytest.raises(CallTimeout) as exc_info:
            await channel.call("check-files-update", "x")
        assert exc_info.value.operation == "check-files-update"
        assert isinstance(exc_info.value, ChannelClosed)
        assert channel.pending_operations == set()

        # A late reply is harmless
        transport.reply("check-files-update", {"update": True})
        await asyncio.sleep(0.01)

        await channel.close()
        await reader

    @pytest.mark.asyncio
    async def test_peer_close_fails_pending_calls(self) -> None:
        """Pending calls fail with ChannelClosed when the transport drops."""
        transport = FakeTransport()
        channel = CorrelationChannel(transport)
        reader = asyncio.create_task(channel.run())

        call = asyncio.create_task(channel.call("get-file-diff", []))
        await wait_sent(transport, 1)
        transport.inbound.put_nowait(_CLOSE)

        with pytest.raises(ChannelClosed):
            await call
        await reader
        assert channel.closed

    @pytest.mark.asyncio
    async def test_call_after_close_fails_fast(self) -> None:
        """No message is sent on a closed channel."""
        transport = FakeTransport()
        channel = CorrelationChannel(transport)
        await channel.close()

        with pytest.raises(ChannelClosed):
            await channel.call("check-files-update", "x")
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_send_failure_deregisters_call(self) -> None:
        """A failed send leaves no pending entry behind."""
        transport = FakeTransport()
        transport.closed = True
        channel = CorrelationChannel(transport)

        with pytest.raises(ChannelClosed):
            await channel.call("check-files-update", "x")
        assert channel.pending_operations == set()
