"""Request/response correlation over a duplex message channel.

This module provides:
- MessageTransport: minimal interface of a duplex text channel
- WebSocketTransport: MessageTransport over a websockets client connection
- CorrelationChannel: turns the inbound stream into awaitable calls,
  matching each reply to its request by operation name

Architecture:
    Coordinator ──call(op)──► CorrelationChannel ──send──► server
                                    ▲
                         run(): recv ─► resolve pending[op]

At most one call per operation may be pending; the channel never queues.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any, Protocol

import websockets
from websockets.exceptions import WebSocketException

from craftsync.core.errors import CallTimeout, ChannelClosed, ProtocolError
from craftsync.core.protocol import Message

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)


class MessageTransport(Protocol):
    """Duplex text channel delivering ordered, reliable messages."""

    async def send(self, message: str) -> None:
        """Send one message.

        Raises:
            ChannelClosed: If the connection is gone.
        """
        ...

    async def recv(self) -> str | bytes:
        """Wait for the next inbound message.

        Raises:
            ChannelClosed: If the connection is gone.
        """
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...


class WebSocketTransport:
    """MessageTransport backed by a websockets client connection."""

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    @classmethod
    async def connect(
        cls,
        url: str,
        ssl: Any = None,
        open_timeout: float = 10.0,
    ) -> WebSocketTransport:
        """Open a WebSocket connection.

        Raises:
            ChannelClosed: If the connection cannot be established.
        """
        try:
            ws = await websockets.connect(
                url,
                ssl=ssl,
                open_timeout=open_timeout,
                close_timeout=5,
                max_size=None,
            )
        except (WebSocketException, OSError, TimeoutError) as e:
            raise ChannelClosed(f"Cannot connect to {url}: {e}") from e
        return cls(ws)

    async def send(self, message: str) -> None:
        try:
            await self._ws.send(message)
        except WebSocketException as e:
            raise ChannelClosed(f"Send failed: {e}") from e

    async def recv(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except WebSocketException as e:
            raise ChannelClosed(f"Connection closed: {e}") from e

    async def close(self) -> None:
        with contextlib.suppress(WebSocketException):
            await self._ws.close()


class CorrelationChannel:
    """Matches inbound replies to outstanding calls by operation name.

    Usage:
        channel = CorrelationChannel(transport)
        reader = asyncio.create_task(channel.run())

        reply = await channel.call("check-files-update", fingerprint)
    """

    def __init__(self, transport: MessageTransport, call_timeout: float = 30.0) -> None:
        """Initialize the channel.

        Args:
            transport: Underlying duplex transport.
            call_timeout: Maximum wait for a reply, in seconds.
        """
        self._transport = transport
        self._call_timeout = call_timeout
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        """Check if the channel has been closed."""
        return self._closed

    @property
    def pending_operations(self) -> set[str]:
        """Operations currently awaiting a reply."""
        return set(self._pending)

    async def call(self, operation: str, payload: Any) -> Any:
        """Send a request and wait for the reply to the same operation.

        Args:
            operation: Operation name; also the correlation key.
            payload: JSON-serializable request payload.

        Returns:
            The payload of the matching reply.

        Raises:
            ChannelClosed: If the channel is or becomes closed.
            CallTimeout: If no reply arrives within the call timeout.
            ProtocolError: If a call for this operation is already pending.
        """
        if self._closed:
            raise ChannelClosed(f"Channel closed, cannot send {operation!r}")
        if operation in self._pending:
            raise ProtocolError(f"A {operation!r} call is already pending")

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[operation] = future
        try:
            await self._transport.send(Message(operation, payload).encode())
            logger.debug("Sent %s", operation)
            return await asyncio.wait_for(future, timeout=self._call_timeout)
        except TimeoutError as e:
            raise CallTimeout(operation, self._call_timeout) from e
        finally:
            if self._pending.get(operation) is future:
                del self._pending[operation]

    async def run(self) -> None:
        """Read inbound messages until the transport closes.

        Pending calls fail with ChannelClosed once the transport is gone.
        """
        try:
            while not self._closed:
                try:
                    raw = await self._transport.recv()
                except ChannelClosed as e:
                    logger.info("Message channel closed: %s", e)
                    break
                self._dispatch(raw)
        finally:
            self._mark_closed()

    async def close(self) -> None:
        """Close the channel and its transport."""
        self._mark_closed()
        await self._transport.close()

    def _dispatch(self, raw: str | bytes) -> None:
        """Resolve the waiter matching one inbound message."""
        try:
            message = Message.decode(raw)
        except ProtocolError as e:
            logger.warning("Dropping malformed message: %s", e)
            return

        future = self._pending.pop(message.operation, None)
        if future is None:
            logger.debug("Dropping unmatched %s reply", message.operation)
            return
        if not future.done():
            future.set_result(message.payload)

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        pending, self._pending = self._pending, {}
        for operation, future in pending.items():
            if not future.done():
                future.set_exception(
                    ChannelClosed(f"Channel closed while waiting for {operation!r}")
                )
