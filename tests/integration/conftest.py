"""Pytest fixtures for integration tests.

This module provides fixtures for end-to-end testing against the real
server application running in-process with local filesystem storage:
HTTP goes through httpx's ASGI transport, protocol messages go straight
to the gateway.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI

from craftsync.client.api import TransferClient
from craftsync.client.sync import SyncSession
from craftsync.client.sync.channel import MessageTransport
from craftsync.core.config import ServerConfig, SyncSettings
from craftsync.core.errors import ChannelClosed
from craftsync.server.app import create_app
from craftsync.server.gateway import SyncGateway
from craftsync.server.storage import LocalFSObjectStore


class GatewayTransport:
    """MessageTransport that hands each request to a SyncGateway."""

    def __init__(self, gateway: SyncGateway) -> None:
        self._gateway = gateway
        self._inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False

    async def send(self, message: str) -> None:
        if self._closed:
            raise ChannelClosed("transport closed")
        reply = await self._gateway.handle_message(message)
        if reply is not None:
            self._inbound.put_nowait(reply.encode())

    async def recv(self) -> str | bytes:
        item = await self._inbound.get()
        if item is None:
            raise ChannelClosed("transport closed")
        return item

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._inbound.put_nowait(None)


class InProcessSession(SyncSession):
    """SyncSession whose message channel talks to an in-process gateway."""

    def __init__(self, *args: object, gateway: SyncGateway, **kwargs: object) -> None:
        super().__init__(*args, **kwargs)  # type: ignore[arg-type]
        self._gateway = gateway

    async def connect(self) -> MessageTransport:
        return GatewayTransport(self._gateway)


@dataclass
class TestServer:
    """Container for test server resources."""

    storage: LocalFSObjectStore
    app: FastAPI
    root: Path

    def put(self, path: str, content: bytes) -> None:
        """Store an object directly."""
        self.storage.put_object(path, content)

    def read(self, path: str) -> bytes:
        """Read an object directly."""
        return b"".join(self.storage.get_object_stream(path))

    def paths(self) -> set[str]:
        """Paths of every stored object."""
        return self.storage.list_objects().paths()


@pytest.fixture
def server(tmp_path: Path) -> TestServer:
    """Create an in-process server with local storage."""
    root = tmp_path / "server"
    storage = LocalFSObjectStore(root)
    return TestServer(storage=storage, app=create_app(storage), root=root)


@pytest.fixture
def sync_folder(tmp_path: Path) -> Path:
    """Create the client's sync folder."""
    folder = tmp_path / "client"
    folder.mkdir()
    return folder


@pytest.fixture
def make_session(server: TestServer, sync_folder: Path) -> Callable[..., SyncSession]:
    """Factory for sessions wired to the in-process server."""

    def _make(settings: SyncSettings | None = None) -> SyncSession:
        config = ServerConfig(server_url="http://testserver")
        client = TransferClient(config, transport=httpx.ASGITransport(app=server.app))
        return InProcessSession(
            sync_folder,
            config,
            settings=settings,
            client=client,
            gateway=SyncGateway(server.storage),
        )

    return _make
