"""Connection lifecycle for a watched folder.

This module provides:
- SyncSession: connects to the server, wires channel, coordinator, watcher
  and orchestrator together, and reconnects when the connection drops

Architecture:
    ChangeWatcher ─settled─► ReconciliationCoordinator ─► TransferOrchestrator
                                   │                            │
                           CorrelationChannel              TransferClient
                                   │ (WebSocket)                │ (HTTP)
                                   └──────────► server ◄────────┘

A fresh channel, coordinator and watcher are built for every connection;
the initial scan of the new watcher triggers the first cycle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from pathlib import Path
from typing import TYPE_CHECKING

from craftsync.client.api import TransferClient
from craftsync.client.sync.channel import CorrelationChannel, WebSocketTransport
from craftsync.client.sync.coordinator import ReconciliationCoordinator
from craftsync.client.sync.transfers import TransferOrchestrator
from craftsync.client.sync.watcher import ChangeWatcher
from craftsync.core.config import ServerConfig, SyncSettings
from craftsync.core.errors import ChannelClosed, SyncError
from craftsync.core.scanner import scan_tree
from craftsync.core.types import SyncState

if TYPE_CHECKING:
    from craftsync.client.sync.channel import MessageTransport
    from craftsync.client.sync.types import SettledCallback, TransferReport
    from craftsync.core.types import FileSet

logger = logging.getLogger(__name__)


class SyncSession:
    """Keeps one folder synchronized with one server.

    Usage:
        session = SyncSession(folder, ServerConfig("http://host:3000"))
        await session.run()       # until stop() is called

        report = await session.run_once()   # single scan + cycle
    """

    def __init__(
        self,
        root: Path | str,
        config: ServerConfig,
        settings: SyncSettings | None = None,
        client: TransferClient | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            root: Folder to keep in sync.
            config: Server connection settings.
            settings: Engine timings and sizes.
            client: Transfer client; created from ``config`` when omitted.
        """
        self._root = Path(root).resolve()
        self._config = config
        self._settings = settings or SyncSettings()
        self._client = client or TransferClient(config)
        self._orchestrator = TransferOrchestrator(
            self._client, self._root, batch_size=self._settings.batch_size
        )

        self._state = SyncState.OFFLINE
        self._should_run = False
        self._stop_event: asyncio.Event | None = None
        self._channel: CorrelationChannel | None = None

    @property
    def state(self) -> SyncState:
        """Get the coarse sync state."""
        return self._state

    @property
    def root(self) -> Path:
        """Get the synchronized folder."""
        return self._root

    def _ssl_context(self) -> ssl.SSLContext | None:
        if not self._config.is_secure:
            return None
        context = ssl.create_default_context()
        if not self._config.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def connect(self) -> MessageTransport:
        """Open the message transport to the server.

        Raises:
            ChannelClosed: If the server cannot be reached.
        """
        return await WebSocketTransport.connect(
            self._config.ws_url,
            ssl=self._ssl_context(),
            open_timeout=self._config.timeout,
        )

    async def run(self) -> None:
        """Sync continuously, reconnecting until stop() is called."""
        self._should_run = True
        self._stop_event = asyncio.Event()

        try:
            while self._should_run:
                try:
                    transport = await self.connect()
                    logger.info("Connected to %s", self._config.ws_url)
                    await self._serve_connection(transport)
                except ChannelClosed as e:
                    logger.warning("Server unavailable: %s", e)

                self._state = SyncState.OFFLINE
                if not self._should_run:
                    break

                logger.info("Reconnecting in %.0fs...", self._settings.reconnect_delay)
                # Interruptible sleep - wakes on stop()
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self._settings.reconnect_delay,
                    )
        finally:
            await self._client.close()

    async def stop(self) -> None:
        """Make run() return after closing the current connection."""
        self._should_run = False
        if self._stop_event:
            self._stop_event.set()
        if self._channel:
            await self._channel.close()

    async def _serve_connection(self, transport: MessageTransport) -> None:
        """Watch and reconcile until the connection drops."""
        channel = CorrelationChannel(transport, call_timeout=self._settings.call_timeout)
        self._channel = channel
        coordinator = ReconciliationCoordinator(channel, self._orchestrator)
        coordinator.set_on_cycle_complete(self._on_cycle_complete)
        watcher = ChangeWatcher(
            self._root,
            self._on_settled(coordinator),
            debounce_s=self._settings.debounce_s,
            safety_interval_s=self._settings.safety_interval_s,
            chunk_size=self._settings.chunk_size,
        )
        coordinator.attach_watcher(watcher)

        reader = asyncio.create_task(channel.run())
        try:
            self._state = SyncState.IDLE
            await watcher.start()
            await reader
        finally:
            await watcher.stop()
            await coordinator.cancel()
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
            await channel.close()
            self._channel = None

    def _on_settled(self, coordinator: ReconciliationCoordinator) -> SettledCallback:
        def _handle(file_set: FileSet) -> None:
            self._state = SyncState.SYNCING
            coordinator.handle_settled(file_set)
        return _handle

    def _on_cycle_complete(self, report: TransferReport | None) -> None:
        if report is not None and report.has_failures:
            self._state = SyncState.ERROR
        else:
            self._state = SyncState.IDLE

    async def run_once(self) -> TransferReport | None:
        """Scan the folder and run a single reconciliation cycle.

        Returns:
            Transfer report, or None if nothing had to be transferred.

        Raises:
            ChannelClosed: If the server cannot be reached.
            SyncError: If the cycle was aborted.
        """
        try:
            transport = await self.connect()
        except ChannelClosed:
            await self._client.close()
            raise

        channel = CorrelationChannel(transport, call_timeout=self._settings.call_timeout)
        coordinator = ReconciliationCoordinator(channel, self._orchestrator)
        reader = asyncio.create_task(channel.run())
        try:
            file_set = await asyncio.to_thread(scan_tree, self._root, self._settings.chunk_size)
            coordinator.handle_settled(file_set)
            await coordinator.wait_idle()
            if coordinator.stats.cycles_aborted:
                raise SyncError("Sync cycle aborted, see log for details")
            return coordinator.last_report
        finally:
            await channel.close()
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
            await self._client.close()
