"""Reconciliation coordinator gluing watcher, channel and transfers together.

This module provides:
- ReconciliationCoordinator: the per-root state machine driving sync cycles

One cycle:
    settled snapshot ─► fingerprint ─► check-files-update ─► (update?)
        ─► get-file-diff ─► pause watcher ─► transfers ─► resume watcher

State machine:
    | State          | Leaves on                          | Next            |
    |----------------|------------------------------------|-----------------|
    | WATCHING       | accepted snapshot                  | PROBE_SENT      |
    | PROBE_SENT     | update=false / error               | WATCHING        |
    | PROBE_SENT     | update=true                        | DIFF_REQUESTED  |
    | DIFF_REQUESTED | diff received                      | TRANSFERRING    |
    | TRANSFERRING   | pass complete (even with failures) | WATCHING        |

Cycles are serialized: a snapshot arriving while a cycle runs waits for it,
and is skipped if a newer snapshot has been accepted meanwhile. Snapshots
whose aggregate fingerprint is already in flight are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from craftsync.client.sync.types import (
    CoordinatorState,
    CoordinatorStats,
    TransferReport,
)
from craftsync.core.errors import ChannelClosed, ProtocolError
from craftsync.core.fingerprint import fingerprint_file_set
from craftsync.core.protocol import CHECK_FILES_UPDATE, GET_FILE_DIFF, parse_update_flag
from craftsync.core.types import DiffResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from craftsync.client.sync.channel import CorrelationChannel
    from craftsync.client.sync.transfers import TransferOrchestrator
    from craftsync.core.types import FileSet

logger = logging.getLogger(__name__)


class PausableWatcher(Protocol):
    """The part of the watcher the coordinator drives."""

    def pause(self) -> None:
        """Stop reacting to filesystem activity."""
        ...

    def resume(self) -> None:
        """React to filesystem activity again."""
        ...


class ReconciliationCoordinator:
    """Drives reconciliation cycles for one watched root.

    Usage:
        coordinator = ReconciliationCoordinator(channel, orchestrator)
        watcher = ChangeWatcher(root, coordinator.handle_settled)
        coordinator.attach_watcher(watcher)
        await watcher.start()
    """

    def __init__(
        self,
        channel: CorrelationChannel,
        orchestrator: TransferOrchestrator,
        watcher: PausableWatcher | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            channel: Request/response channel to the server.
            orchestrator: Applies diffs to the local tree and the server.
            watcher: Watcher to pause while transferring.
        """
        self._channel = channel
        self._orchestrator = orchestrator
        self._watcher = watcher

        self._state = CoordinatorState.WATCHING
        self._stats = CoordinatorStats()

        # Aggregate fingerprints with a cycle queued or running
        self._in_flight: set[str] = set()
        self._latest_fingerprint: str | None = None
        self._cycle_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

        self._last_report: TransferReport | None = None
        self._on_cycle_complete: Callable[[TransferReport | None], None] | None = None

    @property
    def state(self) -> CoordinatorState:
        """Get current coordinator state."""
        return self._state

    @property
    def stats(self) -> CoordinatorStats:
        """Get coordinator statistics."""
        return self._stats

    @property
    def in_flight(self) -> frozenset[str]:
        """Aggregate fingerprints currently queued or being reconciled."""
        return frozenset(self._in_flight)

    @property
    def last_report(self) -> TransferReport | None:
        """Report of the most recent transfer pass."""
        return self._last_report

    def attach_watcher(self, watcher: PausableWatcher) -> None:
        """Set the watcher to pause while transferring."""
        self._watcher = watcher

    def set_on_cycle_complete(
        self,
        callback: Callable[[TransferReport | None], None],
    ) -> None:
        """Set callback invoked after each cycle.

        Args:
            callback: Receives the transfer report, or None when the cycle
                ended without transferring.
        """
        self._on_cycle_complete = callback

    def handle_settled(self, file_set: FileSet) -> None:
        """Accept a settled snapshot from the watcher.

        Must be called on the event loop. Duplicate snapshots (same aggregate
        fingerprint as a queued or running cycle) are dropped.
        """
        fingerprint = fingerprint_file_set(file_set)
        if fingerprint in self._in_flight:
            # The tree is back to a state already being handled; anything
            # queued in between is stale.
            self._latest_fingerprint = fingerprint
            self._stats.duplicates_dropped += 1
            logger.debug("Snapshot %s already in flight, dropping", fingerprint[:12])
            return

        self._in_flight.add(fingerprint)
        self._latest_fingerprint = fingerprint
        task = asyncio.get_running_loop().create_task(
            self._reconcile(fingerprint, file_set)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait until every queued cycle has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        """Cancel queued and running cycles (used on shutdown)."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _reconcile(self, fingerprint: str, file_set: FileSet) -> None:
        """Run one cycle for a snapshot, then release its dedupe entry."""
        report: TransferReport | None = None
        try:
            async with self._cycle_lock:
                if fingerprint != self._latest_fingerprint:
                    self._stats.superseded_dropped += 1
                    logger.debug("Snapshot %s superseded, skipping", fingerprint[:12])
                    return
                try:
                    report = await self._run_cycle(fingerprint, file_set)
                finally:
                    self._state = CoordinatorState.WATCHING
        finally:
            self._in_flight.discard(fingerprint)

        if self._on_cycle_complete:
            try:
                self._on_cycle_complete(report)
            except Exception:
                logger.exception("Cycle completion callback failed")

    async def _run_cycle(self, fingerprint: str, file_set: FileSet) -> TransferReport | None:
        self._stats.cycles_started += 1
        try:
            diff = await self._request_diff(fingerprint, file_set)
            if diff is None:
                self._stats.cycles_completed += 1
                return None

            report = await self._transfer(diff)
            self._stats.cycles_completed += 1
            return report

        except (ChannelClosed, ProtocolError) as e:
            self._stats.cycles_aborted += 1
            logger.error("Sync cycle aborted in %s: %s", self._state.name, e)
        except Exception:
            self._stats.cycles_aborted += 1
            logger.exception("Sync cycle failed in %s", self._state.name)
        return None

    async def _request_diff(self, fingerprint: str, file_set: FileSet) -> DiffResult | None:
        """Probe the server and fetch the diff if anything changed."""
        self._state = CoordinatorState.PROBE_SENT
        self._stats.probes_sent += 1
        reply = await self._channel.call(CHECK_FILES_UPDATE, fingerprint)
        if not parse_update_flag(reply):
            logger.debug("Server in sync with %s", fingerprint[:12])
            return None

        self._state = CoordinatorState.DIFF_REQUESTED
        self._stats.diffs_requested += 1
        logger.info("Changes detected, requesting diff for %d local files", len(file_set))
        diff = DiffResult.from_wire(
            await self._channel.call(GET_FILE_DIFF, file_set.to_wire())
        )
        if diff.is_empty:
            logger.info("Nothing to transfer")
            return None
        return diff

    async def _transfer(self, diff: DiffResult) -> TransferReport:
        """Apply a diff with the watcher paused."""
        self._state = CoordinatorState.TRANSFERRING
        logger.info(
            "Syncing: %d to upload, %d to update, %d to download",
            len(diff.to_upload),
            len(diff.to_update),
            len(diff.to_download),
        )

        if self._watcher:
            self._watcher.pause()
        try:
            report = await self._orchestrator.apply(diff)
        finally:
            if self._watcher:
                self._watcher.resume()

        self._stats.transfers_succeeded += report.succeeded
        self._stats.transfers_failed += len(report.failed)
        self._last_report = report
        return report
