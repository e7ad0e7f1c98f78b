"""File system watcher producing settled snapshots.

This module provides:
- ChangeWatcher: Watches a directory tree using watchdog
- Debouncing: every event restarts a quiet-period timer (1s); when it
  elapses a full scan is taken and handed to the callback once
- Safety re-scan: an unconditional scan every 60s to recover from missed
  native events
- Pause/resume: lets the coordinator write into the tree without
  observing its own writes

Timers live on the asyncio loop; watchdog's observer thread only forwards
a wake-up to the loop, so all watcher state is mutated on one thread.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from craftsync.core.fingerprint import CHUNK_SIZE, fingerprint_file_set
from craftsync.core.scanner import scan_tree

if TYPE_CHECKING:
    from collections.abc import Callable

    from watchdog.observers.api import BaseObserver

    from craftsync.client.sync.types import SettledCallback
    from craftsync.core.types import FileSet

logger = logging.getLogger(__name__)

# Events that can change the scan result. Opened/closed-without-write events
# are excluded: our own scans read every file and would re-trigger themselves.
CHANGE_EVENT_TYPES = frozenset({
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    EVENT_TYPE_CLOSED,
})


class LoopForwardingHandler(FileSystemEventHandler):
    """Forwards relevant watchdog events to a callback on an asyncio loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[], None],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle any event from the observer thread."""
        if event.event_type not in CHANGE_EVENT_TYPES:
            return
        # Directories are not synced; their contents raise their own events
        if event.is_directory:
            return

        try:
            self._loop.call_soon_threadsafe(self._callback)
        except RuntimeError:
            # Loop already closed during shutdown
            pass


class ChangeWatcher:
    """Watches a directory and reports debounced, settled snapshots.

    Usage:
        watcher = ChangeWatcher(root, coordinator.handle_settled)
        await watcher.start()   # initial scan is reported immediately

        watcher.pause()
        ...                     # write into the tree
        watcher.resume()

        await watcher.stop()
    """

    def __init__(
        self,
        root: Path | str,
        on_settled: SettledCallback,
        debounce_s: float = 1.0,
        safety_interval_s: float = 60.0,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        """Initialize the watcher.

        Args:
            root: Directory to watch.
            on_settled: Called on the loop with each settled FileSet.
            debounce_s: Quiet period after the last event before scanning.
            safety_interval_s: Interval of the unconditional re-scan.
            chunk_size: Read size used when fingerprinting.
        """
        self._root = Path(root).resolve()
        if not self._root.is_dir():
            raise ValueError(f"Watch path must be a directory: {root}")

        self._on_settled = on_settled
        self._debounce_s = debounce_s
        self._safety_interval_s = safety_interval_s
        self._chunk_size = chunk_size

        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: BaseObserver | None = None
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._safety_handle: asyncio.TimerHandle | None = None
        self._scan_tasks: set[asyncio.Task[None]] = set()
        self._baseline: asyncio.Task[str | None] | None = None

        self._running = False
        self._paused = False
        # Incremented by pause(); scans started earlier are discarded
        self._generation = 0

    @property
    def root(self) -> Path:
        """Get the watched directory path."""
        return self._root

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    @property
    def is_paused(self) -> bool:
        """Check if event handling is paused."""
        return self._paused

    async def start(self) -> None:
        """Start watching and report the initial snapshot."""
        if self._running:
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        observer = Observer()
        observer.schedule(
            LoopForwardingHandler(self._loop, self._on_fs_event),
            str(self._root),
            recursive=True,
        )
        observer.start()
        self._observer = observer
        logger.info("Watching %s", self._root)

        await self._scan_and_emit(self._generation)
        self._arm_safety_timer()

    async def stop(self) -> None:
        """Stop watching and cancel pending timers and scans."""
        if not self._running:
            return

        self._running = False
        self._cancel_debounce()
        self._drop_baseline()
        if self._safety_handle:
            self._safety_handle.cancel()
            self._safety_handle = None

        for task in list(self._scan_tasks):
            task.cancel()
        if self._scan_tasks:
            await asyncio.gather(*self._scan_tasks, return_exceptions=True)

        if self._observer:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5.0)
            self._observer = None
        logger.info("Stopped watching %s", self._root)

    def pause(self) -> None:
        """Ignore filesystem activity until resume() is called.

        The pending debounce timer is dropped and scans already running are
        discarded when they finish; anything that happened while paused is
        superseded by the next scan taken after resume.
        """
        self._paused = True
        self._generation += 1
        self._cancel_debounce()
        self._drop_baseline()
        logger.debug("Watcher paused")

    def resume(self) -> None:
        """Resume handling filesystem activity.

        Does not report a snapshot by itself. The tree is scanned in the
        background as a baseline: events for writes made while paused can
        reach the loop after this call, and the first event-driven snapshot
        is dropped if it still matches that baseline.
        """
        self._paused = False
        self._drop_baseline()
        if self._running and self._loop is not None:
            self._baseline = self._loop.create_task(self._scan_baseline())
        logger.debug("Watcher resumed")

    def _on_fs_event(self) -> None:
        """Restart the debounce timer (runs on the loop)."""
        if not self._running or self._paused or self._loop is None:
            return
        self._cancel_debounce()
        self._debounce_handle = self._loop.call_later(
            self._debounce_s, self._on_debounce_elapsed
        )

    def _on_debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self._spawn_scan(after_event=True)

    def _on_safety_tick(self) -> None:
        self._arm_safety_timer()
        if self._paused:
            logger.debug("Skipping safety scan while paused")
            return
        self._spawn_scan()

    def _arm_safety_timer(self) -> None:
        if not self._running or self._loop is None:
            return
        self._safety_handle = self._loop.call_later(
            self._safety_interval_s, self._on_safety_tick
        )

    def _cancel_debounce(self) -> None:
        if self._debounce_handle:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _drop_baseline(self) -> None:
        if self._baseline:
            self._baseline.cancel()
            self._baseline = None

    def _is_stale(self, generation: int) -> bool:
        return not self._running or self._paused or generation != self._generation

    def _spawn_scan(self, after_event: bool = False) -> None:
        if not self._running or self._paused or self._loop is None:
            return
        task = self._loop.create_task(self._scan_and_emit(self._generation, after_event))
        self._scan_tasks.add(task)
        task.add_done_callback(self._scan_tasks.discard)

    async def _scan_baseline(self) -> str | None:
        """Aggregate fingerprint of the tree as left by the paused writer."""
        try:
            file_set = await asyncio.to_thread(scan_tree, self._root, self._chunk_size)
        except OSError as e:
            logger.warning("Baseline scan of %s failed: %s", self._root, e)
            return None
        return fingerprint_file_set(file_set)

    async def _matches_baseline(self, file_set: FileSet) -> bool:
        """Consume the resume baseline and compare it with a snapshot."""
        baseline_task, self._baseline = self._baseline, None
        if baseline_task is None:
            return False
        baseline = await baseline_task
        return baseline is not None and baseline == fingerprint_file_set(file_set)

    async def _scan_and_emit(self, generation: int, after_event: bool = False) -> None:
        """Scan the tree off-loop and report the snapshot.

        Args:
            generation: Pause generation the scan was started in; the result
                is discarded if the watcher was paused in the meantime.
            after_event: Scan was triggered by filesystem events rather than
                by start() or the safety timer.
        """
        try:
            file_set = await asyncio.to_thread(scan_tree, self._root, self._chunk_size)
        except OSError as e:
            logger.warning("Scan of %s failed: %s", self._root, e)
            return

        if self._is_stale(generation):
            logger.debug("Discarding snapshot overtaken by a pause")
            return

        if after_event and await self._matches_baseline(file_set):
            logger.debug("Discarding snapshot unchanged since resume")
            return
        if self._is_stale(generation):
            return

        logger.debug("Settled snapshot: %d files", len(file_set))
        try:
            self._on_settled(file_set)
        except Exception:
            logger.exception("Settled callback failed")

    async def __aenter__(self) -> ChangeWatcher:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.stop()
