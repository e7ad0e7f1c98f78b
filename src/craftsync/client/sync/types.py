"""Shared types and dataclasses for sync operations.

This module provides:
- TransferType: The three transfer phases
- TransferFailure, TransferReport: Outcome of one orchestrator pass
- CoordinatorState, CoordinatorStats: Coordinator state machine and counters
- Type alias for the settled-scan callback
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum, auto

from craftsync.core.types import FileSet

# Called by the watcher with each settled snapshot
SettledCallback = Callable[[FileSet], None]


class TransferType(IntEnum):
    """Type of transfer operation, in phase order."""

    UPLOAD = auto()
    UPDATE = auto()
    DOWNLOAD = auto()


@dataclass
class TransferFailure:
    """A single transfer that did not complete."""

    path: str
    transfer_type: TransferType
    error: str


@dataclass
class TransferReport:
    """Result of one best-effort pass over a DiffResult."""

    uploaded: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)
    failed: list[TransferFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        """Number of transfers that completed."""
        return len(self.uploaded) + len(self.updated) + len(self.downloaded)

    @property
    def has_failures(self) -> bool:
        """Check if any transfer failed."""
        return len(self.failed) > 0

    def record_success(self, path: str, transfer_type: TransferType) -> None:
        """Add a completed transfer to the matching list."""
        if transfer_type == TransferType.UPLOAD:
            self.uploaded.append(path)
        elif transfer_type == TransferType.UPDATE:
            self.updated.append(path)
        else:
            self.downloaded.append(path)


class CoordinatorState(IntEnum):
    """State of the reconciliation coordinator."""

    WATCHING = auto()
    PROBE_SENT = auto()
    DIFF_REQUESTED = auto()
    TRANSFERRING = auto()


@dataclass
class CoordinatorStats:
    """Statistics for the coordinator."""

    cycles_started: int = 0
    cycles_completed: int = 0
    cycles_aborted: int = 0
    probes_sent: int = 0
    diffs_requested: int = 0
    duplicates_dropped: int = 0
    superseded_dropped: int = 0
    transfers_succeeded: int = 0
    transfers_failed: int = 0
