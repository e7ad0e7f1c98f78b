"""Batched, concurrency-bounded application of a DiffResult.

This module provides:
- TransferBackend: what the orchestrator needs from the transfer client
- TransferOrchestrator: runs the upload, update and download phases

Phases run in a fixed order. Within a phase entries are cut into batches;
batches run one after another and the transfers of one batch run
concurrently. A failed transfer is logged and recorded, never retried
within the same pass and never fatal to its batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TypeVar

from craftsync.client.sync.types import TransferFailure, TransferReport, TransferType

if TYPE_CHECKING:
    from craftsync.core.types import DiffResult, FileEntry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

T = TypeVar("T")


class TransferBackend(Protocol):
    """Remote side of a transfer (implemented by TransferClient)."""

    async def create_file(self, path: str, data: bytes) -> None:
        """Create a new object."""
        ...

    async def replace_file(self, path: str, data: bytes) -> None:
        """Replace an existing object."""
        ...

    async def download_file(self, path: str, destination: Path) -> int:
        """Stream an object into a local file."""
        ...


def batched(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Split a sequence into consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class TransferOrchestrator:
    """Applies a DiffResult against a transfer backend.

    Usage:
        orchestrator = TransferOrchestrator(client, sync_folder)
        report = await orchestrator.apply(diff)
        if report.has_failures:
            ...  # the next cycle will see those files as divergent again
    """

    def __init__(
        self,
        backend: TransferBackend,
        root: Path,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            backend: Client performing the remote operations.
            root: Local directory the entry paths are relative to.
            batch_size: Maximum number of concurrent transfers.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._backend = backend
        self._root = Path(root)
        self._batch_size = batch_size

    @property
    def batch_size(self) -> int:
        """Maximum number of concurrent transfers."""
        return self._batch_size

    async def apply(self, diff: DiffResult) -> TransferReport:
        """Run the upload, update and download phases.

        Args:
            diff: Actions to perform.

        Returns:
            Report of completed and failed transfers.
        """
        report = TransferReport()
        phases = (
            (TransferType.UPLOAD, diff.to_upload),
            (TransferType.UPDATE, diff.to_update),
            (TransferType.DOWNLOAD, diff.to_download),
        )
        for transfer_type, entries in phases:
            if len(entries):
                await self._run_phase(transfer_type, list(entries), report)

        logger.info(
            "Transfer pass done: %d uploaded, %d updated, %d downloaded, %d failed",
            len(report.uploaded),
            len(report.updated),
            len(report.downloaded),
            len(report.failed),
        )
        return report

    async def _run_phase(
        self,
        transfer_type: TransferType,
        entries: list[FileEntry],
        report: TransferReport,
    ) -> None:
        logger.info("Starting %s of %d files", transfer_type.name.lower(), len(entries))

        for batch in batched(entries, self._batch_size):
            outcomes = await asyncio.gather(
                *(self._transfer(transfer_type, entry) for entry in batch),
                return_exceptions=True,
            )
            for entry, outcome in zip(batch, outcomes, strict=True):
                if outcome is None:
                    report.record_success(entry.path, transfer_type)
                    continue
                if not isinstance(outcome, Exception):
                    # Cancellation and other BaseExceptions are not transfer failures
                    raise outcome
                logger.error(
                    "Failed to %s %s: %s",
                    transfer_type.name.lower(),
                    entry.path,
                    outcome,
                )
                report.failed.append(
                    TransferFailure(entry.path, transfer_type, str(outcome) or type(outcome).__name__)
                )

    async def _transfer(self, transfer_type: TransferType, entry: FileEntry) -> None:
        local_path = self._root / entry.path

        if transfer_type == TransferType.DOWNLOAD:
            await self._backend.download_file(entry.path, local_path)
            logger.info("Downloaded %s", entry.path)
            return

        data = await asyncio.to_thread(local_path.read_bytes)
        if transfer_type == TransferType.UPLOAD:
            await self._backend.create_file(entry.path, data)
            logger.info("Uploaded %s", entry.path)
        else:
            await self._backend.replace_file(entry.path, data)
            logger.info("Updated %s", entry.path)
