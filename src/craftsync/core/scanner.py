"""Directory scanning into FileSet snapshots."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from craftsync.core.fingerprint import CHUNK_SIZE, fingerprint_file
from craftsync.core.types import FileEntry, FileSet

logger = logging.getLogger(__name__)


def scan_file(root: Path, file_path: Path, chunk_size: int = CHUNK_SIZE) -> FileEntry:
    """Build the entry of a single file.

    Raises:
        OSError: If the file vanished or cannot be read.
    """
    stat = file_path.stat()
    fingerprint = fingerprint_file(file_path, chunk_size)
    relative_path = file_path.relative_to(root).as_posix()
    return FileEntry(
        path=relative_path,
        modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
        fingerprint=fingerprint,
    )


def scan_tree(root: Path | str, chunk_size: int = CHUNK_SIZE) -> FileSet:
    """Take a full snapshot of every regular file under ``root``.

    Dotfiles are included; directories and symlinks are not. Files that
    disappear or become unreadable while scanning are left out; the next
    scan picks them up again.

    Args:
        root: Directory to walk.
        chunk_size: Read size for fingerprinting.

    Returns:
        FileSet keyed by path relative to ``root``.
    """
    root = Path(root)
    entries: list[FileEntry] = []

    for dir_str, _dirs, files in os.walk(root):
        directory = Path(dir_str)
        for filename in files:
            file_path = directory / filename
            if file_path.is_symlink() or not file_path.is_file():
                continue
            try:
                entries.append(scan_file(root, file_path, chunk_size))
            except OSError as e:
                logger.debug("Skipping %s: %s", file_path, e)

    return FileSet.from_entries(entries)
