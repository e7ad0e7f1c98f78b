"""Shared types for craftsync.

This module defines the values exchanged between watcher, coordinator,
server and transfer layers:
- FileEntry: one file known to either side
- FileSet: immutable snapshot of entries keyed by path
- DiffResult: the three disjoint action sets produced by the classifier
- SyncState: coarse state reported by the client
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import Any

from craftsync.core.errors import ProtocolError


class SyncState(str, Enum):
    """Coarse sync state of a client."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


def normalize_path(path: str) -> str:
    """Normalize a relative path to forward slashes and validate it.

    Args:
        path: Relative path using either separator.

    Returns:
        The normalized path.

    Raises:
        ValueError: If the path is empty, absolute or escapes its root.
    """
    normalized = path.replace("\\", "/")
    pure = PurePosixPath(normalized)
    if not normalized or normalized in (".", "/"):
        raise ValueError("Path must not be empty")
    if pure.is_absolute():
        raise ValueError(f"Path must be relative: {path}")
    if ".." in pure.parts:
        raise ValueError(f"Path must not contain '..': {path}")
    return str(pure)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class FileEntry:
    """A physical file known to either side.

    Attributes:
        path: Relative, forward-slash path; unique key within a FileSet.
        modified_at: Last content change (timezone-aware, UTC).
        fingerprint: Opaque content token; equal tokens mean equal content.
    """

    path: str
    modified_at: datetime
    fingerprint: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", normalize_path(self.path))
        object.__setattr__(self, "modified_at", _as_utc(self.modified_at))

    def to_wire(self) -> dict[str, str]:
        """Convert to the JSON wire form."""
        return {
            "path": self.path,
            "modifiedAt": self.modified_at.isoformat(),
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_wire(cls, data: Any) -> FileEntry:
        """Create from the JSON wire form.

        Raises:
            ProtocolError: If a field is missing or invalid.
        """
        if not isinstance(data, Mapping):
            raise ProtocolError(f"File entry must be an object, got {type(data).__name__}")
        try:
            path = data["path"]
            modified_at = data["modifiedAt"]
            fingerprint = data["fingerprint"]
        except KeyError as e:
            raise ProtocolError(f"File entry is missing {e.args[0]!r}") from e

        if not all(isinstance(v, str) for v in (path, modified_at, fingerprint)):
            raise ProtocolError(f"File entry fields must be strings: {data!r}")

        try:
            return cls(
                path=path,
                modified_at=datetime.fromisoformat(modified_at),
                fingerprint=fingerprint,
            )
        except ValueError as e:
            raise ProtocolError(f"Invalid file entry {path!r}: {e}") from e


@dataclass(frozen=True)
class FileSet:
    """Immutable snapshot of file entries keyed by path.

    A new filesystem event always produces a new FileSet; existing ones
    are never mutated.
    """

    _entries: Mapping[str, FileEntry] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_entries", MappingProxyType(dict(self._entries)))

    @classmethod
    def from_entries(cls, entries: Iterable[FileEntry]) -> FileSet:
        """Build a FileSet, rejecting duplicate paths.

        Raises:
            ValueError: If two entries share a path.
        """
        by_path: dict[str, FileEntry] = {}
        for entry in entries:
            if entry.path in by_path:
                raise ValueError(f"Duplicate path in file set: {entry.path}")
            by_path[entry.path] = entry
        return cls(by_path)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(self._entries.values())

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileSet):
            return NotImplemented
        return dict(self._entries) == dict(other._entries)

    def __hash__(self) -> int:
        return hash(frozenset(self._entries.values()))

    def __repr__(self) -> str:
        return f"FileSet({sorted(self._entries)!r})"

    def get(self, path: str) -> FileEntry | None:
        """Get the entry for a path, if present."""
        return self._entries.get(path)

    def paths(self) -> set[str]:
        """Get all paths in the set."""
        return set(self._entries)

    def to_wire(self) -> list[dict[str, str]]:
        """Convert to the JSON wire form, sorted by path."""
        return [self._entries[path].to_wire() for path in sorted(self._entries)]

    @classmethod
    def from_wire(cls, data: Any) -> FileSet:
        """Create from the JSON wire form.

        Raises:
            ProtocolError: If the payload is not a list of valid entries.
        """
        if not isinstance(data, list):
            raise ProtocolError(f"File list must be an array, got {type(data).__name__}")
        try:
            return cls.from_entries(FileEntry.from_wire(item) for item in data)
        except ValueError as e:
            raise ProtocolError(str(e)) from e


@dataclass(frozen=True)
class DiffResult:
    """Actions needed to reconcile a local and a remote FileSet.

    Attributes:
        to_upload: Present only locally.
        to_update: Present on both sides; local is newer and differs.
        to_download: Present only remotely, or remote is newer and differs.
    """

    to_upload: FileSet = field(default_factory=FileSet)
    to_update: FileSet = field(default_factory=FileSet)
    to_download: FileSet = field(default_factory=FileSet)

    def __post_init__(self) -> None:
        upload, update, download = (
            self.to_upload.paths(),
            self.to_update.paths(),
            self.to_download.paths(),
        )
        overlap = (upload & update) | (upload & download) | (update & download)
        if overlap:
            raise ValueError(f"Diff sets overlap on: {sorted(overlap)}")

    @property
    def is_empty(self) -> bool:
        """Check if there is nothing to transfer."""
        return self.total == 0

    @property
    def total(self) -> int:
        """Total number of transfers described by this diff."""
        return len(self.to_upload) + len(self.to_update) + len(self.to_download)

    def to_wire(self) -> dict[str, list[dict[str, str]]]:
        """Convert to the JSON wire form."""
        return {
            "toUpload": self.to_upload.to_wire(),
            "toUpdate": self.to_update.to_wire(),
            "toDownload": self.to_download.to_wire(),
        }

    @classmethod
    def from_wire(cls, data: Any) -> DiffResult:
        """Create from the JSON wire form.

        Raises:
            ProtocolError: If the payload is malformed or the sets overlap.
        """
        if not isinstance(data, Mapping):
            raise ProtocolError(f"Diff must be an object, got {type(data).__name__}")
        if "error" in data:
            raise ProtocolError(f"Server rejected request: {data['error']}")
        try:
            return cls(
                to_upload=FileSet.from_wire(data.get("toUpload", [])),
                to_update=FileSet.from_wire(data.get("toUpdate", [])),
                to_download=FileSet.from_wire(data.get("toDownload", [])),
            )
        except ValueError as e:
            raise ProtocolError(str(e)) from e
