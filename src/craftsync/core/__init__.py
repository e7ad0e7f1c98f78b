"""Core module - Data model, fingerprints, diffing and protocol."""

from craftsync.core.config import ServerConfig, SyncSettings
from craftsync.core.diff import classify
from craftsync.core.errors import (
    CallTimeout,
    ChannelClosed,
    ObjectNotFoundError,
    ProtocolError,
    StorageError,
    SyncError,
)
from craftsync.core.fingerprint import (
    CHUNK_SIZE,
    fingerprint_bytes,
    fingerprint_file,
    fingerprint_file_set,
)
from craftsync.core.protocol import CHECK_FILES_UPDATE, GET_FILE_DIFF, Message
from craftsync.core.scanner import scan_tree
from craftsync.core.types import DiffResult, FileEntry, FileSet, SyncState

__all__ = [
    # Config
    "ServerConfig",
    "SyncSettings",
    # Diff
    "classify",
    # Errors
    "CallTimeout",
    "ChannelClosed",
    "ObjectNotFoundError",
    "ProtocolError",
    "StorageError",
    "SyncError",
    # Fingerprints
    "CHUNK_SIZE",
    "fingerprint_bytes",
    "fingerprint_file",
    "fingerprint_file_set",
    # Protocol
    "CHECK_FILES_UPDATE",
    "GET_FILE_DIFF",
    "Message",
    # Scanning
    "scan_tree",
    # Types
    "DiffResult",
    "FileEntry",
    "FileSet",
    "SyncState",
]
