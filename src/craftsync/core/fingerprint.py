"""Content fingerprints for files and file sets.

This module provides:
- fingerprint_file: per-file content token, shaped like an S3 ETag
  (single MD5 for files up to one chunk, ``md5-of-md5s-N`` above that)
- fingerprint_file_set: order-independent token for a whole snapshot,
  used for the cheap "did anything change" probe
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from craftsync.core.types import FileEntry

# Part size used by S3 multipart uploads; fingerprints only match S3 ETags
# when both sides cut the content at the same offsets.
CHUNK_SIZE = 5 * 1024 * 1024  # 5 MB

FILE_SET_SEPARATOR = ";"


def _quote(digest: str) -> str:
    return f'"{digest}"'


def fingerprint_chunks(chunks: Iterable[bytes]) -> str:
    """Compute the fingerprint of content delivered as consecutive chunks.

    Args:
        chunks: Non-empty byte chunks, in order.

    Returns:
        Quoted hex token; multipart contents carry a ``-<count>`` suffix.
    """
    digests = [hashlib.md5(chunk).digest() for chunk in chunks if chunk]

    if not digests:
        return _quote(hashlib.md5(b"").hexdigest())

    if len(digests) == 1:
        return _quote(digests[0].hex())

    combined = hashlib.md5(b"".join(digests)).hexdigest()
    return _quote(f"{combined}-{len(digests)}")


def _read_chunks(path: Path, chunk_size: int) -> Iterable[bytes]:
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            yield chunk


def fingerprint_file(path: Path | str, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the content fingerprint of a file.

    Args:
        path: File to read.
        chunk_size: Read size; must match the store's multipart part size.

    Returns:
        Fingerprint token.

    Raises:
        OSError: If the file cannot be opened or disappears mid-read.
    """
    return fingerprint_chunks(_read_chunks(Path(path), chunk_size))


def fingerprint_bytes(data: bytes, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the fingerprint of in-memory content."""
    return fingerprint_chunks(
        data[offset : offset + chunk_size] for offset in range(0, len(data), chunk_size)
    )


def fingerprint_file_set(entries: Iterable[FileEntry]) -> str:
    """Compute the aggregate fingerprint of a set of entries.

    Each entry contributes ``path~fingerprint``; the strings are sorted
    so the result does not depend on enumeration order.

    Args:
        entries: File entries of one snapshot.

    Returns:
        Hex-encoded SHA-256 digest (64 characters).
    """
    parts = sorted(f"{entry.path}~{entry.fingerprint}" for entry in entries)
    return hashlib.sha256(FILE_SET_SEPARATOR.join(parts).encode("utf-8")).hexdigest()
