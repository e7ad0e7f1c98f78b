"""Object storage backends for synchronized files.

This module provides:
- Abstract interface for object storage
- LocalFSObjectStore for development/testing
- S3ObjectStore for production (OVH, AWS, MinIO)

Both backends report fingerprints with the same shape as the client's
fingerprint engine, so listings can be compared with client snapshots
byte-for-byte.
"""

from __future__ import annotations

import contextlib
import io
import logging
import os
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import UTC
from pathlib import Path
from typing import TYPE_CHECKING

from craftsync.core.errors import ObjectNotFoundError, StorageError
from craftsync.core.fingerprint import CHUNK_SIZE
from craftsync.core.scanner import scan_tree
from craftsync.core.types import FileEntry, FileSet, normalize_path

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024
# Reserved top-level directory holding unfinished uploads
STAGING_DIR = ".craftsync-staging"


class ObjectStore(ABC):
    """Abstract interface for the durable file store."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where objects are stored."""

    @abstractmethod
    def put_object(self, path: str, data: bytes) -> None:
        """Store an object, replacing any previous content.

        Args:
            path: Relative object path.
            data: Object content.

        Raises:
            StorageError: If the object cannot be written.
        """

    @abstractmethod
    def list_objects(self) -> FileSet:
        """List all objects.

        Returns:
            Snapshot of every stored object.

        Raises:
            StorageError: If the listing fails.
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if an object exists."""

    @abstractmethod
    def delete_object(self, path: str) -> bool:
        """Delete an object.

        Returns:
            True if the object was deleted, False if it didn't exist.
        """

    @abstractmethod
    def get_object_stream(self, path: str) -> Iterator[bytes]:
        """Stream an object's content.

        Raises:
            ObjectNotFoundError: If the object doesn't exist.
        """


class LocalFSObjectStore(ObjectStore):
    """Local filesystem storage for development and testing.

    Objects are stored as plain files at their relative path below the base
    directory. Uploads are written into STAGING_DIR first and renamed into
    place, so that directory name is not available as an object path.
    """

    def __init__(self, base_path: Path | str, chunk_size: int = CHUNK_SIZE) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for object storage.
            chunk_size: Part size used when fingerprinting objects.
        """
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._chunk_size = chunk_size

    @property
    def location(self) -> str:
        """Return the local storage path."""
        return f"Local filesystem: {self._base_path}"

    def _object_path(self, path: str) -> Path:
        """Get the file path for an object, refusing paths outside the base."""
        try:
            normalized = normalize_path(path)
        except ValueError as e:
            raise StorageError(str(e), path, status_code=400) from e
        if normalized.split("/", 1)[0] == STAGING_DIR:
            raise StorageError(f"Path is reserved: {path}", path, status_code=400)
        return self._base_path / normalized

    def put_object(self, path: str, data: bytes) -> None:
        """Store an object atomically."""
        target = self._object_path(path)
        staging = self._base_path / STAGING_DIR
        tmp_path = staging / uuid.uuid4().hex
        try:
            staging.mkdir(exist_ok=True)
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, target)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise StorageError(f"Cannot write {path}: {e}", path) from e

    def list_objects(self) -> FileSet:
        """List all objects with their fingerprints, skipping unfinished uploads."""
        return FileSet.from_entries(
            entry
            for entry in scan_tree(self._base_path, self._chunk_size)
            if entry.path.split("/", 1)[0] != STAGING_DIR
        )

    def exists(self, path: str) -> bool:
        """Check if an object exists."""
        return self._object_path(path).is_file()

    def delete_object(self, path: str) -> bool:
        """Delete an object and prune emptied directories."""
        target = self._object_path(path)
        if not target.is_file():
            return False
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Cannot delete {path}: {e}", path) from e

        parent = target.parent
        while parent != self._base_path:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent
        return True

    def get_object_stream(self, path: str) -> Iterator[bytes]:
        """Stream an object's content from disk."""
        target = self._object_path(path)
        try:
            f = open(target, "rb")  # noqa: SIM115 - closed by the generator
        except FileNotFoundError as e:
            raise ObjectNotFoundError(f"Object not found: {path}", path) from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}", path) from e
        return self._iter_file(f)

    @staticmethod
    def _iter_file(f: io.BufferedReader) -> Iterator[bytes]:
        with f:
            while chunk := f.read(STREAM_CHUNK_SIZE):
                yield chunk


class S3ObjectStore(ObjectStore):
    """S3-compatible storage for production (OVH, AWS, MinIO, etc.)."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name.
            prefix: Key prefix under which objects are stored.
            endpoint_url: Custom endpoint URL (for OVH, MinIO, etc.).
            access_key: AWS access key ID.
            secret_key: AWS secret access key.
            region: AWS region (default: us-east-1).
            chunk_size: Multipart part size; must match the clients'
                fingerprint chunk size for ETags to be comparable.
        """
        import boto3
        from boto3.s3.transfer import TransferConfig

        self._bucket = bucket
        self._prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""
        self._endpoint_url = endpoint_url
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )
        # A file of exactly one chunk has a single-part fingerprint, so
        # multipart must only start above one chunk.
        self._transfer_config = TransferConfig(
            multipart_threshold=chunk_size + 1,
            multipart_chunksize=chunk_size,
        )

    @property
    def location(self) -> str:
        """Return the S3 bucket location."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}/{self._bucket}/{self._prefix}"
        return f"S3: s3://{self._bucket}/{self._prefix}"

    def _key(self, path: str) -> str:
        """Get the S3 key for an object path."""
        try:
            return self._prefix + normalize_path(path)
        except ValueError as e:
            raise StorageError(str(e), path, status_code=400) from e

    def put_object(self, path: str, data: bytes) -> None:
        """Upload an object, using multipart above one chunk."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._client.upload_fileobj(
                io.BytesIO(data),
                self._bucket,
                self._key(path),
                Config=self._transfer_config,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Cannot upload {path}: {e}", path) from e

    def list_objects(self) -> FileSet:
        """List all objects under the prefix."""
        from botocore.exceptions import BotoCoreError, ClientError

        entries: dict[str, FileEntry] = {}
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self._bucket, Prefix=self._prefix):
                for obj in page.get("Contents", []):
                    key: str = obj["Key"]
                    if key.endswith("/"):
                        continue
                    try:
                        entry = FileEntry(
                            path=key[len(self._prefix):],
                            modified_at=obj["LastModified"].astimezone(UTC),
                            fingerprint=obj["ETag"],
                        )
                    except ValueError as e:
                        logger.warning("Skipping key %s: %s", key, e)
                        continue
                    if entry.path in entries:
                        logger.warning("Skipping key %s: duplicates %s", key, entry.path)
                        continue
                    entries[entry.path] = entry
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Cannot list bucket {self._bucket}: {e}") from e
        return FileSet.from_entries(entries.values())

    def exists(self, path: str) -> bool:
        """Check if an object exists."""
        from botocore.exceptions import ClientError

        try:
            self._client.head_object(Bucket=self._bucket, Key=self._key(path))
            return True
        except ClientError:
            return False

    def delete_object(self, path: str) -> bool:
        """Delete an object."""
        from botocore.exceptions import BotoCoreError, ClientError

        if not self.exists(path):
            return False
        try:
            self._client.delete_object(Bucket=self._bucket, Key=self._key(path))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Cannot delete {path}: {e}", path) from e
        return True

    def get_object_stream(self, path: str) -> Iterator[bytes]:
        """Stream an object's body."""
        from botocore.exceptions import ClientError

        try:
            response = self._client.get_object(Bucket=self._bucket, Key=self._key(path))
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                raise ObjectNotFoundError(f"Object not found: {path}", path) from e
            raise StorageError(f"Cannot read {path}: {e}", path) from e
        body_iter: Iterator[bytes] = response["Body"].iter_chunks(STREAM_CHUNK_SIZE)
        return body_iter


def create_storage(config: dict[str, str | None]) -> ObjectStore:
    """Factory function to create storage from configuration.

    Args:
        config: Storage configuration dict with keys:
            - type: "local" or "s3"
            - For local: local_path
            - For S3: bucket, prefix, endpoint_url, access_key, secret_key, region

    Returns:
        Configured ObjectStore instance.

    Raises:
        ValueError: If storage type is unknown.
    """
    storage_type = config.get("type", "local")

    if storage_type == "local":
        local_path = config.get("local_path") or "./storage"
        return LocalFSObjectStore(local_path)

    if storage_type == "s3":
        bucket = config.get("bucket")
        if not bucket:
            raise ValueError("S3 storage requires 'bucket' configuration")
        return S3ObjectStore(
            bucket=bucket,
            prefix=config.get("prefix") or "",
            endpoint_url=config.get("endpoint_url"),
            access_key=config.get("access_key"),
            secret_key=config.get("secret_key"),
            region=config.get("region") or "us-east-1",
        )

    raise ValueError(f"Unknown storage type: {storage_type}")
