"""Tests for object storage backends."""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from craftsync.core.errors import ObjectNotFoundError, StorageError
from craftsync.core.fingerprint import CHUNK_SIZE, fingerprint_bytes
from craftsync.server.storage import (
    STAGING_DIR,
    LocalFSObjectStore,
    S3ObjectStore,
    create_storage,
)


class TestLocalFSObjectStore:
    """Tests for LocalFSObjectStore."""

    @pytest.fixture
    def storage(self, tmp_path: Path) -> LocalFSObjectStore:
        """Create a LocalFSObjectStore instance for testing."""
        return LocalFSObjectStore(tmp_path / "objects")

    def test_put_and_stream(self, storage: LocalFSObjectStore) -> None:
        """Should store and stream back object content."""
        storage.put_object("dir/a.txt", b"hello")

        assert storage.exists("dir/a.txt")
        assert b"".join(storage.get_object_stream("dir/a.txt")) == b"hello"

    def test_put_replaces(self, storage: LocalFSObjectStore) -> None:
        """Should replace existing content."""
        storage.put_object("a.txt", b"v1")
        storage.put_object("a.txt", b"v2")

        assert b"".join(storage.get_object_stream("a.txt")) == b"v2"

    def test_list_objects_fingerprints(self, storage: LocalFSObjectStore) -> None:
        """Listing fingerprints match the client's fingerprint engine."""
        storage.put_object("a.txt", b"aaa")
        storage.put_object("sub/b.txt", b"")

        listing = storage.list_objects()

        assert listing.paths() == {"a.txt", "sub/b.txt"}
        assert listing.get("a.txt").fingerprint == fingerprint_bytes(b"aaa")  # type: ignore[union-attr]
        assert listing.get("sub/b.txt").fingerprint == fingerprint_bytes(b"")  # type: ignore[union-attr]

    def test_list_ignores_unfinished_uploads(
        self, storage: LocalFSObjectStore, tmp_path: Path
    ) -> None:
        """Files in the staging directory are not listed."""
        storage.put_object("a.txt", b"x")
        staging = tmp_path / "objects" / STAGING_DIR
        staging.mkdir(exist_ok=True)
        (staging / "partial").write_bytes(b"partial")

        assert storage.list_objects().paths() == {"a.txt"}

    def test_staging_path_reserved(self, storage: LocalFSObjectStore) -> None:
        """Object paths inside the staging directory are refused everywhere."""
        with pytest.raises(StorageError) as exc_info:
            storage.put_object(f"{STAGING_DIR}/a.txt", b"x")
        assert exc_info.value.status_code == 400
        with pytest.raises(StorageError):
            storage.exists(f"{STAGING_DIR}/a.txt")

    def test_temporary_looking_names_are_objects(self, storage: LocalFSObjectStore) -> None:
        """Any other name is listed exactly as it exists."""
        storage.put_object("b.txt.tmp-upload", b"x")

        assert storage.exists("b.txt.tmp-upload")
        assert storage.list_objects().paths() == {"b.txt.tmp-upload"}

    def test_delete(self, storage: LocalFSObjectStore, tmp_path: Path) -> None:
        """Should delete objects and prune empty directories."""
        storage.put_object("dir/nested/a.txt", b"x")

        assert storage.delete_object("dir/nested/a.txt") is True
        assert not storage.exists("dir/nested/a.txt")
        assert not (tmp_path / "objects" / "dir").exists()
        assert storage.delete_object("dir/nested/a.txt") is False

    def test_missing_object(self, storage: LocalFSObjectStore) -> None:
        """Should raise ObjectNotFoundError for unknown objects."""
        with pytest.raises(ObjectNotFoundError):
            storage.get_object_stream("nope.txt")

    @pytest.mark.parametrize("path", ["../escape.txt", "/etc/passwd", ""])
    def test_unsafe_paths_rejected(self, storage: LocalFSObjectStore, path: str) -> None:
        """Should refuse paths outside the base directory."""
        with pytest.raises(StorageError):
            storage.put_object(path, b"x")

    def test_location(self, storage: LocalFSObjectStore, tmp_path: Path) -> None:
        """Should describe where objects live."""
        assert str(tmp_path / "objects") in storage.location


class TestS3ObjectStore:
    """Tests for S3ObjectStore using moto mock."""

    @pytest.fixture
    def mock_s3(self) -> Generator[None, None, None]:
        """Set up moto mock for S3."""
        pytest.importorskip("moto")
        import boto3
        from moto import mock_aws

        with mock_aws():
            client = boto3.client("s3", region_name="us-east-1")
            client.create_bucket(Bucket="test-bucket")
            yield

    @pytest.fixture
    def storage(self, mock_s3: None) -> S3ObjectStore:
        """Create an S3ObjectStore instance for testing."""
        return S3ObjectStore(bucket="test-bucket", prefix="sync", region="us-east-1")

    def test_put_and_stream(self, storage: S3ObjectStore) -> None:
        """Should store and stream back object content."""
        storage.put_object("dir/a.txt", b"hello")

        assert storage.exists("dir/a.txt")
        assert b"".join(storage.get_object_stream("dir/a.txt")) == b"hello"

    def test_listing_strips_prefix(self, storage: S3ObjectStore) -> None:
        """Listed paths are relative to the prefix."""
        storage.put_object("a.txt", b"a")
        storage.put_object("dir/b.txt", b"b")

        assert storage.list_objects().paths() == {"a.txt", "dir/b.txt"}

    def test_single_part_etag_matches_fingerprint(self, storage: S3ObjectStore) -> None:
        """Small objects list with the client's single-part fingerprint."""
        storage.put_object("a.txt", b"content")

        entry = storage.list_objects().get("a.txt")
        assert entry is not None
        assert entry.fingerprint == fingerprint_bytes(b"content")
        assert entry.modified_at.tzinfo is not None

    def test_multipart_etag_matches_fingerprint(self, storage: S3ObjectStore) -> None:
        """Objects above one chunk list with the client's multipart fingerprint."""
        data = os.urandom(CHUNK_SIZE + 1024)
        storage.put_object("big.bin", data)

        entry = storage.list_objects().get("big.bin")
        assert entry is not None
        assert entry.fingerprint == fingerprint_bytes(data)
        assert entry.fingerprint.endswith('-2"')

    def test_listing_skips_unusable_keys(
        self, storage: S3ObjectStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Keys that escape the prefix or collide after normalization are skipped."""
        modified = datetime(2024, 1, 1, tzinfo=UTC)
        contents = [
            {"Key": f"sync/{key}", "LastModified": modified, "ETag": '"etag"'}
            for key in ("../evil.txt", "a//b.txt", "a/b.txt", "ok.txt")
        ]
        fake_client = MagicMock()
        fake_client.get_paginator.return_value.paginate.return_value = [{"Contents": contents}]
        monkeypatch.setattr(storage, "_client", fake_client)

        assert storage.list_objects().paths() == {"a/b.txt", "ok.txt"}

    def test_delete(self, storage: S3ObjectStore) -> None:
        """Should delete existing objects only."""
        storage.put_object("a.txt", b"x")

        assert storage.delete_object("a.txt") is True
        assert not storage.exists("a.txt")
        assert storage.delete_object("a.txt") is False

    def test_missing_object(self, storage: S3ObjectStore) -> None:
        """Should raise ObjectNotFoundError for unknown objects."""
        with pytest.raises(ObjectNotFoundError):
            storage.get_object_stream("nope.txt")

    def test_missing_bucket(self, mock_s3: None) -> None:
        """Listing an unknown bucket is a StorageError."""
        storage = S3ObjectStore(bucket="no-such-bucket", region="us-east-1")
        with pytest.raises(StorageError):
            storage.list_objects()


class TestCreateStorage:
    """Tests for create_storage factory."""

    def test_local(self, tmp_path: Path) -> None:
        """Should create local storage by default."""
        storage = create_storage({"type": "local", "local_path": str(tmp_path / "s")})
        assert isinstance(storage, LocalFSObjectStore)

    def test_s3_requires_bucket(self) -> None:
        """Should require a bucket for S3."""
        with pytest.raises(ValueError, match="bucket"):
            create_storage({"type": "s3"})

    def test_s3(self) -> None:
        """Should create S3 storage with a bucket."""
        pytest.importorskip("moto")
        from moto import mock_aws

        with mock_aws():
            storage = create_storage({"type": "s3", "bucket": "my-bucket", "prefix": "p/"})
            assert isinstance(storage, S3ObjectStore)
            assert "my-bucket/p/" in storage.location

    def test_unknown_type(self) -> None:
        """Should reject unknown storage types."""
        with pytest.raises(ValueError, match="Unknown storage type"):
            create_storage({"type": "ftp"})
