"""Tests for directory scanning."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path

import pytest

from craftsync.core.fingerprint import fingerprint_bytes
from craftsync.core.scanner import scan_file, scan_tree


class TestScanTree:
    """Tests for scan_tree()."""

    def test_empty_directory(self, tmp_path: Path) -> None:
        """An empty tree yields an empty FileSet."""
        assert len(scan_tree(tmp_path)) == 0

    def test_nested_files_and_dotfiles(self, tmp_path: Path) -> None:
        """Nested files and dotfiles are included with relative paths."""
        (tmp_path / "a.txt").write_bytes(b"a")
        (tmp_path / ".hidden").write_bytes(b"h")
        (tmp_path / "sub" / "deep").mkdir(parents=True)
        (tmp_path / "sub" / "deep" / "b.bin").write_bytes(b"bb")

        fs = scan_tree(tmp_path)

        assert fs.paths() == {"a.txt", ".hidden", "sub/deep/b.bin"}
        assert fs.get("sub/deep/b.bin").fingerprint == fingerprint_bytes(b"bb")  # type: ignore[union-attr]

    def test_directories_not_listed(self, tmp_path: Path) -> None:
        """Empty directories produce no entries."""
        (tmp_path / "empty" / "dir").mkdir(parents=True)
        assert len(scan_tree(tmp_path)) == 0

    def test_symlinks_skipped(self, tmp_path: Path) -> None:
        """Symbolic links are not followed or listed."""
        target = tmp_path / "real.txt"
        target.write_bytes(b"x")
        try:
            (tmp_path / "link.txt").symlink_to(target)
        except OSError:
            pytest.skip("Symlinks not supported")

        assert scan_tree(tmp_path).paths() == {"real.txt"}

    def test_modified_at_from_mtime(self, tmp_path: Path) -> None:
        """Timestamps come from the file's mtime, in UTC."""
        f = tmp_path / "a.txt"
        f.write_bytes(b"a")
        os.utime(f, (1_700_000_000, 1_700_000_000))

        entry = scan_tree(tmp_path).get("a.txt")

        assert entry is not None
        assert entry.modified_at == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    def test_accepts_string_root(self, tmp_path: Path) -> None:
        """The root may be given as a string."""
        (tmp_path / "a").write_bytes(b"")
        assert scan_tree(str(tmp_path)).paths() == {"a"}


class TestScanFile:
    """Tests for scan_file()."""

    def test_vanished_file_raises(self, tmp_path: Path) -> None:
        """A file that is gone raises OSError."""
        with pytest.raises(OSError):
            scan_file(tmp_path, tmp_path / "gone.txt")

    def test_vanished_file_left_out_of_tree(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Per-file errors drop the entry instead of failing the scan."""
        (tmp_path / "ok.txt").write_bytes(b"ok")
        (tmp_path / "bad.txt").write_bytes(b"bad")

        import craftsync.core.scanner as scanner

        real = scanner.fingerprint_file

        def flaky(path: Path, chunk_size: int) -> str:
            if Path(path).name == "bad.txt":
                raise PermissionError("denied")
            return real(path, chunk_size)

        monkeypatch.setattr(scanner, "fingerprint_file", flaky)

        assert scan_tree(tmp_path).paths() == {"ok.txt"}
