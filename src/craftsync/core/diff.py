"""Three-way diff between a local and a remote FileSet."""

from __future__ import annotations

from craftsync.core.types import DiffResult, FileEntry, FileSet


def classify(local: FileSet, remote: FileSet) -> DiffResult:
    """Compute which files to upload, update and download.

    Content equality wins over metadata: entries with equal fingerprints
    are left alone whatever their timestamps. When fingerprints differ, the
    strictly newer side wins; equal timestamps produce no action.

    Args:
        local: Snapshot of the watched tree.
        remote: Snapshot of the object store.

    Returns:
        DiffResult with pairwise disjoint sets.
    """
    to_upload: list[FileEntry] = []
    to_update: list[FileEntry] = []
    to_download: list[FileEntry] = []

    for entry in local:
        other = remote.get(entry.path)
        if other is None:
            to_upload.append(entry)
        elif entry.fingerprint != other.fingerprint and entry.modified_at > other.modified_at:
            to_update.append(entry)

    for entry in remote:
        other = local.get(entry.path)
        if other is None:
            to_download.append(entry)
        elif entry.fingerprint != other.fingerprint and entry.modified_at > other.modified_at:
            to_download.append(entry)

    return DiffResult(
        to_upload=FileSet.from_entries(to_upload),
        to_update=FileSet.from_entries(to_update),
        to_download=FileSet.from_entries(to_download),
    )
