"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from craftsync.core.types import FileEntry


class FileEntryResponse(BaseModel):
    """One stored object in a listing."""

    path: str
    modified_at: str = Field(serialization_alias="modifiedAt")
    fingerprint: str

    @classmethod
    def from_entry(cls, entry: FileEntry) -> FileEntryResponse:
        """Create from a FileEntry."""
        return cls(
            path=entry.path,
            modified_at=entry.modified_at.isoformat(),
            fingerprint=entry.fingerprint,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
