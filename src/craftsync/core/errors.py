"""Error taxonomy shared by client and server.

Local filesystem failures are plain ``OSError`` and are handled per entry;
everything that crosses the wire or the object store has its own class here.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync errors."""


class ChannelClosed(SyncError):
    """The message channel is unavailable; the current cycle must abort."""


class CallTimeout(ChannelClosed):
    """No response arrived for a request within the call timeout."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"No response to {operation!r} within {timeout:.1f}s")


class ProtocolError(SyncError):
    """A message or response payload does not match the protocol."""


class StorageError(SyncError):
    """A remote object store operation failed.

    Attributes:
        path: Relative path of the object involved, if any.
        status_code: HTTP status code when the failure came from the server.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class ObjectNotFoundError(StorageError):
    """The requested object does not exist in the store."""
