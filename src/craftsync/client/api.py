"""HTTP client for the CraftSync file endpoints.

This module provides:
- TransferClient: async client used by the transfer orchestrator
- File creation, replacement, download and listing

Every transport or HTTP failure surfaces as StorageError so that the
orchestrator can record it per file and move on.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path
from urllib.parse import quote

import httpx

from craftsync.core.config import ServerConfig
from craftsync.core.errors import ObjectNotFoundError, ProtocolError, StorageError
from craftsync.core.types import FileSet

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".craftsync-part"


def _file_url(path: str) -> str:
    return f"/file/{quote(path)}"


def _download_url(path: str) -> str:
    return f"/file/download/{quote(path)}"


def _detail(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or default
    if isinstance(data, dict):
        return str(data.get("detail", default))
    return default


class TransferClient:
    """Async HTTP client for moving file bytes to and from the server."""

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transfer client.

        Args:
            config: Server configuration (URL, timeout, SSL verification).
            transport: Optional custom transport (used by tests to talk to
                an in-process ASGI app).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> TransferClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    def _handle_response(self, response: httpx.Response, path: str | None) -> httpx.Response:
        """Raise StorageError for error responses."""
        if response.status_code == 404:
            raise ObjectNotFoundError(
                _detail(response, f"Object not found: {path}"), path, 404
            )
        if response.status_code >= 400:
            raise StorageError(
                _detail(response, "Unknown error"), path, response.status_code
            )
        return response

    async def _send(self, method: str, url: str, path: str | None, **kwargs: object) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except httpx.HTTPError as e:
            raise StorageError(f"{method} {url} failed: {e}", path) from e
        return self._handle_response(response, path)

    # === Health check ===

    async def health_check(self) -> bool:
        """Check if the server is healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    # === File operations ===

    async def list_files(self) -> FileSet:
        """List every object stored on the server.

        Returns:
            Remote snapshot.

        Raises:
            StorageError: If the request fails or the listing is malformed.
        """
        response = await self._send("GET", "/file", None)
        try:
            return FileSet.from_wire(response.json())
        except (ValueError, ProtocolError) as e:
            raise StorageError(f"Invalid file listing: {e}") from e

    async def create_file(self, path: str, data: bytes) -> None:
        """Create a new object.

        Raises:
            StorageError: If the object already exists (409) or the request fails.
        """
        await self._send("POST", _file_url(path), path, content=data)

    async def replace_file(self, path: str, data: bytes) -> None:
        """Replace the content of an existing object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageError: If the request fails.
        """
        await self._send("PUT", _file_url(path), path, content=data)

    async def download_file(self, path: str, destination: Path) -> int:
        """Stream an object into a local file.

        Writes to a temporary sibling first and renames it into place once
        the body is complete, so an interrupted download never leaves a
        truncated file behind.

        Args:
            path: Relative object path.
            destination: Absolute local target; parents are created.

        Returns:
            Number of bytes written.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageError: If the request fails.
            OSError: If the local file cannot be written.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = destination.with_name(destination.name + PARTIAL_SUFFIX)
        written = 0

        try:
            async with self._client.stream("GET", _download_url(path)) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._handle_response(response, path)
                with open(tmp_path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                        written += len(chunk)
            os.replace(tmp_path, destination)
        except httpx.HTTPError as e:
            raise StorageError(f"Download of {path} failed: {e}", path) from e
        finally:
            if tmp_path.exists():
                with contextlib.suppress(OSError):
                    tmp_path.unlink()

        logger.debug("Downloaded %s (%d bytes)", path, written)
        return written
