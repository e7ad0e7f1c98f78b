"""Shared configuration classes for craftsync.

This module defines configuration classes used by both client and server components.
"""

from __future__ import annotations

from dataclasses import dataclass

from craftsync.core.fingerprint import CHUNK_SIZE


@dataclass
class ServerConfig:
    """Configuration for connecting to a CraftSync server.

    Used by both the HTTP transfer client and the WebSocket session
    to ensure consistent connection settings.

    Attributes:
        server_url: Base URL of the server (e.g., "https://sync.example.com").
        timeout: Request/connection timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")
        if "://" not in self.server_url:
            self.server_url = f"http://{self.server_url}"

    @property
    def ws_url(self) -> str:
        """Get the WebSocket URL carrying the sync protocol.

        Returns:
            WebSocket URL of the sync endpoint.
        """
        url = self.server_url
        if url.startswith("https://"):
            url = "wss://" + url[8:]
        elif url.startswith("http://"):
            url = "ws://" + url[7:]
        return f"{url}/ws"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS/WSS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class SyncSettings:
    """Timing and sizing knobs of the reconciliation engine.

    Attributes:
        debounce_s: Quiet period after the last filesystem event before a scan.
        safety_interval_s: Interval of the unconditional re-scan.
        batch_size: Maximum number of concurrent transfers.
        call_timeout: Upper bound for one request/response exchange.
        reconnect_delay: Delay between WebSocket reconnection attempts.
        chunk_size: Read size used by the fingerprint engine.
    """

    debounce_s: float = 1.0
    safety_interval_s: float = 60.0
    batch_size: int = 50
    call_timeout: float = 30.0
    reconnect_delay: float = 5.0
    chunk_size: int = CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.debounce_s < 0:
            raise ValueError("debounce_s must not be negative")
        if self.safety_interval_s <= 0:
            raise ValueError("safety_interval_s must be positive")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.call_timeout <= 0:
            raise ValueError("call_timeout must be positive")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
