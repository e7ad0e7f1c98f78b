"""Reconciliation engine.

Architecture:
    ChangeWatcher → ReconciliationCoordinator → TransferOrchestrator

Components:
- **ChangeWatcher**: Watches the folder, debounces events, reports settled snapshots
- **CorrelationChannel**: Request/response calls over the WebSocket
- **ReconciliationCoordinator**: Probe, diff and transfer state machine
- **TransferOrchestrator**: Batched concurrent uploads/updates/downloads
- **SyncSession**: Connection lifecycle and reconnection

All public symbols are re-exported here.
"""

from craftsync.client.sync.channel import (
    CorrelationChannel,
    MessageTransport,
    WebSocketTransport,
)
from craftsync.client.sync.coordinator import ReconciliationCoordinator
from craftsync.client.sync.session import SyncSession
from craftsync.client.sync.transfers import (
    DEFAULT_BATCH_SIZE,
    TransferBackend,
    TransferOrchestrator,
    batched,
)
from craftsync.client.sync.types import (
    CoordinatorState,
    CoordinatorStats,
    SettledCallback,
    TransferFailure,
    TransferReport,
    TransferType,
)
from craftsync.client.sync.watcher import ChangeWatcher

__all__ = [
    # Channel
    "CorrelationChannel",
    "MessageTransport",
    "WebSocketTransport",
    # Coordinator
    "ReconciliationCoordinator",
    "CoordinatorState",
    "CoordinatorStats",
    # Session
    "SyncSession",
    # Transfers
    "DEFAULT_BATCH_SIZE",
    "TransferBackend",
    "TransferOrchestrator",
    "TransferFailure",
    "TransferReport",
    "TransferType",
    "batched",
    # Watcher
    "ChangeWatcher",
    "SettledCallback",
]
