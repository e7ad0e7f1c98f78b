"""WebSocket gateway answering the sync protocol.

Architecture:
    Client (sync session) ──ws /ws──► SyncGateway ──► ObjectStore
                                          │
                              (fingerprint + classify)

Each request is answered on the same connection with a message carrying the
request's operation name.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from craftsync.core.diff import classify
from craftsync.core.errors import ProtocolError, StorageError
from craftsync.core.fingerprint import fingerprint_file_set
from craftsync.core.protocol import CHECK_FILES_UPDATE, GET_FILE_DIFF, Message
from craftsync.core.types import FileSet

if TYPE_CHECKING:
    from craftsync.server.storage import ObjectStore

logger = logging.getLogger(__name__)


class SyncGateway:
    """Answers protocol requests against an object store.

    Storage calls are blocking and are run in the threadpool.
    """

    def __init__(self, storage: ObjectStore) -> None:
        self._storage = storage

    async def handle_message(self, raw: str | bytes) -> Message | None:
        """Handle one incoming message.

        Args:
            raw: Encoded envelope as received.

        Returns:
            The reply to send, or None if the message is dropped.
        """
        try:
            message = Message.decode(raw)
        except ProtocolError as e:
            logger.warning("Dropping undecodable message: %s", e)
            return None

        if message.operation == CHECK_FILES_UPDATE:
            handler = self._check_files_update
        elif message.operation == GET_FILE_DIFF:
            handler = self._get_file_diff
        else:
            logger.warning("Dropping unknown operation %r", message.operation)
            return None

        try:
            payload = await handler(message.payload)
        except (ProtocolError, StorageError) as e:
            logger.warning("Cannot answer %s: %s", message.operation, e)
            payload = {"error": str(e)}
        return Message(operation=message.operation, payload=payload)

    async def _remote_set(self) -> FileSet:
        remote: FileSet = await run_in_threadpool(self._storage.list_objects)
        return remote

    async def _check_files_update(self, payload: Any) -> dict[str, bool]:
        if not isinstance(payload, str):
            raise ProtocolError(
                f"Expected a fingerprint string, got {type(payload).__name__}"
            )
        remote = await self._remote_set()
        update = fingerprint_file_set(remote) != payload
        logger.debug("check-files-update: %d remote objects, update=%s", len(remote), update)
        return {"update": update}

    async def _get_file_diff(self, payload: Any) -> dict[str, list[dict[str, str]]]:
        local = FileSet.from_wire(payload)
        remote = await self._remote_set()
        diff = classify(local, remote)
        logger.info(
            "get-file-diff: %d upload, %d update, %d download",
            len(diff.to_upload),
            len(diff.to_update),
            len(diff.to_download),
        )
        return diff.to_wire()


# WebSocket router
router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def websocket_sync(websocket: WebSocket) -> None:
    """WebSocket endpoint for sync clients.

    Args:
        websocket: The WebSocket connection.
    """
    gateway = SyncGateway(websocket.app.state.storage)
    await websocket.accept()
    logger.info("Sync client connected: %s", websocket.client)

    try:
        while True:
            raw = await websocket.receive_text()
            reply = await gateway.handle_message(raw)
            if reply is not None:
                await websocket.send_text(reply.encode())
    except WebSocketDisconnect:
        logger.info("Sync client disconnected: %s", websocket.client)
    except Exception as e:
        logger.exception("Error in sync WebSocket: %s", e)
