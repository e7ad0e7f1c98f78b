"""Message envelope of the sync protocol.

Every message in either direction is a JSON object
``{"operation": <name>, "payload": <any JSON value>}``. Replies carry the
operation name of the request they answer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from craftsync.core.errors import ProtocolError

CHECK_FILES_UPDATE = "check-files-update"
GET_FILE_DIFF = "get-file-diff"

OPERATIONS = frozenset({CHECK_FILES_UPDATE, GET_FILE_DIFF})


@dataclass(frozen=True)
class Message:
    """A decoded protocol envelope."""

    operation: str
    payload: Any

    def encode(self) -> str:
        """Serialize to JSON text."""
        return json.dumps({"operation": self.operation, "payload": self.payload})

    @classmethod
    def decode(cls, raw: str | bytes) -> Message:
        """Parse JSON text into a Message.

        Raises:
            ProtocolError: If the text is not a valid envelope.
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ProtocolError("Message must be a JSON object")
        operation = data.get("operation")
        if not isinstance(operation, str) or not operation:
            raise ProtocolError("Message has no operation")
        if "payload" not in data:
            raise ProtocolError(f"Message {operation!r} has no payload")
        return cls(operation=operation, payload=data["payload"])


def parse_update_flag(payload: Any) -> bool:
    """Extract the ``update`` flag of a check-files-update reply.

    Raises:
        ProtocolError: If the payload does not carry a boolean flag.
    """
    if not isinstance(payload, dict):
        raise ProtocolError(f"Expected an object, got {type(payload).__name__}")
    if "error" in payload:
        raise ProtocolError(f"Server rejected request: {payload['error']}")
    update = payload.get("update")
    if not isinstance(update, bool):
        raise ProtocolError(f"Reply has no boolean 'update': {payload!r}")
    return update
