"""
Message record type returned by produce and consume.
"""

import base64
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from dbqueue.errors import ScanError


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Record:
    """
    A committed queue message.

    The payload is carried as the exact bytes given to produce; the broker
    never interprets it.
    """

    msg_id: int
    enqueued_at: datetime
    visible_at: datetime
    message: bytes

    @classmethod
    def from_row(cls, row: Any) -> "Record":
        """
        Decode a result row into a record.

        Args:
            row: A row exposing msg_id, enqueued_at, visible_at and message.

        Returns:
            The decoded Record.

        Raises:
            ScanError: If a column is missing or has an unexpected type.
        """
        try:
            msg_id = row.msg_id
            enqueued_at = row.enqueued_at
            visible_at = row.visible_at
            message = row.message
        except AttributeError as e:
            raise ScanError(f"Row is missing a queue column: {e}") from e

        if not isinstance(msg_id, int) or isinstance(msg_id, bool):
            raise ScanError(f"Invalid msg_id {msg_id!r}")
        if not isinstance(enqueued_at, datetime) or not isinstance(visible_at, datetime):
            raise ScanError(f"Invalid timestamps on message {msg_id}")
        if isinstance(message, memoryview):
            message = message.tobytes()
        if not isinstance(message, bytes):
            raise ScanError(f"Invalid payload type {type(message).__name__} on message {msg_id}")

        return cls(
            msg_id=msg_id,
            enqueued_at=ensure_utc(enqueued_at),
            visible_at=ensure_utc(visible_at),
            message=message,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Render the record for JSON-lines output.

        Payloads holding a JSON document are embedded as-is; other UTF-8
        text is emitted as a string and anything else as base64.
        """
        try:
            text = self.message.decode("utf-8")
        except UnicodeDecodeError:
            payload: Any = {"base64": base64.b64encode(self.message).decode("ascii")}
        else:
            try:
                payload = json.loads(text)
            except ValueError:
                payload = text

        return {
            "msg_id": self.msg_id,
            "enqueued_at": self.enqueued_at.isoformat(),
            "visible_at": self.visible_at.isoformat(),
            "message": payload,
        }

    def to_json(self) -> str:
        """Serialize the record as one JSON line."""
        return json.dumps(self.to_dict(), separators=(",", ":"))
