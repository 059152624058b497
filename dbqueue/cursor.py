"""
Delivery cursor.

The cursor is the position of the last message already offered to the
consumer: its visibility deadline plus its msg_id. Rows of one batch share a
deadline, so the deadline alone cannot tell a delivered row from an
undelivered one. The msg_id breaks the tie.

A cursor is owned by exactly one broker instance and only ever moves forward
on its own; an explicit reset is the only way back.
"""

from datetime import datetime
from typing import NamedTuple

from dbqueue.constants import EARLIEST_TIMESTAMP
from dbqueue.types.record import ensure_utc


class Position(NamedTuple):
    """
    A point in delivery order.

    msg_id None means past every message at visible_at, which is what a
    bare timestamp (e.g. --last-vt) asks for.
    """

    visible_at: datetime
    msg_id: int | None = None


class Cursor:
    """Monotonic watermark over (visible_at, msg_id)."""

    def __init__(self, value: datetime | None = None, msg_id: int | None = None):
        self._value = EARLIEST_TIMESTAMP if value is None else ensure_utc(value)
        self._msg_id = msg_id

    @property
    def value(self) -> datetime:
        return self._value

    @property
    def msg_id(self) -> int | None:
        return self._msg_id

    @property
    def position(self) -> Position:
        return Position(self._value, self._msg_id)

    def advance(self, visible_at: datetime, msg_id: int) -> bool:
        """
        Move the cursor forward to a delivered message.

        Args:
            visible_at: Deadline of the last delivered message.
            msg_id: Identifier of the last delivered message.

        Returns:
            True if the cursor moved, False if the message was not later.
        """
        visible_at = ensure_utc(visible_at)
        if visible_at > self._value:
            later = True
        elif visible_at == self._value:
            later = self._msg_id is not None and msg_id > self._msg_id
        else:
            later = False

        if later:
            self._value = visible_at
            self._msg_id = msg_id
        return later

    def reset(self, value: datetime, msg_id: int | None = None) -> None:
        """Set the cursor unconditionally, e.g. when restoring a checkpoint."""
        self._value = ensure_utc(value)
        self._msg_id = msg_id

    def __repr__(self) -> str:
        return f"Cursor({self._value.isoformat()}, msg_id={self._msg_id})"
