"""
Cursor checkpointing.

The broker keeps its cursor in memory only. Consumers that need to resume
after a restart save the cursor between polls and hand it back to a new
broker on startup.

A checkpoint file holds the cursor timestamp on its first line and, when
known, the last delivered msg_id at that timestamp on the second.
"""

import contextlib
import logging
import os
import tempfile
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path

from dbqueue.cursor import Position
from dbqueue.errors import CheckpointError
from dbqueue.types.record import ensure_utc

logger = logging.getLogger(__name__)


def parse_timestamp(text: str) -> datetime:
    """
    Parse a cursor timestamp.

    Accepts RFC 3339 / ISO 8601 ("2024-01-02T15:04:05.123456Z") and
    RFC 1123 with a named or numeric zone ("Tue, 02 Jan 2024 15:04:05 GMT",
    "Tue, 02 Jan 2024 15:04:05 -0700"). Values without a zone are UTC.

    Args:
        text: The timestamp text.

    Returns:
        A timezone-aware UTC datetime.

    Raises:
        CheckpointError: If the text matches none of the formats.
    """
    value = text.strip()
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        pass

    try:
        return ensure_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError):
        pass

    raise CheckpointError(f"Failed to parse time from {text!r}")


def format_timestamp(value: datetime) -> str:
    """Format a cursor as RFC 3339 with microseconds, in UTC."""
    return ensure_utc(value).isoformat(timespec="microseconds")


class FileCheckpoint:
    """Cursor checkpoint kept in a small text file."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def load(self) -> Position | None:
        """
        Read the saved cursor position.

        Returns:
            The saved position, or None if nothing has been saved yet.

        Raises:
            CheckpointError: If the file exists but cannot be parsed.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        if not text.strip():
            return None

        lines = text.strip().splitlines()
        if len(lines) > 2:
            raise CheckpointError(f"Unexpected checkpoint content in {self.path}")

        msg_id = None
        if len(lines) == 2:
            try:
                msg_id = int(lines[1])
            except ValueError as e:
                raise CheckpointError(f"Invalid msg_id in checkpoint {self.path}: {lines[1]!r}") from e
        return Position(parse_timestamp(lines[0]), msg_id)

    def save(self, value: datetime, msg_id: int | None = None) -> None:
        """
        Write the cursor position atomically.

        Args:
            value: The cursor timestamp.
            msg_id: Last delivered msg_id at that timestamp, if known.
        """
        content = format_timestamp(value) + "\n"
        if msg_id is not None:
            content += f"{msg_id}\n"

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

        logger.debug(
            "Saved checkpoint",
            extra={"path": str(self.path), "cursor": format_timestamp(value), "msg_id": msg_id},
        )
