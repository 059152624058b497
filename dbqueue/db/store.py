"""
Queue store for database operations.
Implements the two data access patterns the broker is built on.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy import and_, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dbqueue.db.clock import clock_after, clock_now
from dbqueue.db.models import QueueMessage
from dbqueue.types.record import Record

logger = logging.getLogger(__name__)

_queue = QueueMessage.__table__

_RECORD_COLUMNS = (
    _queue.c.msg_id,
    _queue.c.enqueued_at,
    _queue.c.visible_at,
    _queue.c.message,
)


class QueueStore:
    """
    Store for queue table operations.

    Implements:
    - Batch insert with server-computed visibility deadlines
    - Read-only range select over visibility deadlines

    The store runs inside the caller's session and never commits; the
    transaction boundary belongs to the broker.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the store with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def insert(
        self,
        payloads: Sequence[bytes],
        delay: timedelta,
    ) -> list[Record]:
        """
        Insert a batch of payloads in a single statement.

        Every row gets enqueued_at = server now and
        visible_at = server now + delay.

        Args:
            payloads: The message payloads, in order.
            delay: How long the messages stay invisible.

        Returns:
            The inserted records in insertion order.

        Raises:
            ScanError: If a returned row cannot be decoded.
        """
        if not payloads:
            return []

        stmt = (
            insert(_queue)
            .values(
                [
                    {
                        "enqueued_at": clock_now(),
                        "visible_at": clock_after(delay),
                        "message": payload,
                    }
                    for payload in payloads
                ]
            )
            .returning(*_RECORD_COLUMNS)
        )

        result = await self._session.execute(stmt)
        records = sorted(
            (Record.from_row(row) for row in result.all()),
            key=lambda record: record.msg_id,
        )

        logger.debug(
            f"Inserted {len(records)} messages",
            extra={"message_count": len(records), "delay_seconds": delay.total_seconds()},
        )
        return records

    async def select_range(
        self,
        after: datetime,
        limit: int,
        after_msg_id: int | None = None,
    ) -> list[Record]:
        """
        Select messages that became visible after a watermark.

        Returns rows positioned after (after, after_msg_id) with
        visible_at <= server now, ordered by visible_at then msg_id. Without
        after_msg_id every row at exactly `after` is excluded. Nothing is
        locked or marked, so the same rows come back whenever the same
        watermark is queried again.

        Args:
            after: Lower bound on visible_at.
            limit: Maximum number of rows to return.
            after_msg_id: Last msg_id already seen at visible_at == after.

        Returns:
            The eligible records in delivery order.

        Raises:
            ScanError: If a returned row cannot be decoded.
        """
        if after_msg_id is None:
            lower_bound = _queue.c.visible_at > after
        else:
            lower_bound = or_(
                _queue.c.visible_at > after,
                and_(_queue.c.visible_at == after, _queue.c.msg_id > after_msg_id),
            )

        stmt = (
            select(*_RECORD_COLUMNS)
            .where(
                lower_bound,
                _queue.c.visible_at <= clock_now(),
            )
            .order_by(_queue.c.visible_at, _queue.c.msg_id)
            .limit(limit)
        )

        result = await self._session.execute(stmt)
        return [Record.from_row(row) for row in result.all()]
