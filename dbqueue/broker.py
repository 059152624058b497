"""
Message broker.

Composes the queue store into the produce / consume contract:

- produce inserts a batch in one transaction with a visibility deadline
  computed by the database server, and returns the committed records
- consume range-queries everything positioned after the cursor and
  advances the cursor to the last (visible_at, msg_id) it returned

Delivery is at-least-once. Nothing is deleted or marked as delivered, so
rewinding the cursor replays messages.
"""

import logging
import time
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dbqueue.constants import (
    OPERATION_CONSUME,
    OPERATION_PRODUCE,
    SPAN_CONSUME,
    SPAN_PRODUCE,
)
from dbqueue.cursor import Cursor, Position
from dbqueue.db.store import QueueStore
from dbqueue.errors import (
    BrokerConnectionError,
    BrokerError,
    QueryError,
    ScanError,
    TransactionError,
)
from dbqueue.observability.metrics import MetricsCollector, get_metrics
from dbqueue.observability.tracing import get_tracer
from dbqueue.types.record import Record

logger = logging.getLogger(__name__)


def _is_disconnect(exc: BaseException) -> bool:
    """Check whether a driver error means the store is unreachable."""
    if isinstance(exc, OSError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class Broker:
    """
    Database-backed message broker.

    A broker owns a single cursor and must be the only consumer of it.
    Any number of brokers may produce concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cursor: datetime | None = None,
        metrics: MetricsCollector | None = None,
        cursor_msg_id: int | None = None,
    ):
        """
        Initialize the broker.

        Args:
            session_factory: Factory for sessions on the queue database.
            cursor: Initial cursor, e.g. a restored checkpoint. Defaults to
                the earliest possible timestamp.
            metrics: Metrics collector. Defaults to the global one.
            cursor_msg_id: Last msg_id already delivered at the cursor's
                timestamp. None skips every message at that timestamp.
        """
        self._session_factory = session_factory
        self._cursor = Cursor(cursor, cursor_msg_id)
        self._metrics = metrics or get_metrics()

    def get_cursor(self) -> datetime:
        """Get the current cursor value."""
        return self._cursor.value

    def get_position(self) -> Position:
        """Get the full cursor position, for checkpoints."""
        return self._cursor.position

    def set_cursor(self, value: datetime, msg_id: int | None = None) -> None:
        """
        Set the cursor unconditionally.

        Moving it backwards is allowed and re-delivers every message
        positioned after it.

        Args:
            value: The new cursor timestamp.
            msg_id: Last msg_id already delivered at that timestamp. None
                skips every message at the timestamp.
        """
        self._cursor.reset(value, msg_id)
        self._metrics.update_cursor(self._cursor.value)

    async def produce(
        self,
        messages: Sequence[bytes],
        delay: timedelta = timedelta(0),
    ) -> list[Record]:
        """
        Insert a batch of messages atomically.

        Args:
            messages: Payloads in order. Stored byte for byte.
            delay: How long the messages stay invisible after insert.

        Returns:
            The committed records, in insertion order.

        Raises:
            ValueError: If delay is negative.
            TypeError: If a payload is not bytes-like.
            BrokerConnectionError: If the store is unreachable.
            TransactionError: If the insert or commit fails. Nothing from
                the batch is committed in that case.
        """
        if delay < timedelta(0):
            raise ValueError(f"delay must not be negative, got {delay}")

        payloads = []
        for message in messages:
            if not isinstance(message, (bytes, bytearray, memoryview)):
                raise TypeError(
                    f"message payloads must be bytes, got {type(message).__name__}"
                )
            payloads.append(bytes(message))

        if not payloads:
            return []

        start_time = time.perf_counter()

        with get_tracer().start_as_current_span(SPAN_PRODUCE) as span:
            span.set_attribute("message_count", len(payloads))
            span.set_attribute("delay_seconds", delay.total_seconds())

            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        await self._connect(session)
                        records = await QueueStore(session).insert(payloads, delay)
            except BrokerConnectionError as e:
                self._metrics.record_error(OPERATION_PRODUCE, e.kind)
                raise
            except ScanError as e:
                self._metrics.record_error(OPERATION_PRODUCE, TransactionError.kind)
                raise TransactionError(f"Produced row could not be decoded: {e}") from e
            except (SQLAlchemyError, OSError) as e:
                if _is_disconnect(e):
                    self._metrics.record_error(OPERATION_PRODUCE, BrokerConnectionError.kind)
                    raise BrokerConnectionError(f"Lost connection during produce: {e}") from e
                self._metrics.record_error(OPERATION_PRODUCE, TransactionError.kind)
                raise TransactionError(f"Produce transaction failed: {e}") from e

        duration = time.perf_counter() - start_time
        self._metrics.record_produced(len(records), duration)

        logger.info(
            f"Produced {len(records)} messages",
            extra={
                "message_count": len(records),
                "first_msg_id": records[0].msg_id,
                "visible_at": records[-1].visible_at.isoformat(),
            },
        )

        return records

    async def consume(self, limit: int) -> list[Record]:
        """
        Fetch messages that became visible since the cursor.

        The cursor advances to the last record returned, and only once the
        whole result has been read. A limit that splits a group of messages
        sharing one deadline leaves the rest of the group for the next call.

        Args:
            limit: Maximum number of messages to return.

        Returns:
            Up to limit records, ordered by visible_at then msg_id.

        Raises:
            ValueError: If limit is not positive.
            BrokerConnectionError: If the store is unreachable.
            ScanError: If a row cannot be decoded.
            QueryError: If the range query fails.
        """
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")

        start_time = time.perf_counter()
        position = self._cursor.position

        with get_tracer().start_as_current_span(SPAN_CONSUME) as span:
            span.set_attribute("limit", limit)
            span.set_attribute("cursor", position.visible_at.isoformat())

            try:
                async with self._session_factory() as session:
                    await self._connect(session)
                    records = await QueueStore(session).select_range(
                        position.visible_at, limit, position.msg_id
                    )
            except BrokerError as e:
                self._metrics.record_error(OPERATION_CONSUME, e.kind)
                raise
            except (SQLAlchemyError, OSError) as e:
                if _is_disconnect(e):
                    self._metrics.record_error(OPERATION_CONSUME, BrokerConnectionError.kind)
                    raise BrokerConnectionError(f"Lost connection during consume: {e}") from e
                self._metrics.record_error(OPERATION_CONSUME, QueryError.kind)
                raise QueryError(f"Consume query failed: {e}") from e

            span.set_attribute("message_count", len(records))

        duration = time.perf_counter() - start_time
        self._metrics.record_consumed(len(records), duration)

        if records and self._cursor.advance(records[-1].visible_at, records[-1].msg_id):
            self._metrics.update_cursor(self._cursor.value)
            logger.debug(
                f"Consumed {len(records)} messages",
                extra={
                    "message_count": len(records),
                    "cursor": self._cursor.value.isoformat(),
                    "cursor_msg_id": self._cursor.msg_id,
                },
            )

        return records

    async def _connect(self, session: AsyncSession) -> None:
        """
        Check out a connection for the session.

        Raises:
            BrokerConnectionError: If no connection can be established.
        """
        try:
            await session.connection()
        except (SQLAlchemyError, OSError) as e:
            raise BrokerConnectionError(f"Queue store is unreachable: {e}") from e
