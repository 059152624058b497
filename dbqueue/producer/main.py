"""
Producer driver.

Reads payloads from an async source, groups them into batches by size or
flush interval, and commits each batch through the broker.
"""

import logging
from collections.abc import AsyncIterable, Awaitable, Callable
from datetime import timedelta

from dbqueue.batching import chunk_by_timeout
from dbqueue.broker import Broker
from dbqueue.config import get_settings
from dbqueue.types.record import Record

logger = logging.getLogger(__name__)

# Receives the committed records of each batch
RecordsCallback = Callable[[list[Record]], Awaitable[None]]


class Producer:
    """
    Batching producer.

    Errors from the broker abort the run; batches committed before the
    failure stay committed.
    """

    def __init__(
        self,
        broker: Broker,
        batch_size: int | None = None,
        batch_interval: float | None = None,
        record_delay: timedelta | None = None,
    ):
        """
        Initialize the producer.

        Args:
            broker: The broker to produce through.
            batch_size: Maximum messages per produce call.
            batch_interval: Seconds before a partial batch is flushed.
            record_delay: Visibility delay applied to every message.
        """
        settings = get_settings()

        self.broker = broker
        self.batch_size = batch_size or settings.enqueue_batch_size
        self.batch_interval = batch_interval or settings.enqueue_batch_interval_seconds
        if record_delay is None:
            record_delay = timedelta(seconds=settings.record_delay_seconds)
        self.record_delay = record_delay

    async def run(
        self,
        source: AsyncIterable[bytes],
        on_records: RecordsCallback | None = None,
    ) -> int:
        """
        Produce everything the source yields.

        Args:
            source: Async iterable of payloads.
            on_records: Optional callback for each committed batch.

        Returns:
            Number of messages produced.
        """
        logger.info(
            "Producer starting",
            extra={
                "batch_size": self.batch_size,
                "batch_interval": self.batch_interval,
                "record_delay": self.record_delay.total_seconds(),
            },
        )

        produced = 0
        async for batch in chunk_by_timeout(source, self.batch_size, self.batch_interval):
            records = await self.broker.produce(batch, self.record_delay)
            produced += len(records)
            if on_records is not None:
                await on_records(records)

        logger.info("Producer finished", extra={"message_count": produced})
        return produced
