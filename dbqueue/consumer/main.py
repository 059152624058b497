"""
Consumer driver.

Polls the broker for visible messages, hands each batch to a handler and
checkpoints the cursor once the handler has succeeded.
"""

import asyncio
import contextlib
import logging
import signal
from collections.abc import Awaitable, Callable

from dbqueue.broker import Broker
from dbqueue.checkpoint import FileCheckpoint, format_timestamp
from dbqueue.config import get_settings
from dbqueue.constants import SPAN_HANDLE_BATCH
from dbqueue.observability.tracing import get_tracer
from dbqueue.types.record import Record

logger = logging.getLogger(__name__)

# Type alias for batch handler functions
BatchHandler = Callable[[list[Record]], Awaitable[None]]


class Consumer:
    """
    Polling consumer for a single broker cursor.

    Features:
    - Sleeps between polls only when a poll came back empty
    - Rewinds the cursor when the handler fails, so the batch is delivered
      again on the next poll
    - Saves the cursor to a checkpoint after every handled batch
    - Graceful shutdown on SIGTERM/SIGINT

    Handlers must be idempotent: a message can be handed over more than once.
    """

    def __init__(
        self,
        broker: Broker,
        handler: BatchHandler,
        batch_size: int | None = None,
        poll_interval: float | None = None,
        checkpoint: FileCheckpoint | None = None,
        max_polls: int | None = None,
    ):
        """
        Initialize the consumer.

        Args:
            broker: The broker owning the cursor.
            handler: Coroutine called with every non-empty batch.
            batch_size: Maximum messages per poll.
            poll_interval: Seconds to wait after an empty or failed poll.
            checkpoint: Optional checkpoint the cursor is saved to.
            max_polls: Stop after this many polls. Runs until stopped if None.
        """
        settings = get_settings()

        self.broker = broker
        self.handler = handler
        self.batch_size = batch_size or settings.dequeue_batch_size
        self.poll_interval = (
            settings.poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.checkpoint = checkpoint
        self.max_polls = max_polls

        self._running = False
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        """Run the polling loop until stopped."""
        logger.info(
            "Consumer starting",
            extra={
                "batch_size": self.batch_size,
                "poll_interval": self.poll_interval,
                "cursor": format_timestamp(self.broker.get_cursor()),
            },
        )

        self._running = True
        self._stopped.clear()
        polls = 0

        while self._running:
            delivered = 0
            try:
                delivered = await self.poll_once()
            except Exception as e:
                logger.exception(
                    f"Error in consumer loop: {e}",
                    extra={"cursor": format_timestamp(self.broker.get_cursor())},
                )

            polls += 1
            if self.max_polls is not None and polls >= self.max_polls:
                break

            if delivered == 0:
                await self._sleep()

        self._running = False
        logger.info(
            "Consumer stopped",
            extra={"polls": polls, "cursor": format_timestamp(self.broker.get_cursor())},
        )

    async def stop(self) -> None:
        """Stop the consumer after the current poll."""
        logger.info("Consumer stopping")
        self._running = False
        self._stopped.set()

    async def poll_once(self) -> int:
        """
        Consume and handle one batch.

        Returns:
            Number of messages handled.

        Raises:
            BrokerError: If the broker call fails. The cursor is unchanged.
            Exception: Whatever the handler raised. The cursor is rewound.
        """
        previous = self.broker.get_position()
        records = await self.broker.consume(self.batch_size)
        if not records:
            return 0

        try:
            with get_tracer().start_as_current_span(SPAN_HANDLE_BATCH) as span:
                span.set_attribute("message_count", len(records))
                await self.handler(records)
        except Exception:
            self.broker.set_cursor(previous.visible_at, previous.msg_id)
            logger.warning(
                "Handler failed, batch will be delivered again",
                extra={
                    "message_count": len(records),
                    "cursor": format_timestamp(previous.visible_at),
                },
            )
            raise

        position = self.broker.get_position()
        if self.checkpoint is not None:
            self.checkpoint.save(position.visible_at, position.msg_id)

        logger.info(
            f"Handled {len(records)} messages",
            extra={"message_count": len(records), "cursor": format_timestamp(position.visible_at)},
        )
        return len(records)

    async def _sleep(self) -> None:
        """Wait one poll interval, returning early when stopped."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stopped.wait(), timeout=self.poll_interval)


async def run_until_stopped(consumer: Consumer) -> None:
    """
    Run a consumer with SIGTERM/SIGINT wired to a graceful stop.

    Args:
        consumer: The consumer to run.
    """
    loop = asyncio.get_running_loop()
    signals = (signal.SIGTERM, signal.SIGINT)

    for sig in signals:
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(consumer.stop())
        )

    try:
        await consumer.start()
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)
