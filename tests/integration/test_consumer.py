"""
Integration tests for the consumer and producer drivers.
"""

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from dbqueue.broker import Broker
from dbqueue.checkpoint import FileCheckpoint
from dbqueue.constants import EARLIEST_TIMESTAMP
from dbqueue.consumer.main import Consumer
from dbqueue.producer.main import Producer
from dbqueue.types.record import Record


async def payloads(values: list[bytes]):
    for value in values:
        yield value


class TestConsumer:
    """Tests for the polling consumer."""

    async def test_poll_once_handles_batch_and_saves_checkpoint(
        self,
        broker: Broker,
        tmp_path: Path,
    ):
        """Test a poll hands records over and checkpoints the cursor."""
        await broker.produce([b"1", b"2", b"3"])
        handled: list[Record] = []

        async def handler(records: list[Record]) -> None:
            handled.extend(records)

        checkpoint = FileCheckpoint(tmp_path / "cursor.txt")
        consumer = Consumer(broker, handler, batch_size=10, poll_interval=0, checkpoint=checkpoint)

        count = await consumer.poll_once()

        assert count == 3
        assert [r.message for r in handled] == [b"1", b"2", b"3"]
        assert checkpoint.load() == broker.get_position()
        assert checkpoint.load().msg_id == handled[-1].msg_id

    async def test_empty_poll_does_not_call_handler(self, broker: Broker):
        """Test the handler only sees non-empty batches."""
        calls = []

        async def handler(records: list[Record]) -> None:
            calls.append(records)

        consumer = Consumer(broker, handler, batch_size=10, poll_interval=0)

        assert await consumer.poll_once() == 0
        assert calls == []

    async def test_handler_failure_rewinds_cursor(self, broker: Broker):
        """Test a failed handler gets the same batch again."""
        await broker.produce([b"a", b"b"])
        attempts: list[list[Record]] = []

        async def handler(records: list[Record]) -> None:
            attempts.append(records)
            if len(attempts) == 1:
                raise RuntimeError("handler crashed")

        consumer = Consumer(broker, handler, batch_size=10, poll_interval=0)

        with pytest.raises(RuntimeError):
            await consumer.poll_once()
        assert broker.get_cursor() == EARLIEST_TIMESTAMP

        assert await consumer.poll_once() == 2
        assert attempts[0] == attempts[1]

    async def test_handler_failure_inside_batch_redelivers_same_message(self, broker: Broker):
        """Test a rewind in the middle of a batch replays only the failed message."""
        produced = await broker.produce([b"a", b"b", b"c"])
        attempts: list[int] = []

        async def handler(records: list[Record]) -> None:
            attempts.append(records[0].msg_id)
            if len(attempts) == 2:
                raise RuntimeError("handler crashed")

        consumer = Consumer(broker, handler, batch_size=1, poll_interval=0)

        await consumer.poll_once()
        with pytest.raises(RuntimeError):
            await consumer.poll_once()
        await consumer.poll_once()
        await consumer.poll_once()

        ids = [r.msg_id for r in produced]
        assert attempts == [ids[0], ids[1], ids[1], ids[2]]

    async def test_start_stops_after_max_polls(self, broker: Broker):
        """Test a bounded run delivers everything then stops."""
        await broker.produce([b"x", b"y"])
        handled: list[Record] = []

        async def handler(records: list[Record]) -> None:
            handled.extend(records)

        consumer = Consumer(broker, handler, batch_size=1, poll_interval=0.01, max_polls=4)

        await asyncio.wait_for(consumer.start(), timeout=5)

        assert [r.message for r in handled] == [b"x", b"y"]

    async def test_loop_retries_after_handler_error(self, broker: Broker):
        """Test the loop keeps polling after a failure and redelivers."""
        await broker.produce([b"retry-me"])
        attempts = []

        async def handler(records: list[Record]) -> None:
            attempts.append([r.message for r in records])
            if len(attempts) == 1:
                raise RuntimeError("transient")

        consumer = Consumer(broker, handler, batch_size=10, poll_interval=0.01, max_polls=2)

        await asyncio.wait_for(consumer.start(), timeout=5)

        assert attempts == [[b"retry-me"], [b"retry-me"]]

    async def test_stop_interrupts_idle_sleep(self, broker: Broker):
        """Test stop() ends the loop without waiting a full interval."""

        async def handler(records: list[Record]) -> None:
            pass

        consumer = Consumer(broker, handler, batch_size=10, poll_interval=30)
        task = asyncio.create_task(consumer.start())

        await asyncio.sleep(0.1)
        await consumer.stop()

        await asyncio.wait_for(task, timeout=2)


class TestProducer:
    """Tests for the batching producer."""

    async def test_run_produces_in_batches(self, broker: Broker):
        """Test payloads are committed in size-bounded batches, in order."""
        values = [f"m{i}".encode() for i in range(7)]
        batches: list[list[Record]] = []

        async def on_records(records: list[Record]) -> None:
            batches.append(records)

        producer = Producer(broker, batch_size=3, batch_interval=10, record_delay=timedelta(0))

        produced = await producer.run(payloads(values), on_records=on_records)

        assert produced == 7
        assert [len(batch) for batch in batches] == [3, 3, 1]

        records = await broker.consume(10)
        assert [r.message for r in records] == values

    async def test_run_applies_record_delay(self, broker: Broker):
        """Test the configured delay hides produced messages."""
        producer = Producer(
            broker,
            batch_size=10,
            batch_interval=0.05,
            record_delay=timedelta(minutes=5),
        )

        assert await producer.run(payloads([b"later"])) == 1
        assert await broker.consume(10) == []
