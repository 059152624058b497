"""
Command line interface.

    dbqueue init-db
    cat messages.jsonl | dbqueue enqueue --record-delay 5
    dbqueue dequeue --checkpoint cursor.txt

Messages travel as JSON lines on stdin/stdout; logs go to stderr.
"""

import asyncio
import json
import sys
from collections.abc import AsyncIterator
from datetime import timedelta
from pathlib import Path
from typing import BinaryIO

import typer

from dbqueue.broker import Broker
from dbqueue.checkpoint import FileCheckpoint, format_timestamp, parse_timestamp
from dbqueue.config import get_settings
from dbqueue.constants import EARLIEST_TIMESTAMP
from dbqueue.consumer.main import Consumer, run_until_stopped
from dbqueue.cursor import Position
from dbqueue.db.connection import close_db, get_engine, init_db
from dbqueue.errors import BrokerError, CheckpointError
from dbqueue.observability.logging import setup_logging
from dbqueue.observability.metrics import serve_metrics
from dbqueue.observability.tracing import instrument_sqlalchemy, setup_tracing
from dbqueue.producer.main import Producer
from dbqueue.types.record import Record

app = typer.Typer(help="Database-backed message queue with visibility delays")


async def read_json_lines(stream: BinaryIO) -> AsyncIterator[bytes]:
    """
    Yield non-blank lines of a binary stream, checking each is JSON.

    Raises:
        ValueError: If a line is not a JSON document.
    """
    number = 0
    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            return
        number += 1
        line = line.strip()
        if not line:
            continue
        try:
            json.loads(line)
        except ValueError as e:
            raise ValueError(f"line {number} is not valid JSON: {e}") from e
        yield line


async def _write_records(records: list[Record]) -> None:
    for record in records:
        sys.stdout.write(record.to_json() + "\n")
    sys.stdout.flush()


async def _open(dsn: str | None, create_tables: bool = False):
    session_factory = await init_db(dsn, create_tables=create_tables)
    if get_settings().otel_enabled:
        setup_tracing()
        instrument_sqlalchemy(get_engine())
    return session_factory


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", help="Log level (default from LOG_LEVEL)"),
    log_format: str = typer.Option(None, "--log-format", help="json or console"),
) -> None:
    """Database-backed message queue with visibility delays."""
    setup_logging(log_level=log_level, log_format=log_format)


@app.command("init-db")
def init_db_command(
    dsn: str = typer.Option(None, "--dsn", help="Database URL (default from DATABASE_URL)"),
) -> None:
    """Create the queue table."""

    async def run() -> None:
        try:
            await _open(dsn, create_tables=True)
        finally:
            await close_db()

    asyncio.run(run())


@app.command()
def enqueue(
    batch_size: int = typer.Option(None, "--batch-size", min=1, help="Messages per produce call"),
    batch_interval: float = typer.Option(
        None, "--batch-interval", min=0.001, help="Seconds before a partial batch is flushed"
    ),
    record_delay: float = typer.Option(
        None, "--record-delay", min=0.0, help="Seconds each message stays invisible"
    ),
    dsn: str = typer.Option(None, "--dsn", help="Database URL (default from DATABASE_URL)"),
) -> None:
    """Read JSON lines from stdin and enqueue them."""
    delay = None if record_delay is None else timedelta(seconds=record_delay)

    async def run() -> None:
        try:
            broker = Broker(await _open(dsn))
            producer = Producer(
                broker,
                batch_size=batch_size,
                batch_interval=batch_interval,
                record_delay=delay,
            )
            await producer.run(read_json_lines(sys.stdin.buffer), on_records=_write_records)
        finally:
            await close_db()

    try:
        asyncio.run(run())
    except (BrokerError, ValueError) as e:
        typer.echo(f"enqueue failed: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.command()
def dequeue(
    batch_size: int = typer.Option(None, "--batch-size", min=1, help="Messages per poll"),
    poll_interval: float = typer.Option(
        None, "--poll-interval", min=0.0, help="Seconds to wait after an empty poll"
    ),
    last_vt: str = typer.Option(
        None, "--last-vt", help="Start after this visibility timestamp (RFC 3339 or RFC 1123)"
    ),
    checkpoint_path: Path = typer.Option(
        None, "--checkpoint", help="File the cursor is restored from and saved to"
    ),
    max_polls: int = typer.Option(None, "--max-polls", min=1, help="Stop after this many polls"),
    metrics_port: int = typer.Option(None, "--metrics-port", help="Serve Prometheus metrics on this port"),
    dsn: str = typer.Option(None, "--dsn", help="Database URL (default from DATABASE_URL)"),
) -> None:
    """Poll the queue and write visible messages to stdout as JSON lines."""
    settings = get_settings()

    if checkpoint_path is None and settings.checkpoint_path:
        checkpoint_path = Path(settings.checkpoint_path)
    checkpoint = FileCheckpoint(checkpoint_path) if checkpoint_path else None

    try:
        if last_vt is not None:
            position = Position(parse_timestamp(last_vt))
        elif checkpoint is not None:
            position = checkpoint.load() or Position(EARLIEST_TIMESTAMP)
        else:
            position = Position(EARLIEST_TIMESTAMP)
    except CheckpointError as e:
        raise typer.BadParameter(str(e), param_hint="--last-vt / --checkpoint") from e

    port = metrics_port if metrics_port is not None else settings.prometheus_port
    if port:
        serve_metrics(port)

    async def run() -> Broker:
        try:
            broker = Broker(
                await _open(dsn),
                cursor=position.visible_at,
                cursor_msg_id=position.msg_id,
            )
            consumer = Consumer(
                broker,
                handler=_write_records,
                batch_size=batch_size,
                poll_interval=poll_interval,
                checkpoint=checkpoint,
                max_polls=max_polls,
            )
            await run_until_stopped(consumer)
            return broker
        finally:
            await close_db()

    broker = asyncio.run(run())
    typer.echo(f"current vt: {format_timestamp(broker.get_cursor())}", err=True)


if __name__ == "__main__":
    app()
