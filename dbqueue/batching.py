"""
Batching helpers for producers.

chunk_by_timeout buffers items from an async source and flushes a batch
when it is full or when the flush interval elapses, whichever happens
first. The interval restarts after every flush.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import TypeVar

T = TypeVar("T")

_END = object()


def chunk_by(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split a sequence into consecutive chunks of at most size items.

    Args:
        items: The items to split.
        size: Maximum chunk length.

    Returns:
        The chunks, in order. Empty input gives no chunks.
    """
    if size < 1:
        raise ValueError(f"size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def chunk_by_timeout(
    source: AsyncIterable[T],
    size: int,
    timeout: float,
) -> AsyncIterator[list[T]]:
    """
    Group items from an async source into batches.

    A batch is yielded when it reaches size items, or when timeout seconds
    pass since the last flush and the buffer is not empty. Whatever is
    buffered when the source ends is yielded as a final batch.

    Args:
        source: The async iterable to read from.
        size: Maximum batch length.
        timeout: Seconds to wait before flushing a partial batch.

    Yields:
        Lists of between 1 and size items.

    Raises:
        Any exception raised by the source, after the buffered items
        have been yielded.
    """
    if size < 1:
        raise ValueError(f"size must be positive, got {size}")
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")

    queue: asyncio.Queue = asyncio.Queue(maxsize=size)

    async def pump() -> None:
        try:
            async for item in source:
                await queue.put(item)
        except Exception:
            await queue.put(_END)
            raise
        await queue.put(_END)

    loop = asyncio.get_running_loop()
    reader = asyncio.create_task(pump())
    batch: list[T] = []
    deadline = loop.time() + timeout

    try:
        while True:
            try:
                item = await asyncio.wait_for(
                    queue.get(), timeout=max(deadline - loop.time(), 0)
                )
            except TimeoutError:
                if batch:
                    yield batch
                    batch = []
                deadline = loop.time() + timeout
                continue

            if item is _END:
                if batch:
                    yield batch
                # Surfaces an exception raised by the source
                await reader
                return

            batch.append(item)
            if len(batch) >= size:
                yield batch
                batch = []
                deadline = loop.time() + timeout
    finally:
        if not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
