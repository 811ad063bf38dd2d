"""
Bounded worker pool draining a queue of ids.

Each item is handled independently; a failing item is reported through
``on_error`` and never stops the other workers.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar


T = TypeVar("T")


async def drain(
    items: Iterable[T],
    handler: Callable[[T], Awaitable[None]],
    *,
    concurrency: int,
    on_error: Callable[[T, Exception], Awaitable[None]],
) -> None:
    queue: asyncio.Queue[T] = asyncio.Queue()
    for item in items:
        queue.put_nowait(item)
    if queue.empty():
        return

    async def worker() -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await handler(item)
            except Exception as exc:
                await on_error(item, exc)
            finally:
                queue.task_done()

    workers = max(1, min(concurrency, queue.qsize()))
    await asyncio.gather(*(worker() for _ in range(workers)))
