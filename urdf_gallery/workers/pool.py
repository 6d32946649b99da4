"""Fixed-size async worker pool over a queue of item indices."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


async def run_pool(
    count: int,
    concurrency: int,
    handle: Callable[[int], Awaitable[T]],
    on_result: Callable[[int, T], None],
    on_error: Callable[[int, Exception], None],
) -> None:
    """Run `handle(index)` for every index in `range(count)`.

    `concurrency` workers pull indices from one shared queue, so each item
    is handled by exactly one worker. Results reach `on_result` in
    completion order. A failing item goes to `on_error` and never stops
    the other workers.
    """
    queue: asyncio.Queue[int] = asyncio.Queue()
    for index in range(count):
        queue.put_nowait(index)

    async def worker(worker_id: int) -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                result = await handle(index)
            except Exception as exc:  # noqa: BLE001
                LOGGER.debug("Worker %d failed on item %d: %s", worker_id, index, exc)
                on_error(index, exc)
            else:
                on_result(index, result)
            finally:
                queue.task_done()

    workers = [asyncio.create_task(worker(i)) for i in range(max(1, min(concurrency, count)))]
    await asyncio.gather(*workers)
