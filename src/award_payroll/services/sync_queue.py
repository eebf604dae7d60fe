"""Single-writer queue per pay period.

A period sync is read-recompute-write, so two overlapping syncs of the same
period could persist a stale result. Every sync for a period is posted to
that period's queue and executed one at a time by a drain task; callers
await a future for their own submission. Different periods drain
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar
from uuid import UUID

logger = logging.getLogger(__name__)

T = TypeVar("T")

Worker = Callable[..., Awaitable[T]]


class PeriodSyncQueue(Generic[T]):
    """Serializes calls to ``worker`` per period id.

    Example:
        queue = PeriodSyncQueue(recompute_period)
        result = await queue.submit(period_id, tax_year="2024-25")
    """

    def __init__(self, worker: Worker[T]):
        self._worker = worker
        self._queues: dict[UUID, asyncio.Queue[tuple[tuple[Any, ...], dict[str, Any], asyncio.Future[T]]]] = {}
        self._drains: dict[UUID, asyncio.Task[None]] = {}

    async def submit(self, period_id: UUID, *args: Any, **kwargs: Any) -> T:
        """Queue a call for ``period_id`` and wait for its result.

        Exceptions raised by the worker propagate to this caller only.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

        queue = self._queues.get(period_id)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[period_id] = queue
            self._drains[period_id] = asyncio.create_task(self._drain(period_id, queue))

        queue.put_nowait((args, kwargs, future))
        return await future

    def pending(self, period_id: UUID) -> int:
        """Submissions for ``period_id`` not yet picked up."""
        queue = self._queues.get(period_id)
        return queue.qsize() if queue is not None else 0

    @property
    def active_periods(self) -> set[UUID]:
        return set(self._queues)

    async def join(self) -> None:
        """Wait until every queue has drained."""
        while self._drains:
            await asyncio.gather(*list(self._drains.values()), return_exceptions=True)

    async def _drain(self, period_id: UUID, queue: asyncio.Queue) -> None:
        try:
            while True:
                try:
                    args, kwargs, future = queue.get_nowait()
                except asyncio.QueueEmpty:
                    break

                if future.cancelled():
                    continue

                try:
                    result = await self._worker(period_id, *args, **kwargs)
                except Exception as exc:
                    if not future.cancelled():
                        future.set_exception(exc)
                else:
                    if not future.cancelled():
                        future.set_result(result)
        finally:
            # No await between the empty check and removal, so a concurrent
            # submit either lands in this queue or starts a fresh one.
            if self._queues.get(period_id) is queue:
                del self._queues[period_id]
                del self._drains[period_id]
            logger.debug("Sync queue for period %s drained", period_id)
