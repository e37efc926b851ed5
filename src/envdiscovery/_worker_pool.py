"""Bounded concurrency queue that runs each keyed work item at most once at a time."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Hashable

LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound="Hashable")
R = TypeVar("R")


class QueuePosition(Enum):
    FRONT = "front"
    BACK = "back"


class WorkerPool(Generic[K, R]):
    """Process work items with a fixed number of asyncio workers.

    Items added with :attr:`QueuePosition.FRONT` are picked before any pending :attr:`QueuePosition.BACK` item; within
    a band the order is first-in first-out. A work item that raises resolves to ``None``. Results other than ``None``
    stay attached to their key, so asking again for a finished key returns the finished future without running the
    work again.
    """

    def __init__(
        self,
        worker_func: Callable[[K], Awaitable[R | None]],
        num_workers: int = 2,
        name: str = "pool",
    ) -> None:
        if num_workers < 1:
            msg = f"worker pool needs at least one worker, got {num_workers}"
            raise ValueError(msg)
        self._worker_func = worker_func
        self._num_workers = num_workers
        self._name = name
        self._front: deque[K] = deque()
        self._back: deque[K] = deque()
        self._futures: dict[K, asyncio.Future[R | None]] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._pending: asyncio.Semaphore | None = None

    def add_to_queue(self, key: K, position: QueuePosition = QueuePosition.BACK) -> asyncio.Future[R | None]:
        if (future := self._futures.get(key)) is not None:
            return future
        loop = asyncio.get_running_loop()
        self._ensure_workers(loop)
        future = loop.create_future()
        self._futures[key] = future
        if position is QueuePosition.FRONT:
            self._front.append(key)
        else:
            self._back.append(key)
        assert self._pending is not None  # noqa: S101
        self._pending.release()
        LOGGER.debug("%s queued %r at %s", self._name, key, position.value)
        return future

    def _ensure_workers(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._workers:
            return
        self._pending = asyncio.Semaphore(0)
        self._workers = [
            loop.create_task(self._work(), name=f"{self._name}-worker-{index}") for index in range(self._num_workers)
        ]

    async def _work(self) -> None:
        assert self._pending is not None  # noqa: S101
        while True:
            await self._pending.acquire()
            key = self._front.popleft() if self._front else self._back.popleft()
            future = self._futures[key]
            result: R | None
            try:
                result = await self._worker_func(key)
            except asyncio.CancelledError:
                self._resolve(key, future, None)
                raise
            except Exception:  # noqa: BLE001
                LOGGER.info("%s failed to process %r", self._name, key, exc_info=True)
                result = None
            self._resolve(key, future, result)

    def _resolve(self, key: K, future: asyncio.Future[R | None], result: R | None) -> None:
        if not future.done():
            future.set_result(result)
        if result is None and self._futures.get(key) is future:
            del self._futures[key]

    def forget(self) -> None:
        """Drop finished results so the next request for their key runs the work again."""
        for key, future in list(self._futures.items()):
            if future.done():
                del self._futures[key]

    @property
    def pending(self) -> int:
        return len(self._front) + len(self._back)

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        for key in [*self._front, *self._back]:
            self._resolve(key, self._futures[key], None)
        self._front.clear()
        self._back.clear()
        self._pending = None


__all__ = [
    "QueuePosition",
    "WorkerPool",
]
