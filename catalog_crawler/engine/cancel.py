"""Cooperative cancellation shared by every suspension point of the pipeline."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterable, TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised at a suspension point once cancellation was requested."""


class CancellationToken:
    """Single cancellation signal threaded through fetch, delay and retry waits."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancellation arrives first."""

        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``; a cancel aborts it and raises :class:`OperationCancelled`."""

        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
        if work.cancelled() and self.cancelled:
            raise OperationCancelled()
        return work.result()


async def gather_all(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Run awaitables concurrently and return results in submission order.

    When one of them fails the remaining tasks are cancelled and awaited
    before the first error is re-raised.
    """

    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


__all__ = ["CancellationToken", "OperationCancelled", "gather_all"]
