"""
Per-run cancellation token.

One token is created for each test run and shared by every probe and
transfer of that run.  Network awaits go through :meth:`race` and delays
through :meth:`sleep`, so firing the token interrupts whatever is in flight.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from .errors import StageCancelled

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Fire the token.  Safe to call more than once."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StageCancelled("Test cancelled")

    async def race(self, aw: Awaitable[T]) -> T:
        """Await *aw*, abandoning it as soon as the token fires."""
        if self._event.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            raise StageCancelled("Test cancelled")

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise StageCancelled("Test cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds* unless the token fires first."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise StageCancelled("Test cancelled")
