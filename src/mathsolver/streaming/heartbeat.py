"""Keep-alive ticker bound to the lifetime of one pending task."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, AsyncIterator, Awaitable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Heartbeat(Generic[T]):
    """Run ``work`` in a task and tick every ``interval`` seconds until it finishes.

    Use as an async context manager. Leaving the block, whether normally, via
    an exception or because the consumer closed the stream, cancels the task
    if it is still pending, so no timer or upstream call outlives the response.
    """

    def __init__(self, work: Awaitable[T], interval: float):
        if interval <= 0:
            raise ValueError("heartbeat interval must be positive")
        self._work = work
        self.interval = interval
        self.beats = 0
        self._task: asyncio.Future[T] | None = None

    async def __aenter__(self) -> "Heartbeat[T]":
        self._task = asyncio.ensure_future(self._work)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        elif task is not None and not task.cancelled():
            # mark any failure as retrieved; the caller reports it via result()
            task.exception()
        logger.debug("Heartbeat released after %d beat(s)", self.beats)

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def ticks(self) -> AsyncIterator[int]:
        """Yield the beat count each time the interval passes with work pending."""

        if self._task is None:
            raise RuntimeError("Heartbeat must be entered before ticking")
        while True:
            finished, _ = await asyncio.wait({self._task}, timeout=self.interval)
            if finished:
                return
            self.beats += 1
            yield self.beats

    def result(self) -> T:
        """Return the work's result, re-raising its exception."""

        if self._task is None:
            raise RuntimeError("Heartbeat was never entered")
        return self._task.result()


__all__ = ["Heartbeat"]
