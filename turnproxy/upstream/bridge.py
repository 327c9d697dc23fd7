"""Bridge callback-style event delivery to a pull-based subscription.

Runtimes that push events through callbacks publish into an ``EventBridge``;
the translation session pulls from it like any other subscription. The
queue is bounded and ``publish`` waits while it is full, so a slow client
slows the producer down instead of growing a buffer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .base import TurnSubscription

logger = logging.getLogger("turnproxy")

DEFAULT_QUEUE_SIZE = 16


class _End:
    pass


class _Failure:
    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


_END = _End()


class EventBridge(TurnSubscription):
    """Bounded single-producer, single-consumer event channel."""

    def __init__(
        self,
        maxsize: int = DEFAULT_QUEUE_SIZE,
        session_id: Optional[str] = None,
        on_cancel: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.session_id = session_id
        self._on_cancel = on_cancel
        self._finished = False
        self.closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def publish(self, payload: Any) -> bool:
        """Queue one payload, waiting for room.

        Returns False once the consumer has gone away; producers should stop.
        """
        if self.closed:
            return False
        if self._finished:
            raise RuntimeError("cannot publish after the turn was finished")
        await self._queue.put(payload)
        return not self.closed

    async def finish(self) -> None:
        """Mark the end of the event stream."""
        if self._finished or self.closed:
            return
        self._finished = True
        await self._queue.put(_END)

    async def fail(self, exc: BaseException) -> None:
        """End the stream with an error raised to the consumer."""
        if self._finished or self.closed:
            return
        self._finished = True
        await self._queue.put(_Failure(exc))

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise item.exc
        return item

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        # unblock a producer waiting in publish()
        while not self._queue.empty():
            self._queue.get_nowait()
        if self._on_cancel is not None and not self._finished:
            logger.debug("Event bridge closed before the turn finished; cancelling producer")
            await self._on_cancel()
