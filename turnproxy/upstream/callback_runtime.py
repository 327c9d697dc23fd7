"""Runtime adapter for in-process producers that push events.

A producer is any coroutine ``producer(request, publish)`` that calls
``await publish(payload)`` for each runtime event and returns when the turn
is over. ``publish`` returns False once the client has gone away.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..core.exceptions import ProxyError, UpstreamAbort
from .base import AgentRuntime, TurnRequest, TurnSubscription
from .bridge import DEFAULT_QUEUE_SIZE, EventBridge

logger = logging.getLogger("turnproxy")

Publish = Callable[[Any], Awaitable[bool]]
Producer = Callable[[TurnRequest, Publish], Awaitable[None]]


class CallbackAgentRuntime(AgentRuntime):
    """Run each turn's producer as a task feeding a bounded ``EventBridge``."""

    def __init__(self, producer: Producer, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.producer = producer
        self.queue_size = queue_size
        self._tasks: set[asyncio.Task] = set()

    async def start_turn(self, request: TurnRequest) -> TurnSubscription:
        task: Optional[asyncio.Task] = None

        async def cancel_producer() -> None:
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        bridge = EventBridge(
            maxsize=self.queue_size,
            session_id=request.conversation_id,
            on_cancel=cancel_producer,
        )

        async def run() -> None:
            try:
                await self.producer(request, bridge.publish)
            except asyncio.CancelledError:
                raise
            except ProxyError as exc:
                await bridge.fail(exc)
            except Exception as exc:
                logger.exception("[%s] Runtime producer failed", request.request_id)
                await bridge.fail(UpstreamAbort(f"Runtime producer failed: {exc}"))
            else:
                await bridge.finish()

        task = asyncio.create_task(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return bridge

    async def aclose(self) -> None:
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
