"""Interface to the agent runtime that executes turns.

A runtime starts one turn per request and hands back a ``TurnSubscription``:
an async iterator of raw event payloads (in send order) that can be closed
early to cancel the turn.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional


@dataclass(frozen=True)
class TurnRequest:
    """What the runtime needs to start a turn.

    ``model`` is the already-resolved upstream model name; ``client_model``
    is what the client asked for and is only kept for logging.
    """

    model: str
    client_model: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    prompt: str = ""
    conversation_id: Optional[str] = None
    request_id: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self.messages,
            "input": self.prompt,
        }
        if self.conversation_id:
            payload["session_id"] = self.conversation_id
        return payload


class TurnSubscription(ABC):
    """Async iterator over one turn's raw runtime payloads."""

    session_id: Optional[str] = None

    def __aiter__(self) -> "TurnSubscription":
        return self

    @abstractmethod
    async def __anext__(self) -> Any:
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Stop the subscription and cancel the upstream turn if still running."""


class IteratorSubscription(TurnSubscription):
    """Subscription backed by any async iterator (typically an async generator)."""

    def __init__(
        self,
        events: AsyncIterator[Any],
        session_id: Optional[str] = None,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._events = events
        self.session_id = session_id
        self._on_close = on_close
        self.closed = False

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration
        return await self._events.__anext__()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            aclose = getattr(self._events, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._on_close is not None:
                await self._on_close()


class AgentRuntime(ABC):
    """The upstream collaborator."""

    @abstractmethod
    async def start_turn(self, request: TurnRequest) -> TurnSubscription:
        """Start a turn. Raises ``UpstreamAbort`` when the turn cannot start."""

    async def aclose(self) -> None:
        """Release runtime-wide resources (connection pools, ...)."""
        return None
