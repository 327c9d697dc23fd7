"""Translation session: one per client request.

    idle --start()--> streaming --TurnComplete--> finalizing --> closed
                         |                            |
                         +-----------> errored <------+

The session pulls raw payloads from its ``TurnSubscription`` one at a time,
runs them through normalizer -> aggregator -> encoder and hands chunks to the
caller as they are produced. Because the next payload is only requested once
the caller has taken the previous chunk, a slow client slows down upstream
consumption rather than filling a buffer.

Whatever way the session ends (completion, upstream error, client gone,
cancellation) the upstream subscription is closed and the turn state is
dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from ..core.exceptions import (
    ProxyError,
    TransportError,
    UpstreamAbort,
    UpstreamProtocolError,
    error_for_kind,
)
from ..core.sse import SSE_DONE, SSE_KEEPALIVE
from ..logging.diagnostics import DiagnosticRecorder
from ..upstream.base import AgentRuntime, TurnRequest, TurnSubscription
from ..usage_metrics import SessionTracker
from .aggregator import TurnAggregator
from .encoder import ChunkEncoder, ExternalChunk, ResponseAccumulator, TurnIdentity
from .events import (
    FINISH_ERROR,
    Abort,
    Emission,
    Finalization,
    TurnComplete,
    UpstreamError,
)
from .normalizer import EventNormalizer

logger = logging.getLogger("turnproxy")

DEFAULT_MAX_PROTOCOL_ERRORS = 3


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    ERRORED = "errored"


class TranslationSession:
    """Drives one turn from runtime events to client chunks."""

    def __init__(
        self,
        runtime: AgentRuntime,
        request: TurnRequest,
        *,
        max_protocol_errors: int = DEFAULT_MAX_PROTOCOL_ERRORS,
        expose_reasoning: bool = False,
        diagnostics: Optional[DiagnosticRecorder] = None,
        tracker: Optional[SessionTracker] = None,
    ) -> None:
        if not request.client_model:
            raise ValueError("client model identifier is required")
        self.runtime = runtime
        self.request = request
        self.request_id = request.request_id or uuid.uuid4().hex[:8]
        self.max_protocol_errors = max(1, max_protocol_errors)
        self.expose_reasoning = expose_reasoning
        self.diagnostics = diagnostics or DiagnosticRecorder(enabled=False)
        self.tracker = tracker

        self.state = SessionState.IDLE
        self.identity: Optional[TurnIdentity] = None
        self.turn: Optional[TurnAggregator] = None
        self.finish_reason: Optional[str] = None
        self.error: Optional[ProxyError] = None
        self.protocol_errors = 0

        self._subscription: Optional[TurnSubscription] = None
        self._normalizer = EventNormalizer()
        self._started_at: Optional[float] = None
        self._reasoning_seen = False
        self._released = False

    @property
    def conversation_id(self) -> Optional[str]:
        return self.identity.conversation_id if self.identity else None

    async def start(self) -> None:
        """Start the upstream turn (idle -> streaming).

        Raises ``UpstreamAbort`` (or the runtime's ``ProxyError``) when the
        turn cannot start; no chunk has been produced at that point.
        """
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"session already {self.state.value}")
        self._started_at = time.perf_counter()
        try:
            subscription = await self.runtime.start_turn(self.request)
        except ProxyError as exc:
            self._fail(exc)
            self._release()
            raise
        except Exception as exc:
            logger.exception("[%s] Runtime failed to start the turn", self.request_id)
            error = UpstreamAbort(f"Runtime failed to start the turn: {exc}")
            self._fail(error)
            self._release()
            raise error from exc

        self._subscription = subscription
        conversation_id = subscription.session_id or self.request.conversation_id
        self.identity = TurnIdentity.create(self.request.client_model, conversation_id)
        self.turn = TurnAggregator(expose_reasoning=self.expose_reasoning)
        self.state = SessionState.STREAMING
        self.diagnostics.record(
            "turn.started",
            request_id=self.request_id,
            turn_id=self.identity.turn_id,
            model=self.request.client_model,
            upstream_model=self.request.model,
            conversation_id=conversation_id,
        )

    async def _emissions(self) -> AsyncIterator[Emission]:
        """Pull, normalize and aggregate until the turn ends."""
        assert self._subscription is not None and self.turn is not None
        try:
            async for raw in self._subscription:
                for event in self._normalizer.normalize(raw):
                    event = self._screen(event)
                    if event is None:
                        continue
                    if isinstance(event, TurnComplete):
                        self.state = SessionState.FINALIZING
                    for emission in self.turn.apply(event):
                        yield emission
                    self._note_reasoning()
                    if self.turn.finished:
                        return
            # runtime went quiet without finishing the turn
            for emission in self.turn.apply(
                UpstreamError(
                    message="runtime stream ended before the turn completed",
                    kind=UpstreamProtocolError.kind,
                )
            ):
                yield emission
        finally:
            await self._close_subscription()

    def _screen(self, event: Any) -> Optional[Any]:
        """Absorb isolated protocol errors; escalate once they repeat."""
        if not (isinstance(event, UpstreamError) and event.is_protocol_error):
            return event
        self.protocol_errors += 1
        logger.warning(
            "[%s] Upstream protocol error %d/%d: %s",
            self.request_id,
            self.protocol_errors,
            self.max_protocol_errors,
            event.message,
        )
        self.diagnostics.record(
            "upstream.protocol_error",
            request_id=self.request_id,
            count=self.protocol_errors,
            message=event.message,
        )
        if self.protocol_errors < self.max_protocol_errors:
            return None
        return UpstreamError(
            message=(
                f"Too many upstream protocol errors ({self.protocol_errors}); "
                f"last: {event.message}"
            ),
            kind=UpstreamAbort.kind,
        )

    def _note_reasoning(self) -> None:
        if self._reasoning_seen or self.turn is None:
            return
        if self.turn.state.reasoning_buffer:
            self._reasoning_seen = True
            self.diagnostics.record(
                "reasoning.detected",
                request_id=self.request_id,
                turn_id=self.identity.turn_id if self.identity else None,
            )

    async def stream(self) -> AsyncIterator[ExternalChunk]:
        """Yield delta chunks then exactly one terminal chunk."""
        if self.state is SessionState.IDLE:
            await self.start()
        if self.state is not SessionState.STREAMING:
            raise RuntimeError(f"session already {self.state.value}")

        encoder = ChunkEncoder(self.identity)
        emissions = self._emissions()
        try:
            async for emission in emissions:
                if isinstance(emission, Abort):
                    error = error_for_kind(emission.kind, emission.message)
                    self._fail(error)
                    yield encoder.terminal(FINISH_ERROR, error.kind, error.message)
                    return
                if isinstance(emission, Finalization):
                    self._finish(emission.finish_reason)
                    yield encoder.terminal(emission.finish_reason)
                    return
                chunk = encoder.encode(emission)
                if chunk is not None:
                    yield chunk
        except (asyncio.CancelledError, GeneratorExit):
            self._disconnect()
            raise
        except ProxyError as exc:
            self._fail(exc)
            yield encoder.terminal(FINISH_ERROR, exc.kind, exc.message)
        except Exception as exc:
            logger.exception("[%s] Translation failed mid-stream", self.request_id)
            error = UpstreamAbort(f"Translation failed: {exc}")
            self._fail(error)
            yield encoder.terminal(FINISH_ERROR, error.kind, error.message)
        finally:
            await emissions.aclose()
            self._release()

    async def sse_stream(self, heartbeat_interval: float = 0.0) -> AsyncIterator[bytes]:
        """SSE-framed ``stream()`` plus ``[DONE]``.

        With a positive ``heartbeat_interval`` a ``: keep-alive`` comment is
        sent whenever no chunk was produced for that many seconds.
        """
        chunks = self.stream()
        pending: Optional[asyncio.Future] = None
        try:
            if heartbeat_interval <= 0:
                async for chunk in chunks:
                    yield chunk.to_sse()
            else:
                while True:
                    if pending is None:
                        pending = asyncio.ensure_future(chunks.__anext__())
                    done, _ = await asyncio.wait({pending}, timeout=heartbeat_interval)
                    if not done:
                        yield SSE_KEEPALIVE
                        continue
                    finished, pending = pending, None
                    try:
                        chunk = finished.result()
                    except StopAsyncIteration:
                        break
                    yield chunk.to_sse()
            yield SSE_DONE
        finally:
            if pending is not None and not pending.done():
                pending.cancel()
                await asyncio.gather(pending, return_exceptions=True)
            await chunks.aclose()

    async def pump(
        self,
        send: Callable[[bytes], Awaitable[None]],
        heartbeat_interval: float = 0.0,
    ) -> None:
        """Write the SSE stream through ``send``.

        A failing ``send`` cancels the upstream turn and raises
        ``TransportError``.
        """
        stream = self.sse_stream(heartbeat_interval)
        try:
            async for data in stream:
                try:
                    await send(data)
                except Exception as exc:
                    error = TransportError(f"Failed to write to client: {exc}")
                    if self.state in (SessionState.STREAMING, SessionState.FINALIZING):
                        self._fail(error)
                    else:
                        self.error = error
                    raise error from exc
        finally:
            await stream.aclose()

    async def collect(self) -> dict[str, Any]:
        """Run the turn to completion and return one ``chat.completion``."""
        if self.state is SessionState.IDLE:
            await self.start()
        if self.state is not SessionState.STREAMING:
            raise RuntimeError(f"session already {self.state.value}")

        accumulator = ResponseAccumulator(self.identity, expose_reasoning=self.expose_reasoning)
        emissions = self._emissions()
        try:
            async for emission in emissions:
                if isinstance(emission, Abort):
                    error = error_for_kind(emission.kind, emission.message)
                    self._fail(error)
                    raise error
                if isinstance(emission, Finalization):
                    self._finish(emission.finish_reason)
                    return accumulator.build(emission.finish_reason)
                accumulator.add(emission)
            raise UpstreamProtocolError("runtime stream ended before the turn completed")
        except asyncio.CancelledError:
            self._disconnect()
            raise
        except ProxyError as exc:
            if self.state is not SessionState.ERRORED:
                self._fail(exc)
            raise
        except Exception as exc:
            logger.exception("[%s] Translation failed", self.request_id)
            error = UpstreamAbort(f"Translation failed: {exc}")
            self._fail(error)
            raise error from exc
        finally:
            await emissions.aclose()
            self._release()

    async def aclose(self) -> None:
        """Abandon the session (client gone before streaming began, ...)."""
        if self.state in (SessionState.IDLE, SessionState.STREAMING, SessionState.FINALIZING):
            self._disconnect()
        await self._close_subscription()
        self._release()

    def _finish(self, finish_reason: str) -> None:
        self.state = SessionState.CLOSED
        self.finish_reason = finish_reason
        state = self.turn.state if self.turn else None
        self.diagnostics.record(
            "turn.finished",
            request_id=self.request_id,
            turn_id=self.identity.turn_id if self.identity else None,
            finish_reason=finish_reason,
            text_chars=state.emitted_text_len if state else 0,
            tool_calls=len(state.tool_calls) if state else 0,
            reasoning_chars=len(state.reasoning_buffer) if state else 0,
            duration_ms=self._elapsed_ms(),
        )
        logger.info(
            "[%s] Turn finished: finish_reason=%s", self.request_id, finish_reason
        )

    def _fail(self, error: ProxyError) -> None:
        self.state = SessionState.ERRORED
        self.finish_reason = FINISH_ERROR
        self.error = error
        self.diagnostics.record(
            "turn.errored",
            request_id=self.request_id,
            turn_id=self.identity.turn_id if self.identity else None,
            kind=error.kind,
            message=error.message,
            duration_ms=self._elapsed_ms(),
        )
        logger.error("[%s] Turn failed (%s): %s", self.request_id, error.kind, error.message)

    def _disconnect(self) -> None:
        if self.state in (SessionState.CLOSED, SessionState.ERRORED):
            return
        self.state = SessionState.CLOSED
        self.diagnostics.record(
            "client.disconnected",
            request_id=self.request_id,
            turn_id=self.identity.turn_id if self.identity else None,
            duration_ms=self._elapsed_ms(),
        )
        logger.info("[%s] Client disconnected; cancelling runtime turn", self.request_id)
        if self.tracker is not None:
            self.tracker.finish("disconnected")

    async def _close_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        try:
            await subscription.aclose()
        except Exception as exc:
            logger.warning("[%s] Error closing runtime subscription: %s", self.request_id, exc)

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self.turn = None
        if self.tracker is not None:
            self.tracker.finish("errored" if self.state is SessionState.ERRORED else "completed")

    def _elapsed_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        return round((time.perf_counter() - self._started_at) * 1000.0, 2)
