"""httpx client for an agent runtime that streams turn events over SSE.

The runtime accepts ``POST {base_url}{turn_path}`` with a JSON body
(``model``, ``messages``, ``input``, optional ``session_id``) and answers
with ``text/event-stream``. Each ``data:`` line carries one event object;
``data: [DONE]`` ends the stream. The ``x-session-id`` response header names
the runtime session so clients can continue the conversation.
"""

import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from ..core.exceptions import UpstreamAbort
from ..core.sse import DONE_SENTINEL, SSEDecoder, SSEEvent
from ..settings import RuntimeSettings
from .base import AgentRuntime, TurnRequest, TurnSubscription

logger = logging.getLogger("turnproxy")

SESSION_HEADER = "x-session-id"
CONNECT_TIMEOUT = 10.0
MAX_ERROR_BODY = 500


def format_httpx_error(exc: Exception, url: Optional[str] = None, timeout: Optional[float] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    try:
        request = getattr(exc, "request", None)
    except RuntimeError:
        # httpx raises when .request was never set
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException) and timeout:
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def _event_payload(event: SSEEvent) -> Any:
    """Return the payload for one SSE event; named events get their type filled in."""
    event_type = event.event_type
    if not event_type:
        return event.data
    try:
        parsed = json.loads(event.data)
    except (TypeError, json.JSONDecodeError):
        return event.data
    if isinstance(parsed, dict) and "type" not in parsed and "msg" not in parsed:
        parsed["type"] = event_type
    return parsed


class HttpTurnSubscription(TurnSubscription):
    """Iterates the SSE body of one runtime response."""

    def __init__(self, response: httpx.Response, url: str, session_id: Optional[str] = None) -> None:
        self._response = response
        self._url = url
        self.session_id = session_id
        self._events = self._iter_payloads()
        self.closed = False

    async def _iter_payloads(self) -> AsyncIterator[Any]:
        decoder = SSEDecoder()
        try:
            async for chunk in self._response.aiter_bytes():
                for event in decoder.feed(chunk):
                    if event.data is None:
                        continue
                    if event.data.strip() == DONE_SENTINEL:
                        return
                    yield _event_payload(event)
            for event in decoder.flush():
                if event.data is None or event.data.strip() == DONE_SENTINEL:
                    continue
                yield _event_payload(event)
        except httpx.HTTPError as exc:
            raise UpstreamAbort(
                f"Runtime stream failed: {format_httpx_error(exc, self._url)}"
            ) from exc

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration
        return await self._events.__anext__()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._events.aclose()
        finally:
            # dropping the connection cancels the turn on the runtime side
            await self._response.aclose()


class HttpAgentRuntime(AgentRuntime):
    """Agent runtime reached over HTTP."""

    def __init__(
        self,
        base_url: str,
        turn_path: str = "/v1/turns",
        api_key: Optional[str] = None,
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.turn_path = turn_path if turn_path.startswith("/") else f"/{turn_path}"
        self.api_key = api_key
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(CONNECT_TIMEOUT, timeout)),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "HttpAgentRuntime":
        return cls(
            base_url=settings.base_url,
            turn_path=settings.turn_path,
            api_key=settings.api_key,
            timeout=settings.timeout,
            transport=transport,
        )

    @property
    def turn_url(self) -> str:
        return f"{self.base_url}{self.turn_path}"

    def _headers(self, request: TurnRequest) -> dict[str, str]:
        headers = {
            "accept": "text/event-stream",
            "content-type": "application/json",
        }
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        if request.request_id:
            headers["x-request-id"] = request.request_id
        return headers

    async def start_turn(self, request: TurnRequest) -> TurnSubscription:
        url = self.turn_url
        http_request = self._client.build_request(
            "POST", url, json=request.to_payload(), headers=self._headers(request)
        )
        logger.info(
            "[%s] Starting runtime turn at %s (model=%s)", request.request_id, url, request.model
        )
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamAbort(
                f"Runtime unreachable: {format_httpx_error(exc, url, self.timeout)}"
            ) from exc

        if response.status_code >= 400:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
            detail = body.decode("utf-8", errors="replace")[:MAX_ERROR_BODY]
            raise UpstreamAbort(
                f"Runtime rejected the turn with HTTP {response.status_code}: {detail}"
            )

        session_id = response.headers.get(SESSION_HEADER) or request.conversation_id
        return HttpTurnSubscription(response, url, session_id=session_id)

    async def aclose(self) -> None:
        await self._client.aclose()
