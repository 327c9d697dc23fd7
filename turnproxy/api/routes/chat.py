"""OpenAI-compatible chat completions endpoint."""

import json
import logging
import uuid
from typing import Any, Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from ...core.exceptions import InvalidRequestError, ProxyError
from ...core.registry import get_state
from ...translation import TranslationSession
from ...upstream import build_turn_request
from ...usage_metrics import SESSION_COUNTERS

logger = logging.getLogger("turnproxy")

CLIENT_CLOSED_REQUEST = 499

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


class SessionStreamingResponse(StreamingResponse):
    """Streams a started session and closes it however the response ends,
    including when the client leaves before the first chunk is pulled."""

    def __init__(
        self,
        session: TranslationSession,
        heartbeat_interval: float = 0.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            session.sse_stream(heartbeat_interval),
            media_type="text/event-stream",
            headers=headers,
        )
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.session.aclose()


def error_response(exc: ProxyError) -> JSONResponse:
    """Render a ``ProxyError`` as an OpenAI style error response."""
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


def _parse_payload(body: bytes) -> Mapping[str, Any]:
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc
    if not isinstance(payload, Mapping):
        raise InvalidRequestError(
            "Request body must be a JSON object", code="invalid_json_shape"
        )
    return payload


async def handle_chat_request(request: Request) -> Response:
    """Translate one chat completions request into a runtime turn.

    Validation and turn start failures become plain error responses. Once a
    stream has started, failures are reported in its terminal chunk.
    """
    request_id = uuid.uuid4().hex[:8]
    logger.info(f"[{request_id}] Handling {request.method} request to {request.url.path}")
    state = get_state()
    tracker = SESSION_COUNTERS.start_session()

    try:
        body = await request.body()
    except ClientDisconnect:
        logger.info(f"[{request_id}] Client disconnected before sending the body")
        tracker.finish("disconnected")
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    try:
        payload = _parse_payload(body)
        turn_request = build_turn_request(payload, state.resolver, request_id=request_id)
    except ProxyError as exc:
        logger.error(f"[{request_id}] Rejected request: {exc.message}")
        tracker.finish("errored")
        return error_response(exc)

    is_stream = bool(payload.get("stream"))
    state.diagnostics.record(
        "request.received",
        request_id=request_id,
        path=request.url.path,
        model=turn_request.client_model,
        upstream_model=turn_request.model,
        stream=is_stream,
        messages=len(turn_request.messages),
        conversation_id=turn_request.conversation_id,
    )
    logger.info(
        f"[{request_id}] Processing request for model {turn_request.client_model}, stream={is_stream}"
    )

    stream_settings = state.settings.stream
    session = TranslationSession(
        state.runtime,
        turn_request,
        max_protocol_errors=stream_settings.max_protocol_errors,
        expose_reasoning=state.settings.expose_reasoning,
        diagnostics=state.diagnostics,
        tracker=tracker,
    )

    if not is_stream:
        try:
            completion = await session.collect()
        except ProxyError as exc:
            return error_response(exc)
        return JSONResponse(completion)

    try:
        await session.start()
    except ProxyError as exc:
        return error_response(exc)

    headers = dict(STREAM_HEADERS)
    if session.conversation_id:
        headers["x-conversation-id"] = session.conversation_id
    return SessionStreamingResponse(
        session,
        stream_settings.heartbeat_interval,
        headers=headers,
    )


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    POST /chat/completions
    """
    logger.info("Received chat completions request")
    return await handle_chat_request(request)
