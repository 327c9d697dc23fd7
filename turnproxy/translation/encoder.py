"""Render emissions as OpenAI Chat Completions wire objects.

Streaming mode produces one ``chat.completion.chunk`` per emission:

    data: {"id":"chatcmpl-..","object":"chat.completion.chunk","model":"gpt-4.1",
           "sequence":0,"choices":[{"index":0,"delta":{"role":"assistant","content":"Hel"},
           "finish_reason":null}]}
    ...
    data: {"id":"chatcmpl-..",...,"choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}

Non-streaming mode accumulates the same emissions into one
``chat.completion`` object.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from ..core.sse import encode_sse_json
from .events import (
    FINISH_ERROR,
    Emission,
    ReasoningEmission,
    TextEmission,
    ToolCallEmission,
)


def new_turn_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class TurnIdentity:
    """Metadata repeated verbatim on every chunk of a turn."""

    turn_id: str
    model: str
    created: int
    conversation_id: Optional[str] = None

    @classmethod
    def create(cls, model: str, conversation_id: Optional[str] = None) -> "TurnIdentity":
        if not model:
            raise ValueError("model identifier is required")
        return cls(
            turn_id=new_turn_id(),
            model=model,
            created=int(time.time()),
            conversation_id=conversation_id,
        )


@dataclass(frozen=True)
class ExternalChunk:
    payload: dict[str, Any]
    sequence: int
    finish_reason: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.finish_reason is not None

    @property
    def delta(self) -> dict[str, Any]:
        return self.payload["choices"][0]["delta"]

    def to_sse(self) -> bytes:
        return encode_sse_json(self.payload)


class ChunkEncoder:
    """Streaming encoder; owns the per-turn sequence counter."""

    def __init__(self, identity: TurnIdentity) -> None:
        self.identity = identity
        self._sequence = 0
        self._role_sent = False

    @property
    def chunks_sent(self) -> int:
        return self._sequence

    def encode(self, emission: Emission) -> Optional[ExternalChunk]:
        """Render one content emission; ``None`` when there is nothing to send."""
        delta: dict[str, Any] = {}
        if isinstance(emission, TextEmission):
            if not emission.text:
                return None
            delta["content"] = emission.text
        elif isinstance(emission, ToolCallEmission):
            delta["tool_calls"] = [self._tool_call_delta(emission)]
        elif isinstance(emission, ReasoningEmission):
            if not emission.text:
                return None
            delta["reasoning_content"] = emission.text
        else:
            raise TypeError(f"cannot encode {type(emission).__name__} as a delta chunk")

        if not self._role_sent:
            delta = {"role": "assistant", **delta}
            self._role_sent = True
        return self._chunk(delta, None)

    def terminal(
        self,
        finish_reason: str,
        error_kind: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> ExternalChunk:
        """Render the terminal chunk: empty delta, finish signal set."""
        extra = None
        if finish_reason == FINISH_ERROR:
            extra = {
                "error": {
                    "message": error_message or "upstream error",
                    "type": error_kind or "proxy_error",
                }
            }
        return self._chunk({}, finish_reason, extra)

    @staticmethod
    def _tool_call_delta(emission: ToolCallEmission) -> dict[str, Any]:
        entry: dict[str, Any] = {"index": emission.index}
        function: dict[str, Any] = {}
        if emission.call_id is not None:
            entry["id"] = emission.call_id
            entry["type"] = "function"
            function["name"] = emission.name or ""
        elif emission.name is not None:
            function["name"] = emission.name
        function["arguments"] = emission.arguments
        entry["function"] = function
        return entry

    def _chunk(
        self,
        delta: dict[str, Any],
        finish_reason: Optional[str],
        extra: Optional[dict[str, Any]] = None,
    ) -> ExternalChunk:
        identity = self.identity
        payload: dict[str, Any] = {
            "id": identity.turn_id,
            "object": "chat.completion.chunk",
            "created": identity.created,
            "model": identity.model,
            "sequence": self._sequence,
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "finish_reason": finish_reason,
                }
            ],
        }
        if identity.conversation_id:
            payload["conversation_id"] = identity.conversation_id
        if extra:
            payload.update(extra)
        chunk = ExternalChunk(payload=payload, sequence=self._sequence, finish_reason=finish_reason)
        self._sequence += 1
        return chunk


class ResponseAccumulator:
    """Non-streaming encoder: folds emissions into one ``chat.completion``."""

    def __init__(self, identity: TurnIdentity, expose_reasoning: bool = False) -> None:
        self.identity = identity
        self.expose_reasoning = expose_reasoning
        self._text: list[str] = []
        self._reasoning: list[str] = []
        self._tool_calls: dict[int, dict[str, Any]] = {}

    def add(self, emission: Emission) -> None:
        if isinstance(emission, TextEmission):
            self._text.append(emission.text)
        elif isinstance(emission, ToolCallEmission):
            call = self._tool_calls.get(emission.index)
            if call is None:
                call = {
                    "index": emission.index,
                    "id": emission.call_id,
                    "type": "function",
                    "function": {"name": emission.name or "", "arguments": ""},
                }
                self._tool_calls[emission.index] = call
            elif emission.name is not None and not call["function"]["name"]:
                call["function"]["name"] = emission.name
            call["function"]["arguments"] += emission.arguments
        elif isinstance(emission, ReasoningEmission):
            self._reasoning.append(emission.text)
        else:
            raise TypeError(f"cannot accumulate {type(emission).__name__}")

    @property
    def text(self) -> str:
        return "".join(self._text)

    @property
    def tool_calls(self) -> list[dict[str, Any]]:
        return [self._tool_calls[index] for index in sorted(self._tool_calls)]

    def build(self, finish_reason: str) -> dict[str, Any]:
        tool_calls = self.tool_calls
        text = self.text
        message: dict[str, Any] = {
            "role": "assistant",
            "content": text if (text or not tool_calls) else None,
        }
        if tool_calls:
            message["tool_calls"] = tool_calls
        if self.expose_reasoning and self._reasoning:
            message["reasoning_content"] = "".join(self._reasoning)

        identity = self.identity
        response: dict[str, Any] = {
            "id": identity.turn_id,
            "object": "chat.completion",
            "created": identity.created,
            "model": identity.model,
            "choices": [
                {
                    "index": 0,
                    "message": message,
                    "finish_reason": finish_reason,
                }
            ],
            "usage": {
                "prompt_tokens": 0,
                "completion_tokens": 0,
                "total_tokens": 0,
            },
        }
        if identity.conversation_id:
            response["conversation_id"] = identity.conversation_id
        return response
