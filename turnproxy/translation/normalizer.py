"""Normalize raw agent-runtime payloads into ``UpstreamEvent`` values.

Runtime payloads are JSON objects with a ``type`` field, optionally wrapped
in a submission envelope ``{"id": ..., "msg": {...}}``:

    {"type": "agent_message_delta", "delta": "Hel"}
    {"type": "tool_call_delta", "index": 0, "id": "call_1", "name": "ls", "arguments": "{"}
    {"type": "raw_response_item", "item": {"type": "function_call", "call_id": "c1", ...}}
    {"type": "agent_reasoning_delta", "delta": "thinking"}
    {"type": "task_complete", "last_agent_message": "Hello"}
    {"type": "error", "message": "model overloaded"}

Anything that cannot be understood becomes an ``UpstreamError`` with the
``upstream_protocol_error`` kind instead of being dropped.
"""

import json
import logging
from typing import Any, Mapping, Optional

from ..core.exceptions import UpstreamAbort, UpstreamProtocolError
from .events import (
    ReasoningDelta,
    TextDelta,
    ToolCallDelta,
    TurnComplete,
    UpstreamError,
    UpstreamEvent,
)

logger = logging.getLogger("turnproxy")

TEXT_DELTA_TYPES = {"agent_message_delta"}
REASONING_DELTA_TYPES = {
    "agent_reasoning_delta",
    "agent_reasoning_raw_content_delta",
    "reasoning_content_delta",
}
REASONING_FULL_TYPES = {"agent_reasoning", "agent_reasoning_raw_content"}
COMPLETE_TYPES = {"task_complete", "turn_complete"}
RESPONSE_ITEM_TYPES = {"raw_response_item", "response_item"}
TOOL_ITEM_TYPES = {"function_call", "custom_tool_call", "local_shell_call"}

# Informational runtime events with no counterpart on the client wire.
IGNORED_TYPES = {
    "session_configured",
    "task_started",
    "turn_started",
    "token_count",
    "warning",
    "agent_message",
    "user_message",
    "agent_reasoning_section_break",
    "background_event",
    "turn_diff",
    "plan_update",
    "get_history_entry_response",
    "shutdown_complete",
}
IGNORED_PREFIXES = (
    "exec_command_",
    "exec_approval_",
    "mcp_tool_call_",
    "mcp_list_tools",
    "patch_apply_",
    "apply_patch_",
    "web_search_",
)


def _protocol_error(message: str) -> UpstreamError:
    return UpstreamError(message=message, kind=UpstreamProtocolError.kind)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


class EventNormalizer:
    """Map raw payloads to events, preserving arrival order.

    One normalizer serves one turn. It keeps which call owns each tool-call
    index: complete tool-call items (which carry no index of their own) get
    the next free index, and a fragment whose id disagrees with the owner of
    its index is reported instead of being merged into the wrong call.
    """

    def __init__(self) -> None:
        self._index_by_call_id: dict[str, int] = {}
        self._owner_by_index: dict[int, Optional[str]] = {}
        self._complete_indices: set[int] = set()
        self._next_index = 0

    def normalize(self, raw: Any) -> list[UpstreamEvent]:
        payload = self._decode(raw)
        if isinstance(payload, UpstreamError):
            return [payload]

        if isinstance(payload.get("msg"), Mapping):
            payload = payload["msg"]

        event_type = payload.get("type")
        if not isinstance(event_type, str) or not event_type:
            return [_protocol_error("upstream payload has no event type")]

        if event_type in TEXT_DELTA_TYPES:
            delta = payload.get("delta")
            if not isinstance(delta, str):
                return [_protocol_error(f"{event_type} without a text delta")]
            return [TextDelta(delta)] if delta else []

        if event_type == "tool_call_delta":
            return self._tool_call_delta(payload)

        if event_type in RESPONSE_ITEM_TYPES:
            return self._response_item(payload.get("item"))

        if event_type in REASONING_DELTA_TYPES:
            delta = payload.get("delta")
            if not isinstance(delta, str):
                return [_protocol_error(f"{event_type} without a text delta")]
            return [ReasoningDelta(delta)] if delta else []

        if event_type in REASONING_FULL_TYPES:
            text = payload.get("text")
            if not isinstance(text, str):
                return [_protocol_error(f"{event_type} without text")]
            return [ReasoningDelta(text)] if text else []

        if event_type in COMPLETE_TYPES:
            final_text = payload.get("last_agent_message")
            if final_text is not None and not isinstance(final_text, str):
                return [_protocol_error(f"{event_type} with non-text last_agent_message")]
            return [TurnComplete(final_text=final_text)]

        if event_type == "error":
            message = _as_text(payload.get("message")) or "upstream reported an error"
            return [UpstreamError(message=message, kind=UpstreamAbort.kind)]

        if event_type == "turn_aborted":
            reason = _as_text(payload.get("reason")) or "unknown"
            return [UpstreamError(message=f"Turn aborted: {reason}", kind=UpstreamAbort.kind)]

        if event_type == "stream_error":
            message = _as_text(payload.get("message")) or "upstream stream error"
            return [_protocol_error(message)]

        if event_type in IGNORED_TYPES or event_type.startswith(IGNORED_PREFIXES):
            return []

        return [_protocol_error(f"unknown upstream event type '{event_type}'")]

    def _decode(self, raw: Any):
        if isinstance(raw, Mapping):
            return raw
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")
        if isinstance(raw, str):
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Failed to parse upstream payload: %s", raw[:100])
                return _protocol_error("upstream payload is not valid JSON")
            if isinstance(parsed, Mapping):
                return parsed
            return _protocol_error("upstream payload is not a JSON object")
        return _protocol_error(f"unsupported upstream payload type {type(raw).__name__}")

    def _claim_item_index(self, call_id: str) -> int:
        index = self._next_index
        self._next_index += 1
        self._index_by_call_id[call_id] = index
        self._owner_by_index[index] = call_id
        self._complete_indices.add(index)
        return index

    def _claim_delta_index(self, index: int, call_id: Optional[str]) -> Optional[str]:
        """Bind ``index`` to ``call_id``; return a message when they disagree."""
        if index in self._complete_indices:
            return f"tool_call_delta for index {index}, which already holds a complete call"
        owner = self._owner_by_index.get(index)
        if call_id:
            if owner and owner != call_id:
                return f"tool_call_delta index {index} already belongs to call '{owner}', not '{call_id}'"
            known = self._index_by_call_id.get(call_id)
            if known is not None and known != index:
                return f"tool call '{call_id}' moved from index {known} to {index}"
            self._index_by_call_id[call_id] = index
            self._owner_by_index[index] = call_id
        else:
            self._owner_by_index.setdefault(index, None)
        self._next_index = max(self._next_index, index + 1)
        return None

    def _tool_call_delta(self, payload: Mapping[str, Any]) -> list[UpstreamEvent]:
        index = payload.get("index")
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            return [_protocol_error("tool_call_delta without a valid index")]
        call_id = payload.get("id") or payload.get("call_id")
        if not isinstance(call_id, str):
            call_id = None
        name = payload.get("name")
        arguments = payload.get("arguments", "")
        if name is not None and not isinstance(name, str):
            return [_protocol_error("tool_call_delta with a non-text name")]
        arguments = _as_text(arguments) or ""
        conflict = self._claim_delta_index(index, call_id)
        if conflict:
            return [_protocol_error(conflict)]
        return [
            ToolCallDelta(
                call_index=index,
                arguments_fragment=arguments,
                name=name or None,
                call_id=call_id,
            )
        ]

    def _response_item(self, item: Any) -> list[UpstreamEvent]:
        if not isinstance(item, Mapping):
            return [_protocol_error("response item payload is not an object")]
        item_type = item.get("type")
        if item_type not in TOOL_ITEM_TYPES:
            # messages, reasoning items and tool outputs are mirrored by other events
            return []
        call_id = item.get("call_id") or item.get("id")
        if not isinstance(call_id, str) or not call_id:
            return [_protocol_error(f"{item_type} item without a call_id")]
        if call_id in self._index_by_call_id:
            # arguments were already delivered as tool_call_delta fragments
            return []
        if item_type == "custom_tool_call":
            arguments = _as_text(item.get("input")) or ""
            name = item.get("name")
        elif item_type == "local_shell_call":
            arguments = _as_text(item.get("action")) or "{}"
            name = item.get("name") or "local_shell"
        else:
            arguments = _as_text(item.get("arguments")) or ""
            name = item.get("name")
        if not isinstance(name, str) or not name:
            return [_protocol_error(f"{item_type} item without a name")]
        index = self._claim_item_index(call_id)
        return [
            ToolCallDelta(
                call_index=index,
                arguments_fragment=arguments,
                name=name,
                call_id=call_id,
            )
        ]
