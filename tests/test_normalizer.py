"""Tests for mapping raw runtime payloads to upstream events."""

import json

import pytest

from turnproxy.translation.events import (
    ReasoningDelta,
    TextDelta,
    ToolCallDelta,
    TurnComplete,
    UpstreamError,
)
from turnproxy.translation.normalizer import EventNormalizer


@pytest.fixture
def normalizer():
    return EventNormalizer()


class TestTextAndReasoning:
    """Tests for text and reasoning payloads."""

    def test_agent_message_delta(self, normalizer):
        assert normalizer.normalize({"type": "agent_message_delta", "delta": "Hel"}) == [
            TextDelta("Hel")
        ]

    def test_empty_delta_produces_nothing(self, normalizer):
        assert normalizer.normalize({"type": "agent_message_delta", "delta": ""}) == []

    def test_unwraps_submission_envelope(self, normalizer):
        """Test that {"id", "msg"} envelopes are unwrapped."""
        raw = {"id": "1", "msg": {"type": "agent_message_delta", "delta": "x"}}
        assert normalizer.normalize(raw) == [TextDelta("x")]

    def test_accepts_json_text_and_bytes(self, normalizer):
        raw = json.dumps({"type": "agent_message_delta", "delta": "a"})
        assert normalizer.normalize(raw) == [TextDelta("a")]
        assert normalizer.normalize(raw.encode("utf-8")) == [TextDelta("a")]

    @pytest.mark.parametrize(
        "event_type",
        ["agent_reasoning_delta", "agent_reasoning_raw_content_delta", "reasoning_content_delta"],
    )
    def test_reasoning_deltas(self, normalizer, event_type):
        assert normalizer.normalize({"type": event_type, "delta": "hmm"}) == [ReasoningDelta("hmm")]

    def test_full_reasoning_text(self, normalizer):
        assert normalizer.normalize({"type": "agent_reasoning", "text": "plan"}) == [
            ReasoningDelta("plan")
        ]

    def test_full_agent_message_is_ignored(self, normalizer):
        """Test that agent_message is dropped; its text arrives as deltas and in task_complete."""
        assert normalizer.normalize({"type": "agent_message", "message": "Hello"}) == []


class TestToolCalls:
    """Tests for tool call payloads."""

    def test_tool_call_delta(self, normalizer):
        raw = {"type": "tool_call_delta", "index": 0, "id": "call_1", "name": "ls", "arguments": "{"}
        assert normalizer.normalize(raw) == [
            ToolCallDelta(call_index=0, arguments_fragment="{", name="ls", call_id="call_1")
        ]

    def test_tool_call_delta_requires_index(self, normalizer):
        (event,) = normalizer.normalize({"type": "tool_call_delta", "arguments": "{}"})
        assert isinstance(event, UpstreamError)
        assert event.is_protocol_error

    @pytest.mark.parametrize("index", [-1, "0", True, 1.5])
    def test_tool_call_delta_rejects_bad_index(self, normalizer, index):
        (event,) = normalizer.normalize({"type": "tool_call_delta", "index": index})
        assert event.is_protocol_error

    def test_object_arguments_are_serialized(self, normalizer):
        (event,) = normalizer.normalize(
            {"type": "tool_call_delta", "index": 2, "arguments": {"path": "/"}}
        )
        assert json.loads(event.arguments_fragment) == {"path": "/"}

    def test_function_call_item_gets_next_index(self, normalizer):
        """Test that complete function_call items are indexed in arrival order."""
        first = normalizer.normalize(
            {
                "type": "raw_response_item",
                "item": {"type": "function_call", "call_id": "c1", "name": "ls", "arguments": "{}"},
            }
        )
        second = normalizer.normalize(
            {
                "type": "raw_response_item",
                "item": {"type": "function_call", "call_id": "c2", "name": "cat", "arguments": "{}"},
            }
        )
        assert first == [ToolCallDelta(0, "{}", name="ls", call_id="c1")]
        assert second == [ToolCallDelta(1, "{}", name="cat", call_id="c2")]

    def test_item_after_streamed_deltas_is_skipped(self, normalizer):
        """Test that an item whose call_id was already streamed is not replayed."""
        normalizer.normalize({"type": "tool_call_delta", "index": 0, "id": "c1", "name": "ls"})
        replay = normalizer.normalize(
            {
                "type": "raw_response_item",
                "item": {"type": "function_call", "call_id": "c1", "name": "ls", "arguments": "{}"},
            }
        )
        assert replay == []

    def test_item_index_follows_streamed_indices(self, normalizer):
        normalizer.normalize({"type": "tool_call_delta", "index": 3, "id": "c1", "name": "ls"})
        (event,) = normalizer.normalize(
            {
                "type": "raw_response_item",
                "item": {"type": "function_call", "call_id": "c2", "name": "cat", "arguments": ""},
            }
        )
        assert event.call_index == 4

    def test_delta_reusing_item_index_is_protocol_error(self, normalizer):
        """Test that a fragment for another call never lands on a complete item's index."""
        (item,) = normalizer.normalize(
            {
                "type": "raw_response_item",
                "item": {"type": "function_call", "call_id": "c1", "name": "ls", "arguments": "{}"},
            }
        )
        (event,) = normalizer.normalize(
            {"type": "tool_call_delta", "index": 0, "id": "c2", "name": "cat", "arguments": '{"p":1}'}
        )
        assert item.call_index == 0
        assert isinstance(event, UpstreamError)
        assert event.is_protocol_error
        assert "complete call" in event.message

    def test_delta_with_conflicting_id_is_protocol_error(self, normalizer):
        normalizer.normalize({"type": "tool_call_delta", "index": 0, "id": "c1", "name": "ls"})
        (event,) = normalizer.normalize(
            {"type": "tool_call_delta", "index": 0, "id": "c2", "arguments": "{}"}
        )
        assert event.is_protocol_error
        assert "'c1'" in event.message

    def test_call_id_cannot_move_to_another_index(self, normalizer):
        normalizer.normalize({"type": "tool_call_delta", "index": 0, "id": "c1", "name": "ls"})
        (event,) = normalizer.normalize({"type": "tool_call_delta", "index": 1, "id": "c1"})
        assert event.is_protocol_error

    def test_fragments_without_id_follow_their_index(self, normalizer):
        normalizer.normalize({"type": "tool_call_delta", "index": 0, "id": "c1", "name": "ls"})
        assert normalizer.normalize({"type": "tool_call_delta", "index": 0, "arguments": "{}"}) == [
            ToolCallDelta(0, "{}")
        ]
        assert normalizer.normalize(
            {"type": "tool_call_delta", "index": 0, "id": "c1", "arguments": "x"}
        ) == [ToolCallDelta(0, "x", call_id="c1")]

    def test_custom_tool_call_uses_input(self, normalizer):
        (event,) = normalizer.normalize(
            {
                "type": "raw_response_item",
                "item": {"type": "custom_tool_call", "call_id": "c9", "name": "apply_patch", "input": "*** Begin"},
            }
        )
        assert event.name == "apply_patch"
        assert event.arguments_fragment == "*** Begin"

    def test_message_items_are_ignored(self, normalizer):
        raw = {"type": "raw_response_item", "item": {"type": "message", "content": []}}
        assert normalizer.normalize(raw) == []

    def test_function_call_without_name_is_protocol_error(self, normalizer):
        (event,) = normalizer.normalize(
            {"type": "raw_response_item", "item": {"type": "function_call", "call_id": "c1"}}
        )
        assert event.is_protocol_error


class TestCompletionAndErrors:
    """Tests for turn completion and error payloads."""

    def test_task_complete_with_final_text(self, normalizer):
        raw = {"type": "task_complete", "last_agent_message": "Hello world"}
        assert normalizer.normalize(raw) == [TurnComplete(final_text="Hello world")]

    def test_task_complete_without_text(self, normalizer):
        assert normalizer.normalize({"type": "task_complete"}) == [TurnComplete(final_text=None)]

    def test_error_is_upstream_abort(self, normalizer):
        (event,) = normalizer.normalize({"type": "error", "message": "overloaded"})
        assert event == UpstreamError(message="overloaded", kind="upstream_abort")
        assert not event.is_protocol_error

    def test_turn_aborted(self, normalizer):
        (event,) = normalizer.normalize({"type": "turn_aborted", "reason": "interrupted"})
        assert event.kind == "upstream_abort"
        assert "interrupted" in event.message

    def test_stream_error_is_protocol_error(self, normalizer):
        (event,) = normalizer.normalize({"type": "stream_error", "message": "retrying"})
        assert event.is_protocol_error


class TestUnknownPayloads:
    """Tests that unparseable payloads surface instead of being dropped."""

    def test_invalid_json(self, normalizer):
        (event,) = normalizer.normalize("{not json")
        assert event.is_protocol_error

    def test_non_object_json(self, normalizer):
        (event,) = normalizer.normalize("[1, 2]")
        assert event.is_protocol_error

    def test_missing_type(self, normalizer):
        (event,) = normalizer.normalize({"delta": "x"})
        assert event.is_protocol_error

    def test_unknown_type(self, normalizer):
        (event,) = normalizer.normalize({"type": "brand_new_event"})
        assert event.is_protocol_error
        assert "brand_new_event" in event.message

    @pytest.mark.parametrize(
        "event_type",
        ["task_started", "token_count", "exec_command_begin", "mcp_tool_call_end", "warning"],
    )
    def test_informational_events_are_ignored(self, normalizer, event_type):
        assert normalizer.normalize({"type": event_type}) == []
