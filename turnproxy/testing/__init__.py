"""Testing utilities for in-process translation simulations."""

from .assertions import (
    assert_chunk_stream_valid,
    assert_openai_chat_valid,
    assert_terminal_error,
    collect_reasoning,
    collect_text,
    collect_tool_calls,
    parse_sse_chunks,
    parse_sse_stream,
)
from .fake_runtime import (
    FakeRuntime,
    FakeRuntimeServer,
    FakeSubscription,
    ScriptedTurn,
    StreamError,
)

__all__ = [
    # Fake runtimes
    "FakeRuntime",
    "FakeRuntimeServer",
    "FakeSubscription",
    "ScriptedTurn",
    "StreamError",
    # Assertions
    "assert_chunk_stream_valid",
    "assert_openai_chat_valid",
    "assert_terminal_error",
    "collect_reasoning",
    "collect_text",
    "collect_tool_calls",
    "parse_sse_chunks",
    "parse_sse_stream",
]
