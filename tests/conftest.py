"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Generator

import pytest

# Make the project root importable without an editable install
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


# =============================================================================
# Configuration Builders
# =============================================================================


def build_proxy_config(
    *,
    model_name: str = "gpt-4.1",
    upstream_model: str = "gpt-4.1-runtime",
    passthrough: bool = False,
    expose_reasoning: bool = False,
    heartbeat_interval: float = 0,
    max_protocol_errors: int = 3,
    runtime_url: str = "http://runtime.local",
) -> dict[str, Any]:
    """Build a config dict for app and session tests.

    Args:
        model_name: Client-facing model name
        upstream_model: Name the runtime receives
        passthrough: Forward unknown model names
        expose_reasoning: Stream reasoning as reasoning_content
        heartbeat_interval: Keep-alive interval (0 disables)
        max_protocol_errors: Protocol errors tolerated per turn
        runtime_url: Runtime base URL

    Returns:
        Config dict for create_app
    """
    return {
        "model_list": [
            {
                "model_name": model_name,
                "model_params": {"model": upstream_model},
            }
        ],
        "runtime": {"base_url": runtime_url, "turn_path": "/v1/turns"},
        "proxy_settings": {
            "passthrough_unknown_models": passthrough,
            "expose_reasoning": expose_reasoning,
            "stream": {
                "heartbeat_interval": heartbeat_interval,
                "max_protocol_errors": max_protocol_errors,
            },
            "diagnostics": {"enabled": True},
        },
    }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_runtime():
    """Create an in-process runtime with no queued turns."""
    from turnproxy.testing import FakeRuntime

    return FakeRuntime()


@pytest.fixture
def proxy_client(fake_runtime) -> Generator[tuple[Any, Any], None, None]:
    """Create a TestClient over an app backed by ``fake_runtime``.

    Returns:
        Tuple of (FakeRuntime, TestClient)

    Usage:
        def test_chat(proxy_client):
            runtime, client = proxy_client
            runtime.enqueue_events([...])
            client.post("/v1/chat/completions", json={...})
    """
    from fastapi.testclient import TestClient

    from turnproxy.main import create_app

    app = create_app(build_proxy_config(), runtime=fake_runtime)
    with TestClient(app) as client:
        yield fake_runtime, client


# =============================================================================
# Runtime Event Builders
# =============================================================================


def text_delta(text: str) -> dict[str, Any]:
    return {"type": "agent_message_delta", "delta": text}


def tool_call_delta(index: int, arguments: str = "", name: str | None = None, call_id: str | None = None) -> dict[str, Any]:
    event: dict[str, Any] = {"type": "tool_call_delta", "index": index, "arguments": arguments}
    if name is not None:
        event["name"] = name
    if call_id is not None:
        event["id"] = call_id
    return event


def reasoning_delta(text: str) -> dict[str, Any]:
    return {"type": "agent_reasoning_delta", "delta": text}


def task_complete(final_text: str | None = None) -> dict[str, Any]:
    return {"type": "task_complete", "last_agent_message": final_text}


def runtime_error(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}
