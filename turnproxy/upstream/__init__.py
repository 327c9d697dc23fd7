"""Upstream agent runtime collaborators."""

from .base import AgentRuntime, IteratorSubscription, TurnRequest, TurnSubscription
from .bridge import EventBridge
from .callback_runtime import CallbackAgentRuntime
from .http_runtime import HttpAgentRuntime, HttpTurnSubscription, format_httpx_error
from .messages import build_turn_request, merge_messages

__all__ = [
    "AgentRuntime",
    "CallbackAgentRuntime",
    "EventBridge",
    "HttpAgentRuntime",
    "HttpTurnSubscription",
    "IteratorSubscription",
    "TurnRequest",
    "TurnSubscription",
    "build_turn_request",
    "format_httpx_error",
    "merge_messages",
]
