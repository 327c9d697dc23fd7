"""API module for the proxy."""

from .routes import chat_completions, handle_chat_request, list_models, usage_router

__all__ = [
    "chat_completions",
    "handle_chat_request",
    "list_models",
    "usage_router",
]
