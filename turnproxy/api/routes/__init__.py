"""API routes for the proxy."""

from .chat import chat_completions, error_response, handle_chat_request
from .models import list_models
from .usage import router as usage_router

__all__ = [
    "chat_completions",
    "error_response",
    "handle_chat_request",
    "list_models",
    "usage_router",
]
