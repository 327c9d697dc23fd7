"""Core module initialization."""

from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    ProxyError,
    TransportError,
    UpstreamAbort,
    UpstreamProtocolError,
)
from .models import ModelResolver, ModelRoute, normalize_request_model
from .registry import get_state, set_state
from .sse import SSE_DONE, SSE_KEEPALIVE, SSEDecoder, SSEEvent, encode_sse_json

__all__ = [
    "ConfigurationError",
    "InvalidRequestError",
    "ModelResolver",
    "ModelRoute",
    "ProxyError",
    "SSEDecoder",
    "SSEEvent",
    "SSE_DONE",
    "SSE_KEEPALIVE",
    "TransportError",
    "UpstreamAbort",
    "UpstreamProtocolError",
    "encode_sse_json",
    "get_state",
    "normalize_request_model",
    "set_state",
]
