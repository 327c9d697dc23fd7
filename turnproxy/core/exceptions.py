"""Core exceptions for the proxy.

Every error carries a stable ``kind`` string. The kind is what clients see in
``error.type`` of an error response or of a terminal error chunk.
"""

from typing import Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    kind = "proxy_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self, code: Optional[str] = None) -> dict:
        """Render the OpenAI style error body."""
        error = {"message": self.message, "type": self.kind}
        code = code or getattr(self, "code", None)
        if code:
            error["code"] = code
        return {"error": error}


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    kind = "invalid_request_error"
    status_code = 400

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class ConfigurationError(ProxyError):
    """Raised when a requested model cannot be resolved, or the config is broken."""

    kind = "configuration_error"
    status_code = 404

    def __init__(self, message: str, code: str = "model_not_found") -> None:
        super().__init__(message)
        self.code = code


class UpstreamProtocolError(ProxyError):
    """The runtime sent a payload that could not be understood."""

    kind = "upstream_protocol_error"
    status_code = 502


class UpstreamAbort(ProxyError):
    """The runtime reported a failure, or could not be reached, mid-turn."""

    kind = "upstream_abort"
    status_code = 502


class TransportError(ProxyError):
    """Writing a chunk to the client failed."""

    kind = "transport_error"
    status_code = 499


ERROR_KINDS = {
    cls.kind: cls
    for cls in (
        ProxyError,
        InvalidRequestError,
        ConfigurationError,
        UpstreamProtocolError,
        UpstreamAbort,
        TransportError,
    )
}


def error_for_kind(kind: str, message: str) -> ProxyError:
    """Build the exception matching ``kind`` (``ProxyError`` when unknown)."""
    cls = ERROR_KINDS.get(kind, ProxyError)
    return cls(message)
