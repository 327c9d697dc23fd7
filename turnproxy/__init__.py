"""turnproxy - OpenAI-compatible front end for turn-based agent runtimes

Accepts chat completions requests, starts a turn on an agent runtime and
translates the runtime's event stream into chat completion chunks (or a
single chat completion when streaming is off).

This module provides:
- TranslationSession: Drives one turn from runtime events to client chunks
- HttpAgentRuntime: Reaches a runtime that streams turn events over SSE
- Structured diagnostics and session counters
- OpenAI-compatible API endpoints

Example:
    >>> from turnproxy.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=11435)
"""

from .main import ProxyState, build_state, create_app
from .config_loader import load_config
from .logging import DiagnosticRecorder, logger, setup_logging
from .translation import TranslationSession
from .upstream import AgentRuntime, HttpAgentRuntime

__all__ = [
    "AgentRuntime",
    "build_state",
    "create_app",
    "DiagnosticRecorder",
    "HttpAgentRuntime",
    "load_config",
    "logger",
    "ProxyState",
    "setup_logging",
    "TranslationSession",
]
