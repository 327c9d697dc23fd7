"""Logging module for the proxy."""

from .diagnostics import DiagnosticRecorder, flush_pending_diagnostics
from .setup import logger, setup_logging

__all__ = [
    "logger",
    "setup_logging",
    "DiagnosticRecorder",
    "flush_pending_diagnostics",
]
