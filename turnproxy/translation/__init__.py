"""Runtime event -> chat completions translation engine."""

from .aggregator import ToolCallState, TurnAggregator, TurnState
from .encoder import ChunkEncoder, ExternalChunk, ResponseAccumulator, TurnIdentity
from .events import (
    FINISH_ERROR,
    FINISH_STOP,
    FINISH_TOOL_CALLS,
    Abort,
    Finalization,
    ReasoningDelta,
    ReasoningEmission,
    TextDelta,
    TextEmission,
    ToolCallDelta,
    ToolCallEmission,
    TurnComplete,
    UpstreamError,
)
from .normalizer import EventNormalizer
from .session import SessionState, TranslationSession

__all__ = [
    "Abort",
    "ChunkEncoder",
    "EventNormalizer",
    "ExternalChunk",
    "FINISH_ERROR",
    "FINISH_STOP",
    "FINISH_TOOL_CALLS",
    "Finalization",
    "ReasoningDelta",
    "ReasoningEmission",
    "ResponseAccumulator",
    "SessionState",
    "TextDelta",
    "TextEmission",
    "ToolCallDelta",
    "ToolCallEmission",
    "ToolCallState",
    "TranslationSession",
    "TurnAggregator",
    "TurnComplete",
    "TurnIdentity",
    "TurnState",
    "UpstreamError",
]
