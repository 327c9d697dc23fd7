"""Internal event and emission types for the translation engine.

``UpstreamEvent`` values are produced by the normalizer from raw runtime
payloads. ``Emission`` values are produced by the aggregator and tell the
encoder what to render.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..core.exceptions import UpstreamAbort, UpstreamProtocolError

FINISH_STOP = "stop"
FINISH_TOOL_CALLS = "tool_calls"
FINISH_ERROR = "error"


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    call_index: int
    arguments_fragment: str = ""
    name: Optional[str] = None
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ReasoningDelta:
    text: str


@dataclass(frozen=True)
class TurnComplete:
    final_text: Optional[str] = None


@dataclass(frozen=True)
class UpstreamError:
    message: str
    kind: str = UpstreamAbort.kind

    @property
    def is_protocol_error(self) -> bool:
        return self.kind == UpstreamProtocolError.kind


UpstreamEvent = Union[TextDelta, ToolCallDelta, ReasoningDelta, TurnComplete, UpstreamError]


@dataclass(frozen=True)
class TextEmission:
    text: str


@dataclass(frozen=True)
class ToolCallEmission:
    """One incremental tool call fragment.

    ``index`` is the client-facing position of the call (first-seen order).
    ``call_id`` and ``name`` are set on the first emission of a call, and
    ``name`` again on the emission where it first becomes known.
    """

    index: int
    arguments: str
    call_id: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class ReasoningEmission:
    text: str


@dataclass(frozen=True)
class Finalization:
    finish_reason: str


@dataclass(frozen=True)
class Abort:
    kind: str
    message: str


Emission = Union[TextEmission, ToolCallEmission, ReasoningEmission, Finalization, Abort]
