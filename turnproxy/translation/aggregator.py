"""Per-turn state and the emit-now-or-buffer decisions.

The aggregator is the single owner of ``TurnState``. For every event it
returns the emissions that must reach the client right now, in order.

Invariants kept here:
- text already streamed is never emitted again: ``TurnComplete.final_text``
  only contributes the part beyond ``emitted_text_len``;
- tool calls keep their first-seen position as their client index, names
  are set once, arguments only grow;
- reasoning never flows into the answer text;
- nothing is accepted after the turn has finished.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from ..core.exceptions import UpstreamProtocolError
from .events import (
    FINISH_ERROR,
    FINISH_STOP,
    FINISH_TOOL_CALLS,
    Abort,
    Emission,
    Finalization,
    ReasoningDelta,
    ReasoningEmission,
    TextDelta,
    TextEmission,
    ToolCallDelta,
    ToolCallEmission,
    TurnComplete,
    UpstreamError,
    UpstreamEvent,
)

logger = logging.getLogger("turnproxy")


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


@dataclass
class ToolCallState:
    call_index: int
    position: int
    id: str
    name: Optional[str] = None
    fragments: list[str] = field(default_factory=list)

    @property
    def arguments(self) -> str:
        return "".join(self.fragments)


@dataclass
class TurnState:
    text_parts: list[str] = field(default_factory=list)
    emitted_text_len: int = 0
    tool_calls: dict[int, ToolCallState] = field(default_factory=dict)
    reasoning_buffer: str = ""
    finished: bool = False
    finish_reason: Optional[str] = None
    error: Optional[Abort] = None

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def ordered_tool_calls(self) -> list[ToolCallState]:
        return sorted(self.tool_calls.values(), key=lambda call: call.position)


class TurnAggregator:
    """Apply upstream events to a ``TurnState`` and decide what to emit."""

    def __init__(self, expose_reasoning: bool = False) -> None:
        self.state = TurnState()
        self.expose_reasoning = expose_reasoning

    @property
    def finished(self) -> bool:
        return self.state.finished

    def apply(self, event: UpstreamEvent) -> list[Emission]:
        if self.state.finished:
            raise UpstreamProtocolError(
                f"{type(event).__name__} received after the turn finished"
            )
        if isinstance(event, TextDelta):
            return self._on_text(event.text)
        if isinstance(event, ToolCallDelta):
            return self._on_tool_call(event)
        if isinstance(event, ReasoningDelta):
            return self._on_reasoning(event)
        if isinstance(event, TurnComplete):
            return self._on_complete(event)
        if isinstance(event, UpstreamError):
            return self._on_error(event)
        raise UpstreamProtocolError(f"unsupported event {type(event).__name__}")

    def _on_text(self, text: str) -> list[Emission]:
        if not text:
            return []
        self.state.text_parts.append(text)
        self.state.emitted_text_len += len(text)
        return [TextEmission(text)]

    def _on_tool_call(self, event: ToolCallDelta) -> list[Emission]:
        call = self.state.tool_calls.get(event.call_index)
        if call is None:
            call = ToolCallState(
                call_index=event.call_index,
                position=len(self.state.tool_calls),
                id=event.call_id or _new_call_id(),
                name=event.name or None,
            )
            self.state.tool_calls[event.call_index] = call
            if event.arguments_fragment:
                call.fragments.append(event.arguments_fragment)
            return [
                ToolCallEmission(
                    index=call.position,
                    arguments=event.arguments_fragment,
                    call_id=call.id,
                    name=call.name,
                )
            ]

        new_name = None
        if event.name:
            if call.name is None:
                call.name = new_name = event.name
            elif event.name != call.name:
                logger.debug(
                    "Ignoring rename of tool call %s from '%s' to '%s'",
                    event.call_index,
                    call.name,
                    event.name,
                )
        if event.arguments_fragment:
            call.fragments.append(event.arguments_fragment)
        if not event.arguments_fragment and new_name is None:
            return []
        return [
            ToolCallEmission(
                index=call.position,
                arguments=event.arguments_fragment,
                name=new_name,
            )
        ]

    def _on_reasoning(self, event: ReasoningDelta) -> list[Emission]:
        if not event.text:
            return []
        self.state.reasoning_buffer += event.text
        if self.expose_reasoning:
            return [ReasoningEmission(event.text)]
        return []

    def _on_complete(self, event: TurnComplete) -> list[Emission]:
        emissions: list[Emission] = []
        final_text = event.final_text or ""
        emitted = self.state.emitted_text_len
        if len(final_text) > emitted:
            if emitted and not final_text.startswith(self.state.text):
                logger.warning(
                    "Final text diverges from %d streamed characters; sending only the tail",
                    emitted,
                )
            emissions.extend(self._on_text(final_text[emitted:]))

        finish_reason = FINISH_TOOL_CALLS if self.state.tool_calls else FINISH_STOP
        self.state.finished = True
        self.state.finish_reason = finish_reason
        emissions.append(Finalization(finish_reason))
        return emissions

    def _on_error(self, event: UpstreamError) -> list[Emission]:
        abort = Abort(kind=event.kind, message=event.message)
        self.state.finished = True
        self.state.finish_reason = FINISH_ERROR
        self.state.error = abort
        return [abort]
