"""In-memory counters for translation session lifecycles.

Every chat completions request opens one session. A session ends exactly
once, as ``completed`` (the turn reached its terminal chunk), ``errored``
(validation, runtime or transport failure) or ``disconnected`` (the client
left first).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Optional

OUTCOMES = ("completed", "errored", "disconnected")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionTracker:
    """Handle for one open session; ``finish`` counts its outcome once."""

    def __init__(self, counters: "SessionCounters") -> None:
        self._counters = counters
        self._opened = time.perf_counter()
        self.outcome: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    def finish(self, outcome: str = "completed") -> None:
        if outcome not in OUTCOMES:
            raise ValueError(f"unknown session outcome '{outcome}'")
        if self.outcome is not None:
            return
        self.outcome = outcome
        duration_ms = (time.perf_counter() - self._opened) * 1000.0
        self._counters.finish_session(outcome, duration_ms)


@dataclass
class SessionCounters:
    """Thread-safe session totals, outcomes and durations."""

    _lock: Lock = field(default_factory=Lock, repr=False)
    _started_at: str = field(default_factory=_utc_now)
    _received: int = 0
    _ongoing: int = 0
    _outcomes: dict[str, int] = field(default_factory=lambda: dict.fromkeys(OUTCOMES, 0))
    _total_duration_ms: float = 0.0
    _last_finished_at: Optional[str] = None

    def start_session(self) -> SessionTracker:
        with self._lock:
            self._received += 1
            self._ongoing += 1
        return SessionTracker(self)

    def finish_session(self, outcome: str, duration_ms: float = 0.0) -> None:
        with self._lock:
            self._outcomes[outcome] += 1
            self._ongoing = max(0, self._ongoing - 1)
            self._total_duration_ms += duration_ms
            self._last_finished_at = _utc_now()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            finished = sum(self._outcomes.values())
            mean = self._total_duration_ms / finished if finished else 0.0
            return {
                "started_at": self._started_at,
                "received": self._received,
                "ongoing": self._ongoing,
                **self._outcomes,
                "mean_duration_ms": round(mean, 2),
                "last_finished_at": self._last_finished_at,
            }


SESSION_COUNTERS = SessionCounters()


def build_usage_snapshot() -> dict[str, Any]:
    """Build the usage payload with realtime counters."""
    return {
        "generated_at": _utc_now(),
        "realtime": SESSION_COUNTERS.snapshot(),
    }
