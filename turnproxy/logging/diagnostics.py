"""Structured diagnostic records for translation sessions.

Records go to the ``turnproxy`` logger and, when a file is configured, are
appended to a JSONL file from a background thread. Recording never blocks
the caller on I/O and never raises into the translation path.
"""

import asyncio
import json
import logging
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("turnproxy")

_PENDING_DIAGNOSTIC_TASKS: set[asyncio.Task] = set()


def _register_background_task(task: asyncio.Task) -> None:
    """Register a background task and set up cleanup."""
    _PENDING_DIAGNOSTIC_TASKS.add(task)

    def _cleanup(_task: asyncio.Task) -> None:
        _PENDING_DIAGNOSTIC_TASKS.discard(_task)
        if not _task.cancelled() and _task.exception() is not None:
            logger.warning("Failed to write diagnostic record: %s", _task.exception())

    task.add_done_callback(_cleanup)


async def flush_pending_diagnostics() -> None:
    """Wait for any background diagnostic writes still in flight."""
    if not _PENDING_DIAGNOSTIC_TASKS:
        return
    logger.info("Waiting for %d pending diagnostic writes", len(_PENDING_DIAGNOSTIC_TASKS))
    pending = list(_PENDING_DIAGNOSTIC_TASKS)
    await asyncio.gather(*pending, return_exceptions=True)


class DiagnosticRecorder:
    """Collects ``request.received``, ``turn.started``, ``turn.finished``... records."""

    def __init__(
        self,
        enabled: bool = True,
        file_path: Optional[str] = None,
        history_size: int = 256,
    ) -> None:
        self.enabled = enabled
        self.file_path = Path(file_path) if file_path else None
        self.recent: deque[dict[str, Any]] = deque(maxlen=history_size)

    def record(self, event: str, **fields: Any) -> None:
        if not self.enabled:
            return
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event,
        }
        entry.update(fields)
        self.recent.append(entry)

        line = json.dumps(entry, ensure_ascii=False, default=str)
        logger.info("diagnostic %s", line)

        if self.file_path is not None:
            self._write_line(line)

    def events(self, event: Optional[str] = None) -> list[dict[str, Any]]:
        """Return the retained records, optionally filtered by event name."""
        if event is None:
            return list(self.recent)
        return [entry for entry in self.recent if entry["event"] == event]

    def _write_line(self, line: str) -> None:
        path = self.file_path

        def _append() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop, write synchronously
            try:
                _append()
            except OSError as exc:
                logger.warning("Failed to write diagnostic record: %s", exc)
            return

        task = loop.create_task(asyncio.to_thread(_append))
        _register_background_task(task)
