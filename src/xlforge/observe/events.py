"""Command timing, NDJSON lifecycle events, and JSON plan traces."""

from __future__ import annotations

import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

import orjson


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Timer:
    """Measures a ``with`` block; ``elapsed_ms`` is set on exit."""

    def __init__(self) -> None:
        self.start: float = 0
        self.elapsed_ms: int = 0

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed_ms = int((time.perf_counter() - self.start) * 1000)


class TraceRecorder:
    """Keeps every event of one command run for ``--trace FILE``."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []
        self._start = time.perf_counter()

    def _elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)

    def record(self, category: str, data: dict[str, Any]) -> None:
        self.entries.append({"category": category, "timestamp_ms": self._elapsed_ms(), **data})

    def save(self, path: str | Path) -> str:
        trace = {
            "trace_version": "1.0",
            "generated_at": _now(),
            "total_duration_ms": self._elapsed_ms(),
            "entries": self.entries,
        }
        out = Path(path)
        out.write_bytes(orjson.dumps(trace, option=orjson.OPT_INDENT_2, default=str))
        return str(out)


class EventEmitter:
    """Emits NDJSON events (``plan.start``, ``step.failed``, ...) to stderr.

    Disabled emitters are silent but still forward to an attached
    :class:`TraceRecorder`, so ``--trace`` works without ``--events``.
    """

    def __init__(
        self,
        enabled: bool = False,
        *,
        recorder: TraceRecorder | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self.enabled = enabled
        self.recorder = recorder
        self._stream = stream

    def emit(self, event: str, data: dict[str, Any] | None = None) -> None:
        data = data or {}
        if self.recorder is not None:
            self.recorder.record(event, data)
        if not self.enabled:
            return
        stream = self._stream or sys.stderr
        line = orjson.dumps({"event": event, "timestamp": _now(), "data": data}, default=str)
        stream.write(line.decode() + "\n")
        stream.flush()
