"""
Timing helpers for observability.

Responsibilities:
- Measure durations using monotonic time
- Emit one METRIC_TIMER JSONL event per measurement
- Never aggregate

Durations use monotonic time; ts_ms is stamped by the logger.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the enclosed block and emit exactly one metric event.

    Yields a mutable dict that is merged into the emitted event's
    "details"; callers use it to record the outcome of the block.

    Usage:
        with timed("realtime_connect", session_id=sid) as detail:
            await adapter.connect(...)
            detail["outcome"] = "ok"

    Exceptions inside the block are not suppressed; the metric is still
    emitted.
    """
    extra: dict[str, Any] = dict(details or {})
    start_ns = time.monotonic_ns()
    try:
        yield extra
    finally:
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "session_id": session_id,
            "details": extra,
        })
