"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- Stamps ts_ms when the caller did not supply one
- Can be switched off process-wide (ENABLE_JSON_LOGS=0)
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_enabled: bool = True


def configure(*, enabled: bool) -> None:
    """Enable or silence log output for the whole process."""
    global _enabled  # pylint: disable=global-statement
    _enabled = enabled


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller is responsible for:
    - Supplying event_type
    - Including session_id where one exists

    This function:
    - Adds ts_ms if missing
    - Serializes to JSON (non-serializable values fall back to repr)
    - Writes exactly one line
    - Never raises
    """
    if not _enabled:
        return

    record: dict[str, Any] = dict(event)
    record.setdefault("ts_ms", time.time_ns() // 1_000_000)

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the relay
        fallback: dict[str, Any] = {
            "ts_ms": record.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
