"""
Structured event log for the relay and the admin/viewer processes.

One JSON object per line on stdout, written as it happens. Events come from
the event loop and from worker threads (frame encoding, sound-card
callbacks), so each line is written whole under a lock.

`ts_ms` is added when the caller leaves it out, which lets events from the
relay and from several controllers be merged into one timeline.
"""

from __future__ import annotations

import json
import sys
import threading
import time
from typing import Any, Callable, Mapping


def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


# Output sink; tests replace it to capture lines.
_print: Callable[[str], None] = _stdout_print

_write_lock = threading.Lock()


def _encode(event: Mapping[str, Any]) -> str:
    # Strict JSON: NaN / Infinity are rejected rather than written.
    return json.dumps(event, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def log_event(event: Mapping[str, Any]) -> None:
    """
    Emit `event` as one JSONL line. Never raises.

    Callers pass `event_type` plus whatever context identifies the source
    (role, topic, member_id). A payload that cannot be encoded is replaced by
    a LOGGER_SERIALIZATION_ERROR line carrying its repr.
    """
    if "ts_ms" not in event:
        event = {"ts_ms": time.time_ns() // 1_000_000, **event}

    try:
        line = _encode(event)
    except (TypeError, ValueError) as e:
        ts_ms = event.get("ts_ms")
        line = _encode({
            "ts_ms": ts_ms if isinstance(ts_ms, int) else time.time_ns() // 1_000_000,
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        })

    with _write_lock:
        _print(line)
