"""
Timing and counter metrics for the broadcast controllers.

Responsibilities:
- Time hot-path work (frame sampling, JPEG encode) on the monotonic clock
- Report end-of-session counters (frames published, chunks sent, ...)
- Emit every measurement as one JSONL event via observability.logger

Non-responsibilities:
- Aggregation, percentiles or export to a metrics backend
- Deciding what is worth measuring (callers choose)

Timers are keyed by an opaque id so that overlapping measurements of the
same metric (two controllers in one process) never collide.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from observability.logger import log_event


@dataclass(frozen=True)
class _RunningTimer:
    metric: str
    started_ns: int


# timer_id -> running timer
_running: dict[str, _RunningTimer] = {}


def _labels(role: str | None, topic: str | None, details: Mapping[str, Any] | None) -> dict[str, Any]:
    return {"role": role, "topic": topic, "details": dict(details or {})}


# -----------------------------------------------------------------------------
# Timers
# -----------------------------------------------------------------------------

def start_timer(metric: str) -> str:
    """
    Begin measuring `metric` and return the id needed to stop it.

    Prefer `timed()`; a bare start_timer() must be paired with
    stop_timer() in a finally block.
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _running[timer_id] = _RunningTimer(metric=metric, started_ns=time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    role: str | None = None,
    topic: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> int | None:
    """
    Finish a timer and emit METRIC_TIMER.

    Returns the elapsed milliseconds, or None when `timer_id` is unknown
    (already stopped, or never started). Unknown ids emit nothing.
    """
    timer = _running.pop(timer_id, None)
    if timer is None:
        return None

    elapsed_ms = (time.monotonic_ns() - timer.started_ns) // 1_000_000
    log_event({
        "event_type": "METRIC_TIMER",
        "metric": timer.metric,
        "value_ms": elapsed_ms,
        **_labels(role, topic, details),
    })
    return elapsed_ms


@contextmanager
def timed(
    metric: str,
    *,
    role: str | None = None,
    topic: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> Iterator[None]:
    """
    Time the enclosed block.

    The metric is emitted exactly once, including when the block raises;
    the exception is not suppressed.

        with timed("frame_sample", role="admin", topic=topic):
            data_uri = sampler.sample_frame()
    """
    timer_id = start_timer(metric)
    try:
        yield
    finally:
        stop_timer(timer_id, role=role, topic=topic, details=details)


# -----------------------------------------------------------------------------
# Counters
# -----------------------------------------------------------------------------

def emit_counters(
    counters: Mapping[str, int | float],
    *,
    role: str | None = None,
    topic: str | None = None,
) -> None:
    """Emit one METRIC_COUNTER event per entry, in mapping order."""
    for metric, value in counters.items():
        log_event({
            "event_type": "METRIC_COUNTER",
            "metric": metric,
            "value": value,
            **_labels(role, topic, None),
        })
