"""
Timing helpers for observability.

- Durations use monotonic time
- One measurement = one METRIC_TIMER log event, never aggregated
- Exposed only as a context manager so timers cannot leak
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
    detector_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the enclosed block and emit exactly one METRIC_TIMER event.

    The yielded dict is merged into the event's details, so the block can
    report what it did (e.g. how many segments were forwarded).

    Usage:
        with timed("forward_run", detector_id=...) as info:
            ...
            info["forwarded"] = n
    """
    extra: dict[str, Any] = {}
    start_ns = time.monotonic_ns()
    try:
        yield extra
    finally:
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "detector_id": detector_id,
            "details": {**(details or {}), **extra},
        })
