"""
Bounded-duration sliding window of segment activity flags.

Rules:
- Depth measured in seconds (not entry count)
- Drops OLDEST entries once total time exceeds the cap
- The newest entry is always kept, even if it alone exceeds the cap
- No audio payload retained, only (is_active, time_s)
- Deterministic, synchronous behavior
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque

from defaults import NS_PER_SECOND
from detection.errors import require_positive


@dataclass(frozen=True)
class VoiceSegmentActivity:
    """Derived history entry for one segment."""
    is_active: bool
    time_s: float


def _to_ns(seconds: float) -> int:
    return round(seconds * NS_PER_SECOND)


class VoiceSegmentActivityQueue:
    """
    FIFO of recent activity entries, capped by total duration.

    Totals are kept as integer nanoseconds so long runs of additions
    and evictions stay exact.
    """

    def __init__(self, *, max_queueing_time_s: float) -> None:
        require_positive("max_queueing_time_s", max_queueing_time_s)

        self._max_ns: int = _to_ns(max_queueing_time_s)
        self._entries: Deque[tuple[bool, int]] = deque()
        self._total_ns: int = 0
        self._active_ns: int = 0

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, activity: VoiceSegmentActivity) -> None:
        """Append one entry, then evict from the front while over the cap."""
        time_ns = _to_ns(activity.time_s)
        self._entries.append((activity.is_active, time_ns))
        self._total_ns += time_ns
        if activity.is_active:
            self._active_ns += time_ns

        while self._total_ns > self._max_ns and len(self._entries) > 1:
            is_active, evicted_ns = self._entries.popleft()
            self._total_ns -= evicted_ns
            if is_active:
                self._active_ns -= evicted_ns

    def active_time_rate(self) -> float:
        """Fraction of queued time that was active; 0.0 when empty."""
        if not self._entries or self._total_ns == 0:
            return 0.0
        return self._active_ns / self._total_ns

    def clear(self) -> None:
        self._entries.clear()
        self._total_ns = 0
        self._active_ns = 0

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def total_time_s(self) -> float:
        return self._total_ns / NS_PER_SECOND

    def active_time_s(self) -> float:
        return self._active_ns / NS_PER_SECOND

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging.
        """
        return {
            "entries": len(self._entries),
            "total_s": self.total_time_s(),
            "active_s": self.active_time_s(),
            "active_rate": self.active_time_rate(),
        }
