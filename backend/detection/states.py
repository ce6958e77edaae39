"""
Detector state variants.

Rules:
- States are immutable value objects (frozen dataclasses).
- Exactly one state is live per detector; transitions replace it.
- Only ActiveRun carries a payload: the pending segment FIFO and the
  charge/cumulated accumulators of the cumulative detector.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from audio.segments import VoiceSegment


@dataclass(frozen=True)
class Inactive:
    """No voice activity."""

    @property
    def voice_is_active(self) -> bool:
        return False


@dataclass(frozen=True)
class Active:
    """Voice activity without a pending run (rate-windowed detector)."""

    @property
    def voice_is_active(self) -> bool:
        return True


@dataclass(frozen=True)
class ActiveRun:
    """
    Voice activity with a run being accumulated (cumulative detector).

    pending:
        Segments owned by this run, in arrival order. Drained exactly once
        when the run exits.
    """
    charge_time_s: float
    cumulated_time_s: float
    pending: tuple[VoiceSegment, ...] = ()

    @property
    def voice_is_active(self) -> bool:
        return True


INACTIVE = Inactive()
ACTIVE = Active()

DetectorState = Union[Inactive, Active, ActiveRun]
