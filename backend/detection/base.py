"""
Detector algorithm contract.

This module defines the *interface only*. Exactly two implementations
exist (CumulativeChargeDetector, RateWindowedDetector); the variant is
chosen at construction and never mixed at runtime.

Key invariants:
- ingest/tick/force_inactive/shutdown are synchronous and pure apart from
  replacing the algorithm's own state. All I/O is returned as effects.
- The front calls these only from its serialized processing path.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from audio.segments import VoiceSegment
from detection.effects import Effect
from detection.states import DetectorState


class Algorithm(str, Enum):
    """Closed set of detector variants."""
    CUMULATIVE = "cumulative"
    RATE_WINDOWED = "rate_windowed"


class DetectorAlgorithm(ABC):
    """
    Abstract interface for a voice activity decision algorithm.

    Class attributes:
        algorithm:
            Variant discriminant.
        retains_segments:
            True if the algorithm takes ownership of ingested segments
            (they come back as CommitRun/DiscardRun/ReleaseSegment effects).
            False if the front keeps ownership and buffers on signal edges.
    """

    algorithm: Algorithm
    retains_segments: bool = False

    @property
    @abstractmethod
    def state(self) -> DetectorState:
        """Current live state."""
        raise NotImplementedError

    @property
    def tick_interval_s(self) -> Optional[float]:
        """Period of best-effort re-evaluation, or None if not ticked."""
        return None

    @abstractmethod
    def ingest(self, segment: VoiceSegment) -> tuple[Effect, ...]:
        """
        Process one segment and return the resulting effects in order.
        """
        raise NotImplementedError

    def tick(self) -> tuple[Effect, ...]:
        """Re-evaluate without a new segment."""
        return ()

    @abstractmethod
    def force_inactive(self) -> tuple[Effect, ...]:
        """
        Leave the active state now, applying the normal exit policy.

        No-op (empty effects) when already inactive.
        """
        raise NotImplementedError

    @abstractmethod
    def shutdown(self) -> tuple[Effect, ...]:
        """
        Leave the active state for disposal: pending segments are
        released without forwarding.
        """
        raise NotImplementedError
