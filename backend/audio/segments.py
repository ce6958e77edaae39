"""
Voice segment primitives.

A VoiceSegment is one capture tick of audio with its precomputed volume
and duration. Segments are owned by exactly one holder at a time and
must be released exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import numpy as np

from detection.errors import SegmentReleasedError

_EMPTY = np.zeros(0, dtype=np.float32)


class VolumeMode(str, Enum):
    """How a source summarizes a segment's loudness."""
    RMS = "rms"
    PEAK = "peak"


def rms_volume(samples: np.ndarray) -> float:
    """Root-mean-square amplitude, 0.0 for an empty array."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


def peak_volume(samples: np.ndarray) -> float:
    """Maximum absolute amplitude, 0.0 for an empty array."""
    if samples.size == 0:
        return 0.0
    return float(np.max(np.abs(samples)))


def measure_volume(samples: np.ndarray, mode: VolumeMode) -> float:
    if mode is VolumeMode.PEAK:
        return peak_volume(samples)
    return rms_volume(samples)


@dataclass(eq=False)
class VoiceSegment:
    """
    One chunk of captured audio.

    samples:
        float32 amplitudes, interleaved when the source has several channels.

    volume:
        Non-negative loudness summary computed by the source.
        Detectors treat it as opaque input.

    duration_s:
        Wall-clock duration the segment represents. Must be > 0.

    sequence_num / ts_ms:
        Source-assigned ordering and capture time. Observability only.
    """
    samples: np.ndarray
    volume: float
    duration_s: float
    sequence_num: int = 0
    ts_ms: int = 0
    on_release: Optional[Callable[["VoiceSegment"], None]] = field(
        default=None, repr=False
    )
    _released: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.volume < 0:
            raise ValueError("volume must be >= 0")
        if not self.duration_s > 0:
            raise ValueError("duration_s must be > 0")

    @property
    def released(self) -> bool:
        return self._released

    def is_active(self, threshold: float) -> bool:
        """Local activity: loud enough on its own."""
        return self.volume >= threshold

    def release(self) -> None:
        """
        Give up ownership of the samples.

        Raises:
            SegmentReleasedError if the segment was already released.
        """
        if self._released:
            raise SegmentReleasedError(
                f"segment seq={self.sequence_num} released twice"
            )
        self._released = True
        self.samples = _EMPTY
        if self.on_release is not None:
            self.on_release(self)
