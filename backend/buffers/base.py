"""
Voice buffer (receiver) contract.

This module defines the *interface only*; persistence format and storage
are the implementation's concern.

Key invariants:
- The detector issues forward() calls for one run strictly in order and
  awaits each before the next.
- on_active_start()/on_active_end() bracket a forwarding run.
- forward() receives the detector's CancellationScope and must fail fast
  (ForwardCancelled) once it has fired.
- The buffer never releases segments; the detector does that after
  forward() returns.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from audio.segments import VoiceSegment
from detection.cancellation import CancellationScope


class VoiceBuffer(ABC):
    """Abstract downstream receiver of effective voice segments."""

    async def on_active_start(self) -> None:
        """Called before the first forward of a run. Optional hook."""
        return None

    async def on_active_end(self) -> None:
        """Called after the last forward of a run. Optional hook."""
        return None

    @abstractmethod
    async def forward(
        self,
        segment: VoiceSegment,
        cancel: CancellationScope,
    ) -> None:
        """
        Accept one segment.

        Contract:
        - Must not retain segment.samples beyond the call; the detector
          releases the segment right after.
        - Raises ForwardCancelled if cancel has fired.
        """
        raise NotImplementedError

    def dispose(self) -> None:
        """Release buffer resources. Idempotent."""
        return None
