"""Buffer that accepts and drops every segment."""

from __future__ import annotations

from audio.segments import VoiceSegment
from buffers.base import VoiceBuffer
from detection.cancellation import CancellationScope


class NullVoiceBuffer(VoiceBuffer):
    """Counts forwards; keeps nothing. Useful when only the signal matters."""

    def __init__(self) -> None:
        self.forwarded = 0

    async def forward(self, segment: VoiceSegment, cancel: CancellationScope) -> None:
        cancel.raise_if_cancelled()
        self.forwarded += 1
