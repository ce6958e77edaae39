"""
Voice segment source contract.

This module defines the *interface only*. Sources cut captured audio into
VoiceSegments and push them, one at a time and in capture order, to
subscribers.

Key invariants:
- Each emitted segment is owned by the receiving detector from the moment
  the listener is called.
- Inactive sources emit nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from audio.segments import VoiceSegment
from detection.signal import Unsubscribe


class VoiceSource(ABC):
    """
    Abstract push-model segment source.

    Implementations are responsible for:
    - Producing VoiceSegments with volume and duration precomputed
    - Notifying subscribers synchronously, in capture order
    - Starting/stopping capture via set_source_active()
    """

    @abstractmethod
    def subscribe(self, listener: Callable[[VoiceSegment], None]) -> Unsubscribe:
        """Register a segment listener; returns its unsubscribe handle."""
        raise NotImplementedError

    @abstractmethod
    def set_source_active(self, is_active: bool) -> None:
        """Start or stop capture."""
        raise NotImplementedError

    def update(self) -> int:
        """
        Per-tick poll hook for polling-based sources.

        Returns:
            Number of segments emitted during this poll.
        """
        return 0

    @abstractmethod
    def dispose(self) -> None:
        """Stop capture and drop all listeners. Idempotent."""
        raise NotImplementedError
