"""
PCM16 stream source.

Purpose:
- Accept raw PCM16 little-endian bytes from any transport (WebSocket,
  file, device callback) via push_pcm()
- On update(), cut complete fixed-duration segments, convert to float32,
  measure volume and notify subscribers

Invariants:
- Segments are emitted in push order with monotonic sequence numbers
- Incomplete trailing audio stays buffered until more bytes arrive
- An inactive source drops pushed audio
"""

from __future__ import annotations

import time
from typing import Callable

from audio.pcm import pcm16le_to_float32
from audio.segments import VoiceSegment, VolumeMode, measure_volume
from defaults import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    AUDIO_SAMPLE_WIDTH_BYTES,
    SEGMENT_DURATION_S,
)
from detection.errors import ConfigurationError, require_positive
from detection.signal import Listeners, Unsubscribe
from sources.base import VoiceSource


class PcmStreamSource(VoiceSource):
    """
    Push-then-poll source over PCM16 bytes.

    outstanding:
        Number of emitted segments not yet released by their owner.
        Returns to 0 once the detector has drained everything.
    """

    def __init__(
        self,
        *,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
        channels: int = AUDIO_CHANNELS,
        segment_duration_s: float = SEGMENT_DURATION_S,
        volume_mode: VolumeMode = VolumeMode.RMS,
        active: bool = True,
    ) -> None:
        require_positive("sample_rate_hz", sample_rate_hz)
        require_positive("channels", channels)
        require_positive("segment_duration_s", segment_duration_s)

        frames_per_segment = round(sample_rate_hz * segment_duration_s)
        if frames_per_segment <= 0:
            raise ConfigurationError(
                "segment_duration_s",
                segment_duration_s,
                "shorter than one sample at this sample rate",
            )

        self._sample_rate_hz = sample_rate_hz
        self._channels = channels
        self._volume_mode = volume_mode
        self._frames_per_segment = frames_per_segment
        self._bytes_per_segment = (
            frames_per_segment * channels * AUDIO_SAMPLE_WIDTH_BYTES
        )
        # Exact duration of the samples actually cut
        self._segment_duration_s = frames_per_segment / sample_rate_hz

        self._pending = bytearray()
        self._listeners: Listeners[VoiceSegment] = Listeners()
        self._active = active
        self._disposed = False
        self._next_seq = 1
        self.outstanding = 0

    # ------------------------------------------------------------------
    # VoiceSource contract
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[VoiceSegment], None]) -> Unsubscribe:
        return self._listeners.subscribe(listener)

    def set_source_active(self, is_active: bool) -> None:
        if self._disposed:
            return
        self._active = is_active
        if not is_active:
            self._pending.clear()

    def update(self) -> int:
        """Emit every complete segment currently buffered."""
        emitted = 0
        while self._active and len(self._pending) >= self._bytes_per_segment:
            chunk = bytes(self._pending[: self._bytes_per_segment])
            del self._pending[: self._bytes_per_segment]
            self._emit(chunk)
            emitted += 1
        return emitted

    def dispose(self) -> None:
        self._disposed = True
        self._active = False
        self._pending.clear()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def segment_duration_s(self) -> float:
        return self._segment_duration_s

    @property
    def buffered_bytes(self) -> int:
        return len(self._pending)

    def push_pcm(self, pcm_bytes: bytes) -> bool:
        """
        Buffer raw PCM16 bytes.

        Returns:
            True if buffered, False if dropped (source inactive/disposed).
        """
        if not self._active:
            return False
        self._pending.extend(pcm_bytes)
        return True

    def _emit(self, chunk: bytes) -> None:
        samples = pcm16le_to_float32(chunk)
        segment = VoiceSegment(
            samples=samples,
            volume=measure_volume(samples, self._volume_mode),
            duration_s=self._segment_duration_s,
            sequence_num=self._next_seq,
            ts_ms=time.time_ns() // 1_000_000,
            on_release=self._on_release,
        )
        self._next_seq += 1
        self.outstanding += 1
        self._listeners.emit(segment)

    def _on_release(self, _segment: VoiceSegment) -> None:
        self.outstanding -= 1
