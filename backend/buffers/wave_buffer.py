"""
WAV voice buffer.

Writes each forwarding run into an in-memory WAV stream and hands a
rewound copy to a receiver when the run ends. One run = one WAV file.
"""

from __future__ import annotations

import asyncio
import io
import threading
import wave
from typing import Callable, Optional

from audio.pcm import float32_to_pcm
from audio.segments import VoiceSegment
from buffers.base import VoiceBuffer
from defaults import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    WAVE_BITS_PER_SAMPLE,
    WAVE_SUPPORTED_BITS,
)
from detection.cancellation import CancellationScope
from detection.errors import ConfigurationError, InvalidStateError, require_positive

# Receiver owns (and closes) the stream it is given
WaveStreamReceiver = Callable[[io.BytesIO], None]


class WaveVoiceBuffer(VoiceBuffer):
    """
    Buffer that encodes forwarded segments as PCM WAV.

    Raises:
        ConfigurationError if sample_rate_hz or channels is not positive,
        or bits_per_sample is not 16, 24 or 32.
    """

    def __init__(
        self,
        receiver: WaveStreamReceiver,
        *,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
        bits_per_sample: int = WAVE_BITS_PER_SAMPLE,
        channels: int = AUDIO_CHANNELS,
    ) -> None:
        require_positive("sample_rate_hz", sample_rate_hz)
        require_positive("channels", channels)
        if bits_per_sample not in WAVE_SUPPORTED_BITS:
            raise ConfigurationError(
                "bits_per_sample", bits_per_sample, "must be 16, 24 or 32"
            )

        self._receiver = receiver
        self._sample_rate_hz = sample_rate_hz
        self._bits_per_sample = bits_per_sample
        self._channels = channels

        self._lock = threading.Lock()
        self._stream: Optional[io.BytesIO] = None
        self._writer: Optional[wave.Wave_write] = None
        self.samples_written = 0

    async def on_active_start(self) -> None:
        self._reset()

        stream = io.BytesIO()
        writer = wave.open(stream, "wb")  # pylint: disable=consider-using-with
        writer.setnchannels(self._channels)
        writer.setsampwidth(self._bits_per_sample // 8)
        writer.setframerate(self._sample_rate_hz)

        with self._lock:
            self._stream = stream
            self._writer = writer
            self.samples_written = 0

    async def forward(self, segment: VoiceSegment, cancel: CancellationScope) -> None:
        cancel.raise_if_cancelled()

        if self._writer is None:
            raise InvalidStateError("forward() called before on_active_start()")

        data = float32_to_pcm(segment.samples, bits_per_sample=self._bits_per_sample)
        await asyncio.to_thread(self._write, data, segment.samples.size)

    async def on_active_end(self) -> None:
        if self._stream is None or self._writer is None:
            raise InvalidStateError("on_active_end() called before on_active_start()")

        with self._lock:
            # Patches the RIFF header; the BytesIO itself stays open
            self._writer.close()
            copied = io.BytesIO(self._stream.getvalue())
            self._writer = None
            self._stream = None

        copied.seek(0)
        self._receiver(copied)

    def dispose(self) -> None:
        self._reset()

    def _write(self, data: bytes, sample_count: int) -> None:
        with self._lock:
            if self._writer is None:
                return
            self._writer.writeframes(data)
            self.samples_written += sample_count

    def _reset(self) -> None:
        with self._lock:
            if self._writer is not None:
                self._writer.close()
            self._writer = None
            self._stream = None
