# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import io
import wave

import numpy as np
import pytest

from audio.segments import VoiceSegment
from buffers.wave_buffer import WaveVoiceBuffer
from detection.cancellation import CancellationScope
from detection.errors import ConfigurationError, ForwardCancelled, InvalidStateError


def make_segment(n_samples: int, value: float = 0.25) -> VoiceSegment:
    return VoiceSegment(
        samples=np.full(n_samples, value, dtype=np.float32),
        volume=value,
        duration_s=n_samples / 16000,
    )


def test_rejects_unsupported_bit_depth():
    with pytest.raises(ConfigurationError):
        WaveVoiceBuffer(lambda s: None, bits_per_sample=8)
    with pytest.raises(ConfigurationError):
        WaveVoiceBuffer(lambda s: None, sample_rate_hz=0)


def test_forward_before_start_is_an_ordering_error():
    async def scenario() -> None:
        buf = WaveVoiceBuffer(lambda s: None)

        with pytest.raises(InvalidStateError):
            await buf.forward(make_segment(10), CancellationScope())
        with pytest.raises(InvalidStateError):
            await buf.on_active_end()

    asyncio.run(scenario())


@pytest.mark.parametrize("bits", [16, 24, 32])
def test_run_is_delivered_as_one_wav(bits: int):
    received: list[io.BytesIO] = []

    async def scenario() -> None:
        buf = WaveVoiceBuffer(received.append, sample_rate_hz=16000, bits_per_sample=bits)
        scope = CancellationScope()

        await buf.on_active_start()
        await buf.forward(make_segment(320), scope)
        await buf.forward(make_segment(160), scope)
        await buf.on_active_end()

        assert buf.samples_written == 480

    asyncio.run(scenario())

    assert len(received) == 1
    stream = received[0]
    assert stream.tell() == 0
    with wave.open(stream, "rb") as wf:
        assert wf.getnchannels() == 1
        assert wf.getframerate() == 16000
        assert wf.getsampwidth() == bits // 8
        assert wf.getnframes() == 480


def test_each_run_gets_its_own_stream():
    received: list[io.BytesIO] = []

    async def scenario() -> None:
        buf = WaveVoiceBuffer(received.append)
        scope = CancellationScope()
        for n in (100, 200):
            await buf.on_active_start()
            await buf.forward(make_segment(n), scope)
            await buf.on_active_end()

    asyncio.run(scenario())

    frames = []
    for stream in received:
        with wave.open(stream, "rb") as wf:
            frames.append(wf.getnframes())
    assert frames == [100, 200]


def test_forward_fails_fast_once_cancelled():
    async def scenario() -> None:
        buf = WaveVoiceBuffer(lambda s: None)
        scope = CancellationScope()
        await buf.on_active_start()
        scope.cancel()

        with pytest.raises(ForwardCancelled):
            await buf.forward(make_segment(10), scope)
        assert buf.samples_written == 0

        buf.dispose()

    asyncio.run(scenario())
