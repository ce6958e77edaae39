# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.segments import VoiceSegment, VolumeMode
from detection.errors import ConfigurationError
from sources.pcm_stream import PcmStreamSource

# 16 kHz mono, 20 ms segments -> 320 samples -> 640 bytes
SEGMENT_BYTES = 640


def pcm_of(value: int, n_samples: int) -> bytes:
    return np.full(n_samples, value, dtype="<i2").tobytes()


def test_rejects_invalid_parameters():
    with pytest.raises(ConfigurationError):
        PcmStreamSource(sample_rate_hz=0)
    with pytest.raises(ConfigurationError):
        PcmStreamSource(channels=0)
    with pytest.raises(ConfigurationError):
        PcmStreamSource(segment_duration_s=0.00001)


def test_update_cuts_complete_segments_only():
    source = PcmStreamSource()
    seen: list[VoiceSegment] = []
    source.subscribe(seen.append)

    assert source.push_pcm(b"\x00" * 1000) is True
    assert source.update() == 1
    assert source.buffered_bytes == 1000 - SEGMENT_BYTES

    source.push_pcm(b"\x00" * 280)
    assert source.update() == 1
    assert source.buffered_bytes == 0

    assert [s.sequence_num for s in seen] == [1, 2]
    assert seen[0].samples.size == 320
    assert seen[0].duration_s == pytest.approx(0.02)


def test_volume_is_measured_per_segment():
    source = PcmStreamSource(volume_mode=VolumeMode.PEAK)
    seen: list[VoiceSegment] = []
    source.subscribe(seen.append)

    source.push_pcm(pcm_of(16384, 320) + pcm_of(0, 320))
    source.update()

    assert seen[0].volume == pytest.approx(0.5)
    assert seen[1].volume == 0.0


def test_inactive_source_drops_audio():
    source = PcmStreamSource(active=False)
    seen: list[VoiceSegment] = []
    source.subscribe(seen.append)

    assert source.push_pcm(pcm_of(100, 320)) is False
    assert source.update() == 0

    source.set_source_active(True)
    source.push_pcm(pcm_of(100, 200))
    source.set_source_active(False)

    # Stopping discards the partial segment
    assert source.buffered_bytes == 0
    assert seen == []


def test_outstanding_tracks_release():
    source = PcmStreamSource()
    seen: list[VoiceSegment] = []
    source.subscribe(seen.append)

    source.push_pcm(pcm_of(0, 320 * 3))
    source.update()
    assert source.outstanding == 3

    for seg in seen:
        seg.release()
    assert source.outstanding == 0


def test_dispose_drops_listeners_and_audio():
    source = PcmStreamSource()
    seen: list[VoiceSegment] = []
    source.subscribe(seen.append)
    source.push_pcm(pcm_of(0, 100))

    source.dispose()
    source.set_source_active(True)

    assert source.is_active is False
    assert source.push_pcm(pcm_of(0, 320)) is False
    assert source.update() == 0
    assert seen == []
