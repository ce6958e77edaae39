# backend/protocol/binary.py
"""
Binary framing helpers for mic audio transport.

Client → Server (mic):
    4 bytes  seq_num (u32, little-endian)
    N bytes  PCM16 audio, N a positive multiple of 2 * channels

Usage example:

    frame = decode_mic_frame(payload, ts_ms=now_ms, channels=1)

    result = check_sequence_gap(last_seq=prev_seq, current_seq=frame.sequence_num)
    if result.gap:
        log_event({
            "event_type": "seq_gap_detected",
            "expected": result.expected,
            "actual": result.actual,
            "gap_size": result.gap_size,
        })

    source.push_pcm(frame.pcm_bytes)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from audio.frames import MicFrame
from defaults import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    C2S_SEQ_NUM_BYTES,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
)


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for binary protocol errors."""


class InvalidFrameLength(BinaryProtocolError):
    """
    Raised when a mic frame is too short to carry audio, or its PCM payload
    is not a whole number of sample frames. The frame must be dropped.
    """


class InvalidSequenceNumber(BinaryProtocolError):
    """
    Raised when a sequence number is outside the valid u32 range
    (0 is reserved).
    """


# -------------------------
# Low-level helpers
# -------------------------

def _u32_le(value: int) -> bytes:
    return struct.pack("<I", value)


def _read_u32_le(buf: bytes, offset: int = 0) -> int:
    return struct.unpack_from("<I", buf, offset)[0]


def is_seq_next(prev: int, current: int) -> bool:
    """
    True if `current` directly follows `prev`, accounting for wraparound.
    """
    if prev == SEQ_NUM_MAX:
        return current == SEQ_NUM_START
    return current == prev + 1


# -------------------------
# Client → Server (mic)
# -------------------------

def decode_mic_frame(payload: bytes, *, ts_ms: int, channels: int = 1) -> MicFrame:
    """
    Decode a client→server mic audio frame.

    Raises:
        InvalidFrameLength, InvalidSequenceNumber
    """
    bytes_per_frame = AUDIO_SAMPLE_WIDTH_BYTES * channels
    pcm_len = len(payload) - C2S_SEQ_NUM_BYTES

    if pcm_len <= 0:
        raise InvalidFrameLength(f"Mic frame length {len(payload)} carries no PCM")

    if pcm_len % bytes_per_frame != 0:
        raise InvalidFrameLength(
            f"PCM length {pcm_len} is not a multiple of {bytes_per_frame}"
        )

    seq = _read_u32_le(payload, 0)
    if seq < SEQ_NUM_START:
        raise InvalidSequenceNumber(f"Invalid seq_num: {seq}")

    return MicFrame(
        sequence_num=seq,
        pcm_bytes=payload[C2S_SEQ_NUM_BYTES:],
        ts_ms=ts_ms,
    )


def encode_mic_frame(*, sequence_num: int, pcm_bytes: bytes) -> bytes:
    """
    Encode a mic frame (client side helper, used by tools and tests).
    """
    if sequence_num < SEQ_NUM_START or sequence_num > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq_num: {sequence_num}")
    if not pcm_bytes:
        raise InvalidFrameLength("Mic frame carries no PCM")
    return _u32_le(sequence_num) + pcm_bytes


# -------------------------
# Sequence gap detection
# -------------------------

@dataclass(frozen=True)
class SeqCheckResult:
    """
    Result of a sequence continuity check.
    """
    gap: bool
    expected: int
    actual: int

    @property
    def gap_size(self) -> int:
        """
        Number of frames skipped (0 if no gap). Handles wraparound.
        """
        if not self.gap:
            return 0

        if self.actual > self.expected:
            return self.actual - self.expected

        # Wraparound
        return (SEQ_NUM_MAX - self.expected + 1) + (self.actual - SEQ_NUM_START)


def check_sequence_gap(
    *,
    last_seq: Optional[int],
    current_seq: int,
) -> SeqCheckResult:
    """
    Check whether `current_seq` follows `last_seq`.

    Pure function; never raises.
    """
    if last_seq is None or is_seq_next(last_seq, current_seq):
        return SeqCheckResult(gap=False, expected=current_seq, actual=current_seq)

    expected = SEQ_NUM_START if last_seq == SEQ_NUM_MAX else last_seq + 1
    return SeqCheckResult(gap=True, expected=expected, actual=current_seq)
