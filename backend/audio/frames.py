"""
Mic frame primitive.

Pure data container only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class MicFrame:
    """
    Raw mic audio as received from a client, before segmentation.

    sequence_num:
        Monotonic sequence number provided by the sender.
        Used for gap detection and debugging only.

    pcm_bytes:
        Raw PCM16 little-endian bytes, interleaved if multi-channel.
        Any whole number of sample frames; the source re-cuts segments.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was received.
        Observability only.
    """
    sequence_num: int
    pcm_bytes: bytes
    ts_ms: int
