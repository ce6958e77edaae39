"""
Detection session gateway.

Responsibilities:
- Own one detection session per WebSocket connection
- Route inbound binary mic frames -> PCM source -> detector
- Route inbound JSON control messages -> detector on/off
- Detect sequence gaps and log them
- Collect outbound messages (activity changes, WAV runs) for the route

NOT responsible for:
- Any activity decision (the detector owns them)
- Transport (the route sends what the gateway returns)
"""

from __future__ import annotations

import io
import json
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from uuid import uuid4

from buffers.wave_buffer import WaveVoiceBuffer
from config import DetectorConfig
from detection.detector import VoiceActivityDetector
from detection.factory import build_detector
from observability.logger import log_event
from protocol.binary import (
    BinaryProtocolError,
    check_sequence_gap,
    decode_mic_frame,
)
from sources.pcm_stream import PcmStreamSource


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to client

    outbound_binary:
        WAV files to send to client, one per forwarded run
    """
    outbound_json: tuple[dict[str, Any], ...] = ()
    outbound_binary: tuple[bytes, ...] = ()


# ------------------------------------------------------------------
# DetectionGateway
# ------------------------------------------------------------------

class DetectionGateway:
    """
    One gateway == one detection session.

    Inbound audio is fully processed before a boundary method returns, so
    every result carries the effects of the message that produced it.
    Messages produced in between (tick-driven activity changes) ride along
    with the next result.
    """

    def __init__(self, *, config: DetectorConfig) -> None:
        self._config = config
        self.session_id: Optional[str] = None
        self.detector: Optional[VoiceActivityDetector] = None
        self.source: Optional[PcmStreamSource] = None
        self._last_ingest_seq: Optional[int] = None

        self._json_out: deque[dict[str, Any]] = deque()
        self._binary_out: deque[bytes] = deque()

    async def on_ws_connect(self) -> GatewayResult:
        """Called when a WebSocket connection is established."""
        self.session_id = _new_session_id()

        self.source = PcmStreamSource(
            sample_rate_hz=self._config.sample_rate_hz,
            channels=self._config.channels,
            segment_duration_s=self._config.segment_duration_s,
            volume_mode=self._config.volume_mode,
        )
        buffer = WaveVoiceBuffer(
            self._on_wave_received,
            sample_rate_hz=self._config.sample_rate_hz,
            bits_per_sample=self._config.wave_bits_per_sample,
            channels=self._config.channels,
        )
        self.detector = build_detector(
            self._config,
            source=self.source,
            buffer=buffer,
            detector_id=self.session_id,
        )
        self.detector.voice_is_active.subscribe(self._on_voice_activity)
        self.detector.start()

        log_event({
            "event_type": "SESSION_STARTED",
            "session_id": self.session_id,
            "algorithm": self._config.algorithm.value,
        })

        self._json_out.appendleft({
            "type": "READY",
            "session_id": self.session_id,
            "algorithm": self._config.algorithm.value,
            "sample_rate_hz": self._config.sample_rate_hz,
            "channels": self._config.channels,
        })
        return self._drain()

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Called when the WebSocket disconnects."""
        if self.detector is None:
            log_event({
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return GatewayResult()

        await self.detector.aclose()
        log_event({
            "event_type": "SESSION_ENDED",
            "session_id": self.session_id,
            "reason": reason,
        })
        self.detector = None
        return self._drain()

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route inbound JSON control messages."""
        if self.detector is None:
            log_event({
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        msg_type = data.get("type") if isinstance(data, dict) else None

        if msg_type == "DETECTOR_START":
            await self.detector.set_detector_active(True)
        elif msg_type == "DETECTOR_STOP":
            await self.detector.set_detector_active(False)
        else:
            log_event({
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": msg_type,
                "session_id": self.session_id,
            })

        return self._drain()

    async def on_binary_message(self, payload: bytes) -> GatewayResult:
        """
        Handle inbound binary mic audio frames.

        - Decode + validate
        - Detect sequence gaps
        - Push PCM into the source, cut segments, wait for the detector
        """
        if self.detector is None or self.source is None:
            log_event({
                "event_type": "BINARY_WITHOUT_SESSION",
                "payload_len": len(payload),
            })
            return GatewayResult()

        try:
            frame = decode_mic_frame(
                payload, ts_ms=_now_ms(), channels=self._config.channels
            )
        except BinaryProtocolError as e:
            log_event({
                "event_type": "BINARY_DECODE_ERROR",
                "session_id": self.session_id,
                "error": str(e),
                "payload_len": len(payload),
            })
            return GatewayResult()

        gap_result = check_sequence_gap(
            last_seq=self._last_ingest_seq,
            current_seq=frame.sequence_num,
        )
        if gap_result.gap:
            log_event({
                "event_type": "SEQ_GAP_DETECTED",
                "session_id": self.session_id,
                "expected": gap_result.expected,
                "actual": gap_result.actual,
                "gap_size": gap_result.gap_size,
            })
        self._last_ingest_seq = frame.sequence_num

        if not self.source.push_pcm(frame.pcm_bytes):
            log_event({
                "event_type": "AUDIO_FRAME_DROPPED",
                "session_id": self.session_id,
                "seq_num": frame.sequence_num,
                "reason": "source_inactive",
            })
            return self._drain()

        self.detector.update()
        await self.detector.join()
        return self._drain()

    # ------------------------------------------------------------------
    # Detector callbacks
    # ------------------------------------------------------------------

    def _on_voice_activity(self, is_active: bool) -> None:
        self._json_out.append({
            "type": "VOICE_ACTIVITY",
            "voice_is_active": is_active,
            "ts_ms": _now_ms(),
        })

    def _on_wave_received(self, stream: io.BytesIO) -> None:
        with stream:
            self._binary_out.append(stream.getvalue())

    def _drain(self) -> GatewayResult:
        result = GatewayResult(
            outbound_json=tuple(self._json_out),
            outbound_binary=tuple(self._binary_out),
        )
        self._json_out.clear()
        self._binary_out.clear()
        return result
