"""
Detector front: execution shell for one voice activity detector.

Responsibilities:
- Own one algorithm instance (cumulative or rate-windowed)
- Receive segments from the source and process them strictly in order
- Execute the effects returned by the algorithm (signal, forward, release)
- Buffer on signal edges for algorithms that do not retain segments
- Run the periodic tick for algorithms that request one
- Cancel in-flight forwards and release everything on shutdown

Non-responsibilities:
- NO activity decisions (the algorithm owns them)
- NO audio capture or persistence format
"""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from typing import Optional

from audio.segments import VoiceSegment
from buffers.base import VoiceBuffer
from detection.base import DetectorAlgorithm
from detection.cancellation import CancellationScope
from detection.effects import (
    CommitRun,
    DiscardRun,
    Effect,
    LogEvent,
    ReleaseSegment,
    SetVoiceActive,
)
from detection.errors import ForwardCancelled
from detection.signal import ActivitySignal
from detection.states import ActiveRun, DetectorState
from observability.logger import log_event
from observability.metrics import timed
from sources.base import VoiceSource


class VoiceActivityDetector:
    """
    Runtime boundary between a segment source, a decision algorithm and a
    voice buffer.

    Guarantees:
    - Segments are processed one at a time in arrival order; ticks and
      forced transitions share the same lock
    - Effects are executed in the order the algorithm emitted them
    - Every segment handed to the detector is released exactly once
    - Forwards for one run are issued sequentially, in arrival order
    - After aclose() no forward is started and the signal is False

    Tick policy:
    - Segment arrival takes precedence; a tick that finds a segment being
      processed is skipped rather than queued
    """

    def __init__(
        self,
        *,
        algorithm: DetectorAlgorithm,
        source: VoiceSource,
        buffer: VoiceBuffer,
        detector_id: Optional[str] = None,
    ) -> None:
        self._algorithm = algorithm
        self._source = source
        self._buffer = buffer
        self._detector_id = detector_id or f"vad_{uuid.uuid4().hex[:12]}"

        self._signal = ActivitySignal(False)
        self._cancel = CancellationScope()
        self._lock = asyncio.Lock()
        self._inbox: asyncio.Queue[Optional[VoiceSegment]] = asyncio.Queue()

        self._consumer: Optional[asyncio.Task[None]] = None
        self._ticker: Optional[asyncio.Task[None]] = None
        self._closing = False
        self._closed = False

        self._unsubscribe_source = source.subscribe(self._on_segment_read)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def detector_id(self) -> str:
        return self._detector_id

    @property
    def voice_is_active(self) -> ActivitySignal:
        """Observable level; subscribe to receive every change."""
        return self._signal

    @property
    def is_active(self) -> bool:
        return self._signal.value

    @property
    def algorithm(self) -> DetectorAlgorithm:
        return self._algorithm

    @property
    def state(self) -> DetectorState:
        return self._algorithm.state

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Start the inbox consumer and, if the algorithm asks for it, the
        periodic tick. Must be called from a running event loop.
        """
        if self._consumer is not None or self._closing:
            return
        self._consumer = asyncio.create_task(self._consume())
        interval_s = self._algorithm.tick_interval_s
        if interval_s is not None:
            self._ticker = asyncio.create_task(self._tick_loop(interval_s))

    async def join(self) -> None:
        """Wait until every segment pushed so far has been processed."""
        await self._inbox.join()

    async def aclose(self) -> None:
        """
        Shut the detector down.

        Order:
        1. Stop listening to the source
        2. Fire the cancellation scope (interrupts any pending forward)
        3. Stop the tick loop
        4. Under the lock: mark closed, release the algorithm's pending
           segments without forwarding
        5. Let the consumer drain (queued segments are released unprocessed)
        6. Dispose buffer and source
        """
        if self._closing:
            return
        self._closing = True

        self._unsubscribe_source()
        self._cancel.cancel()

        if self._ticker is not None:
            self._ticker.cancel()
            await asyncio.gather(self._ticker, return_exceptions=True)
            self._ticker = None

        async with self._lock:
            self._closed = True
            await self._apply(self._algorithm.shutdown())

        if self._consumer is not None:
            self._inbox.put_nowait(None)
            await self._consumer
            self._consumer = None
        else:
            while not self._inbox.empty():
                segment = self._inbox.get_nowait()
                if segment is not None:
                    segment.release()
                self._inbox.task_done()

        self._signal.clear()
        self._buffer.dispose()
        self._source.dispose()

        log_event({
            "event_type": "VAD_CLOSED",
            "detector_id": self._detector_id,
        })

    async def __aenter__(self) -> VoiceActivityDetector:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, segment: VoiceSegment) -> None:
        """
        Process one segment.

        After aclose() the segment is released without being processed.
        """
        async with self._lock:
            if self._closed:
                segment.release()
                return

            await self._apply(self._algorithm.ingest(segment))

            if not self._algorithm.retains_segments:
                await self._stream(segment)

    async def tick(self) -> None:
        """
        Best-effort re-evaluation without a new segment.

        Skipped while a segment (or another tick) is being processed.
        """
        if self._lock.locked():
            return
        async with self._lock:
            if self._closed:
                return
            await self._apply(self._algorithm.tick())

    def update(self) -> int:
        """Per-tick poll, forwarded to the source."""
        if self._closing:
            return 0
        return self._source.update()

    async def set_detector_active(self, is_active: bool) -> None:
        """
        Forward on/off intent to the source.

        Turning the detector off while voice is active ends the active
        state immediately, applying the algorithm's exit policy once.
        """
        if self._closing:
            return
        self._source.set_source_active(is_active)

        if is_active:
            return

        async with self._lock:
            if self._closed or not self._signal.value:
                return
            await self._apply(self._algorithm.force_inactive())

    # ------------------------------------------------------------------
    # Internal: event loop plumbing
    # ------------------------------------------------------------------

    def _on_segment_read(self, segment: VoiceSegment) -> None:
        """Source listener. Synchronous; hands off to the consumer."""
        self._inbox.put_nowait(segment)

    async def _consume(self) -> None:
        while True:
            segment = await self._inbox.get()
            try:
                if segment is None:
                    return
                await self.ingest(segment)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # One bad segment must not stop the consumer
                log_event({
                    "event_type": "VAD_INGEST_FAILED",
                    "detector_id": self._detector_id,
                    "sequence_num": segment.sequence_num if segment else None,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
                if segment is not None and not segment.released and not self._retained(segment):
                    segment.release()
            finally:
                self._inbox.task_done()

    async def _tick_loop(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            await self.tick()

    # ------------------------------------------------------------------
    # Internal: effect execution
    # ------------------------------------------------------------------

    async def _apply(self, effects: tuple[Effect, ...]) -> None:
        for effect in effects:
            if isinstance(effect, SetVoiceActive):
                await self._set_voice_active(effect.is_active)

            elif isinstance(effect, CommitRun):
                await self._commit(effect)

            elif isinstance(effect, DiscardRun):
                for segment in effect.segments:
                    segment.release()

            elif isinstance(effect, ReleaseSegment):
                effect.segment.release()

            elif isinstance(effect, LogEvent):
                log_event({
                    **effect.event,
                    "detector_id": self._detector_id,
                    "algorithm": self._algorithm.algorithm.value,
                })

    async def _set_voice_active(self, is_active: bool) -> None:
        changed = self._signal.set(is_active)
        if not changed or self._algorithm.retains_segments:
            return

        # Edge-driven buffering for algorithms that only publish a level
        hook = self._buffer.on_active_start if is_active else self._buffer.on_active_end
        try:
            await self._cancel.run(hook())
        except ForwardCancelled:
            self._log_cancelled(remaining=0)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_failed(exc, stage=hook.__name__, remaining=0)

    async def _stream(self, segment: VoiceSegment) -> None:
        """Forward while active, otherwise drop; release either way."""
        try:
            if self._signal.value:
                await self._cancel.run(self._buffer.forward(segment, self._cancel))
        except ForwardCancelled:
            self._log_cancelled(remaining=1)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_failed(exc, stage="forward", remaining=1)
        finally:
            segment.release()

    async def _commit(self, effect: CommitRun) -> None:
        """
        Forward a run in order, awaiting each forward before the next,
        releasing each segment after its forward completes.
        """
        pending = deque(effect.segments)
        with timed(
            "forward_run",
            detector_id=self._detector_id,
            details={"segments": len(pending)},
        ) as info:
            stage = "on_active_start"
            try:
                await self._cancel.run(self._buffer.on_active_start())
                stage = "forward"
                while pending:
                    await self._cancel.run(
                        self._buffer.forward(pending[0], self._cancel)
                    )
                    pending.popleft().release()
                stage = "on_active_end"
                await self._cancel.run(self._buffer.on_active_end())
            except ForwardCancelled:
                self._log_cancelled(remaining=len(pending))
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # The run is lost; the state machine still moves on
                info["failed"] = True
                self._log_failed(exc, stage=stage, remaining=len(pending))
            finally:
                info["forwarded"] = len(effect.segments) - len(pending)
                while pending:
                    pending.popleft().release()

    def _log_cancelled(self, *, remaining: int) -> None:
        log_event({
            "event_type": "VAD_FORWARD_CANCELLED",
            "detector_id": self._detector_id,
            "released_unforwarded": remaining,
        })

    def _log_failed(self, exc: Exception, *, stage: str, remaining: int) -> None:
        log_event({
            "event_type": "VAD_FORWARD_FAILED",
            "detector_id": self._detector_id,
            "stage": stage,
            "exception": type(exc).__name__,
            "message": str(exc),
            "released_unforwarded": remaining,
        })

    def _retained(self, segment: VoiceSegment) -> bool:
        state = self._algorithm.state
        return isinstance(state, ActiveRun) and any(s is segment for s in state.pending)
