# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any, Callable, Union

import numpy as np
import pytest

from audio.segments import VoiceSegment
from buffers.base import VoiceBuffer
from buffers.null import NullVoiceBuffer
from detection.cancellation import CancellationScope
from detection.cumulative import CumulativeChargeDetector
from detection.detector import VoiceActivityDetector
from detection.rate_windowed import RateWindowedDetector
from detection.signal import Listeners, Unsubscribe
from detection.states import Inactive
from observability import logger
from sources.base import VoiceSource


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakeSource(VoiceSource):
    def __init__(self) -> None:
        self.listeners: Listeners[VoiceSegment] = Listeners()
        self.active_calls: list[bool] = []
        self.disposed = False

    def subscribe(self, listener: Callable[[VoiceSegment], None]) -> Unsubscribe:
        return self.listeners.subscribe(listener)

    def set_source_active(self, is_active: bool) -> None:
        self.active_calls.append(is_active)

    def dispose(self) -> None:
        self.disposed = True
        self.listeners.clear()


class RecordingBuffer(VoiceBuffer):
    def __init__(self) -> None:
        self.calls: list[Union[str, int]] = []
        self.saw_released = False

    async def on_active_start(self) -> None:
        self.calls.append("start")

    async def forward(self, segment: VoiceSegment, cancel: CancellationScope) -> None:
        cancel.raise_if_cancelled()
        self.saw_released = self.saw_released or segment.released
        self.calls.append(segment.sequence_num)

    async def on_active_end(self) -> None:
        self.calls.append("end")


class BlockingBuffer(VoiceBuffer):
    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.completed = 0

    async def forward(self, segment: VoiceSegment, cancel: CancellationScope) -> None:
        self.entered.set()
        await asyncio.sleep(3600)
        self.completed += 1


def cumulative() -> CumulativeChargeDetector:
    return CumulativeChargeDetector(
        active_volume_threshold=0.01,
        active_charge_time_rate=2.0,
        max_charge_time_s=1.0,
        effective_cumulated_time_threshold_s=0.3,
        max_cumulated_time_s=10.0,
    )


def rate_windowed() -> RateWindowedDetector:
    return RateWindowedDetector(
        max_queueing_time_s=1.0,
        active_volume_threshold=0.01,
        activation_rate_threshold=0.6,
        deactivation_rate_threshold=0.4,
        interval_s=60.0,
    )


def seg(volume: float, duration_s: float, seq: int, released: list[int]) -> VoiceSegment:
    return VoiceSegment(
        samples=np.zeros(16, dtype=np.float32),
        volume=volume,
        duration_s=duration_s,
        sequence_num=seq,
        on_release=lambda s: released.append(s.sequence_num),
    )


# ---------------------------------------------------------------------
# Cumulative variant
# ---------------------------------------------------------------------

def test_committed_run_is_forwarded_in_order_then_released():
    async def scenario() -> None:
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=cumulative(), source=FakeSource(), buffer=buffer
        )
        history: list[bool] = []
        det.voice_is_active.subscribe(history.append)
        released: list[int] = []

        for i in range(10):
            await det.ingest(seg(0.05, 0.1, i + 1, released))
        assert det.is_active is True
        assert buffer.calls == []

        await det.ingest(seg(0.0, 1.0, 11, released))

        assert buffer.calls == ["start", *range(1, 12), "end"]
        assert buffer.saw_released is False
        assert released == list(range(1, 12))
        assert history == [False, True, False]
        assert isinstance(det.state, Inactive)

    asyncio.run(scenario())


def test_discarded_run_is_released_without_forwarding():
    async def scenario() -> None:
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=cumulative(), source=FakeSource(), buffer=buffer
        )
        released: list[int] = []

        await det.ingest(seg(0.05, 0.1, 1, released))
        await det.ingest(seg(0.0, 1.0, 2, released))
        await det.ingest(seg(0.0, 0.1, 3, released))

        assert buffer.calls == []
        assert released == [1, 2, 3]
        assert det.is_active is False

    asyncio.run(scenario())


def test_forced_stop_with_single_pending_segment():
    async def scenario() -> None:
        source = FakeSource()
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(algorithm=cumulative(), source=source, buffer=buffer)
        released: list[int] = []

        await det.ingest(seg(0.05, 0.1, 1, released))
        await det.set_detector_active(False)

        assert source.active_calls == [False]
        assert det.is_active is False
        assert buffer.calls == []
        assert released == [1]

    asyncio.run(scenario())


def test_forced_stop_commits_effective_run():
    async def scenario() -> None:
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=cumulative(), source=FakeSource(), buffer=buffer
        )
        released: list[int] = []

        for i in range(5):
            await det.ingest(seg(0.05, 0.1, i + 1, released))
        await det.set_detector_active(False)
        # Idempotent while inactive
        await det.set_detector_active(False)

        assert buffer.calls == ["start", 1, 2, 3, 4, 5, "end"]
        assert released == [1, 2, 3, 4, 5]

    asyncio.run(scenario())


def test_forced_stop_while_inactive_only_reaches_source():
    async def scenario() -> None:
        source = FakeSource()
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(algorithm=cumulative(), source=source, buffer=buffer)

        await det.set_detector_active(False)
        await det.set_detector_active(True)

        assert source.active_calls == [False, True]
        assert buffer.calls == []

    asyncio.run(scenario())


def test_close_cancels_pending_forward_and_releases_everything():
    async def scenario() -> None:
        source = FakeSource()
        buffer = BlockingBuffer()
        det = VoiceActivityDetector(algorithm=cumulative(), source=source, buffer=buffer)
        released: list[int] = []

        for i in range(10):
            await det.ingest(seg(0.05, 0.1, i + 1, released))

        committing = asyncio.create_task(det.ingest(seg(0.0, 1.0, 11, released)))
        await buffer.entered.wait()

        await det.aclose()
        await committing

        assert buffer.completed == 0
        assert sorted(released) == list(range(1, 12))
        assert det.is_active is False
        assert det.closed is True
        assert source.disposed is True

    asyncio.run(scenario())


def test_close_discards_open_run():
    async def scenario() -> None:
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=cumulative(), source=FakeSource(), buffer=buffer
        )
        released: list[int] = []

        for i in range(5):
            await det.ingest(seg(0.05, 0.1, i + 1, released))
        await det.aclose()

        assert buffer.calls == []
        assert released == [1, 2, 3, 4, 5]
        assert det.is_active is False

    asyncio.run(scenario())


def test_segment_after_close_is_released_unprocessed():
    async def scenario() -> None:
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=cumulative(), source=FakeSource(), buffer=buffer
        )
        released: list[int] = []
        await det.aclose()

        await det.ingest(seg(0.9, 0.1, 1, released))

        assert released == [1]
        assert det.is_active is False
        assert buffer.calls == []

    asyncio.run(scenario())


def test_source_segments_flow_through_consumer():
    async def scenario() -> None:
        source = FakeSource()
        buffer = NullVoiceBuffer()
        released: list[int] = []

        async with VoiceActivityDetector(
            algorithm=cumulative(), source=source, buffer=buffer
        ) as det:
            for i in range(5):
                source.listeners.emit(seg(0.05, 0.1, i + 1, released))
            source.listeners.emit(seg(0.0, 1.0, 6, released))
            await det.join()

            assert buffer.forwarded == 6

        assert released == [1, 2, 3, 4, 5, 6]
        # Source listener dropped on close
        assert len(source.listeners) == 0

    asyncio.run(scenario())


def test_queued_segments_released_when_closed_before_start():
    async def scenario() -> None:
        source = FakeSource()
        det = VoiceActivityDetector(
            algorithm=cumulative(), source=source, buffer=NullVoiceBuffer()
        )
        released: list[int] = []

        source.listeners.emit(seg(0.05, 0.1, 1, released))
        source.listeners.emit(seg(0.05, 0.1, 2, released))
        await det.aclose()

        assert released == [1, 2]

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Rate-windowed variant
# ---------------------------------------------------------------------

def test_rate_variant_buffers_between_signal_edges():
    async def scenario() -> None:
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=rate_windowed(), source=FakeSource(), buffer=buffer
        )
        history: list[bool] = []
        det.voice_is_active.subscribe(history.append)
        released: list[int] = []

        for i, volume in enumerate((0.05, 0.05, 0.05, 0.0, 0.0, 0.0, 0.0)):
            await det.ingest(seg(volume, 0.2, i + 1, released))

        # Segment 6 drops the rate to 0.4 and is not forwarded
        assert buffer.calls == ["start", 1, 2, 3, 4, 5, "end"]
        assert history == [False, True, False]
        assert released == [1, 2, 3, 4, 5, 6, 7]

    asyncio.run(scenario())


def test_rate_variant_forced_stop_closes_buffer_run():
    async def scenario() -> None:
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=rate_windowed(), source=FakeSource(), buffer=buffer
        )
        released: list[int] = []

        await det.ingest(seg(0.05, 0.2, 1, released))
        await det.set_detector_active(False)

        assert buffer.calls == ["start", 1, "end"]
        assert det.is_active is False

    asyncio.run(scenario())


def test_tick_is_skipped_while_segment_is_processed():
    async def scenario() -> None:
        algorithm = rate_windowed()
        ticks: list[int] = []
        algorithm.tick = lambda: (ticks.append(1), ())[1]  # type: ignore[method-assign]
        det = VoiceActivityDetector(
            algorithm=algorithm, source=FakeSource(), buffer=NullVoiceBuffer()
        )

        async with det._lock:  # pylint: disable=protected-access
            await det.tick()
        assert ticks == []

        await det.tick()
        assert ticks == [1]

    asyncio.run(scenario())


def test_tick_loop_deactivates_when_segments_stop_arriving():
    async def scenario() -> None:
        algorithm = RateWindowedDetector(
            max_queueing_time_s=1.0,
            active_volume_threshold=0.01,
            activation_rate_threshold=0.6,
            deactivation_rate_threshold=0.4,
            interval_s=0.01,
        )
        buffer = RecordingBuffer()
        det = VoiceActivityDetector(
            algorithm=algorithm, source=FakeSource(), buffer=buffer
        )
        released: list[int] = []
        deactivated = asyncio.Event()

        async with det:
            await det.ingest(seg(0.05, 0.05, 1, released))
            det.voice_is_active.subscribe(lambda v: None if v else deactivated.set())
            # No more segments: only the tick loop can end the activity
            await asyncio.wait_for(deactivated.wait(), timeout=5.0)

            assert buffer.calls == ["start", 1, "end"]

        assert det.is_active is False

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Buffer failures
# ---------------------------------------------------------------------

class FailingBuffer(VoiceBuffer):
    def __init__(self, *, fail_on: str) -> None:
        self.fail_on = fail_on
        self.forwarded = 0

    async def forward(self, segment: VoiceSegment, cancel: CancellationScope) -> None:
        if self.fail_on == "forward":
            raise OSError("disk full")
        self.forwarded += 1

    async def on_active_end(self) -> None:
        if self.fail_on == "on_active_end":
            raise OSError("receiver closed")


@pytest.fixture(name="events")
def fixture_events(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    captured: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: captured.append(json.loads(line)))
    monkeypatch.setattr(logger, "_enabled", True)
    return captured


@pytest.mark.parametrize("fail_on", ["forward", "on_active_end"])
def test_buffer_failure_is_logged_and_detector_keeps_running(
    fail_on: str,
    events: list[dict[str, Any]],
):
    async def scenario() -> None:
        source = FakeSource()
        det = VoiceActivityDetector(
            algorithm=cumulative(), source=source, buffer=FailingBuffer(fail_on=fail_on)
        )
        history: list[bool] = []
        det.voice_is_active.subscribe(history.append)
        released: list[int] = []

        async with det:
            for i in range(5):
                source.listeners.emit(seg(0.05, 0.1, i + 1, released))
            source.listeners.emit(seg(0.0, 1.0, 6, released))
            await asyncio.wait_for(det.join(), timeout=5.0)

            # Signal follows the state machine despite the failed run
            assert isinstance(det.state, Inactive)
            assert history == [False, True, False]
            assert released == [1, 2, 3, 4, 5, 6]

            # Consumer still alive
            source.listeners.emit(seg(0.0, 0.1, 7, released))
            await asyncio.wait_for(det.join(), timeout=5.0)
            assert released[-1] == 7

    asyncio.run(scenario())

    failures = [e for e in events if e["event_type"] == "VAD_FORWARD_FAILED"]
    assert len(failures) == 1
    assert failures[0]["stage"] == fail_on
    assert failures[0]["exception"] == "OSError"
    timer = next(e for e in events if e["event_type"] == "METRIC_TIMER")
    assert timer["details"]["failed"] is True


def test_rate_variant_forward_failure_still_releases(events: list[dict[str, Any]]):
    async def scenario() -> None:
        det = VoiceActivityDetector(
            algorithm=rate_windowed(), source=FakeSource(), buffer=FailingBuffer(fail_on="forward")
        )
        released: list[int] = []

        await det.ingest(seg(0.05, 0.2, 1, released))

        assert det.is_active is True
        assert released == [1]

    asyncio.run(scenario())
    assert [e["stage"] for e in events if e["event_type"] == "VAD_FORWARD_FAILED"] == ["forward"]


def test_consumer_survives_algorithm_error(events: list[dict[str, Any]]):
    async def scenario() -> None:
        algorithm = rate_windowed()
        real_ingest = algorithm.ingest
        calls: list[int] = []

        def flaky_ingest(segment: VoiceSegment):
            calls.append(segment.sequence_num)
            if len(calls) == 1:
                raise RuntimeError("bad segment")
            return real_ingest(segment)

        algorithm.ingest = flaky_ingest  # type: ignore[method-assign]
        source = FakeSource()
        released: list[int] = []

        async with VoiceActivityDetector(
            algorithm=algorithm, source=source, buffer=NullVoiceBuffer()
        ) as det:
            source.listeners.emit(seg(0.05, 0.2, 1, released))
            source.listeners.emit(seg(0.05, 0.2, 2, released))
            await asyncio.wait_for(det.join(), timeout=5.0)

            assert calls == [1, 2]
            assert released == [1, 2]
            assert det.is_active is True

    asyncio.run(scenario())
    failed = [e for e in events if e["event_type"] == "VAD_INGEST_FAILED"]
    assert [e["sequence_num"] for e in failed] == [1]
