"""
Rate-windowed detector.

Hysteresis over the active fraction of a bounded-duration window:
- Inactive -> Active when rate >= activation_rate_threshold
- Active -> Inactive when rate <= deactivation_rate_threshold
- Anything in between keeps the current state

The only output is the activity signal. Segments are never retained
here; the detector front buffers on the signal's edges.

Silence gaps:
- Segments only arrive while the source is producing audio. When the
  next segment is overdue (longer than the last segment's duration since
  it arrived), each tick records the time elapsed since the last covered
  instant as an inactive entry, so the rate decays during a stall
- A late segment may overlap the filled gap by at most one segment
  duration
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from audio.activity_queue import VoiceSegmentActivity, VoiceSegmentActivityQueue
from audio.segments import VoiceSegment
from detection.base import Algorithm, DetectorAlgorithm
from detection.effects import Effect, LogEvent, SetVoiceActive, Transition
from detection.errors import ConfigurationError, require_positive
from detection.states import ACTIVE, INACTIVE, Active, DetectorState


@dataclass(frozen=True)
class RateWindowSettings:
    """Validated, immutable parameters of the rate-windowed detector."""
    max_queueing_time_s: float
    active_volume_threshold: float
    activation_rate_threshold: float
    deactivation_rate_threshold: float
    interval_s: float

    def __post_init__(self) -> None:
        require_positive("max_queueing_time_s", self.max_queueing_time_s)
        require_positive("active_volume_threshold", self.active_volume_threshold)
        require_positive("activation_rate_threshold", self.activation_rate_threshold)
        require_positive(
            "deactivation_rate_threshold", self.deactivation_rate_threshold
        )
        require_positive("interval_s", self.interval_s)
        if self.activation_rate_threshold <= self.deactivation_rate_threshold:
            raise ConfigurationError(
                "activation_rate_threshold",
                self.activation_rate_threshold,
                "must be greater than deactivation_rate_threshold "
                f"({self.deactivation_rate_threshold})",
            )


def silence_gap(
    *,
    now_s: float,
    last_arrival_s: Optional[float],
    last_covered_s: Optional[float],
    last_duration_s: float,
) -> float:
    """
    Seconds of missing audio to record as inactive at `now_s`.

    0.0 before the first segment and while the next one is not yet due.
    """
    if last_arrival_s is None or last_covered_s is None:
        return 0.0
    if now_s - last_arrival_s <= last_duration_s:
        return 0.0
    return max(0.0, now_s - last_covered_s)


def evaluate(
    settings: RateWindowSettings,
    state: DetectorState,
    rate: float,
) -> Transition:
    """Pure hysteresis decision for one observed rate."""
    if isinstance(state, Active):
        if rate <= settings.deactivation_rate_threshold:
            return Transition(
                state=INACTIVE,
                effects=(
                    SetVoiceActive(False),
                    LogEvent({"event_type": "VAD_ENTER_INACTIVE", "rate": rate}),
                ),
            )
        return Transition(state=state)

    if rate >= settings.activation_rate_threshold:
        return Transition(
            state=ACTIVE,
            effects=(
                LogEvent({"event_type": "VAD_ENTER_ACTIVE", "rate": rate}),
                SetVoiceActive(True),
            ),
        )
    return Transition(state=state)


class RateWindowedDetector(DetectorAlgorithm):
    """
    Owns the activity queue and the Active/Inactive state.

    Raises:
        ConfigurationError at construction if a threshold is <= 0 or the
        hysteresis band is empty or inverted.
    """

    algorithm = Algorithm.RATE_WINDOWED
    retains_segments = False

    def __init__(
        self,
        *,
        max_queueing_time_s: float,
        active_volume_threshold: float,
        activation_rate_threshold: float,
        deactivation_rate_threshold: float,
        interval_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = RateWindowSettings(
            max_queueing_time_s=max_queueing_time_s,
            active_volume_threshold=active_volume_threshold,
            activation_rate_threshold=activation_rate_threshold,
            deactivation_rate_threshold=deactivation_rate_threshold,
            interval_s=interval_s,
        )
        self._queue = VoiceSegmentActivityQueue(
            max_queueing_time_s=max_queueing_time_s
        )
        self._state: DetectorState = INACTIVE

        self._clock = clock
        self._last_arrival_s: Optional[float] = None
        self._last_covered_s: Optional[float] = None
        self._last_duration_s = 0.0

    @property
    def settings(self) -> RateWindowSettings:
        return self._settings

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def queue(self) -> VoiceSegmentActivityQueue:
        return self._queue

    @property
    def tick_interval_s(self) -> float:
        return self._settings.interval_s

    def ingest(self, segment: VoiceSegment) -> tuple[Effect, ...]:
        now_s = self._clock()
        self._last_arrival_s = now_s
        self._last_covered_s = now_s
        self._last_duration_s = segment.duration_s

        self._queue.enqueue(
            VoiceSegmentActivity(
                is_active=segment.is_active(self._settings.active_volume_threshold),
                time_s=segment.duration_s,
            )
        )
        return self._evaluate()

    def tick(self) -> tuple[Effect, ...]:
        """Record any overdue silence, then re-evaluate."""
        now_s = self._clock()
        gap_s = silence_gap(
            now_s=now_s,
            last_arrival_s=self._last_arrival_s,
            last_covered_s=self._last_covered_s,
            last_duration_s=self._last_duration_s,
        )
        if gap_s > 0.0:
            self._queue.enqueue(VoiceSegmentActivity(is_active=False, time_s=gap_s))
            self._last_covered_s = now_s
        return self._evaluate()

    def force_inactive(self) -> tuple[Effect, ...]:
        if not isinstance(self._state, Active):
            return ()
        # Stale history would re-trigger activation on the next segment
        self._reset_history()
        self._state = INACTIVE
        return (
            SetVoiceActive(False),
            LogEvent({"event_type": "VAD_ENTER_INACTIVE", "reason": "forced"}),
        )

    def shutdown(self) -> tuple[Effect, ...]:
        effects = self.force_inactive()
        self._reset_history()
        return effects

    def _reset_history(self) -> None:
        self._queue.clear()
        self._last_arrival_s = None
        self._last_covered_s = None
        self._last_duration_s = 0.0

    def _evaluate(self) -> tuple[Effect, ...]:
        transition = evaluate(
            self._settings, self._state, self._queue.active_time_rate()
        )
        self._state = transition.state
        return transition.effects
