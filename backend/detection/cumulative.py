"""
Cumulative charge detector.

(settings, state, segment) -> Transition(new_state, effects)

A run starts on the first locally active segment. While it lasts, a
leaky-bucket charge is spent by every segment's duration and refilled by
active segments at `active_charge_time_rate`. The run ends when the
charge is exhausted or the run reaches `max_cumulated_time_s`. Only then
is it judged: runs with enough locally active time are forwarded in
full, the rest are discarded.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from audio.segments import VoiceSegment
from detection.base import Algorithm, DetectorAlgorithm
from detection.effects import (
    CommitRun,
    DiscardRun,
    Effect,
    LogEvent,
    ReleaseSegment,
    SetVoiceActive,
    Transition,
)
from detection.errors import require_positive
from detection.states import INACTIVE, ActiveRun, DetectorState


@dataclass(frozen=True)
class CumulativeSettings:
    """Validated, immutable parameters of the cumulative detector."""
    active_volume_threshold: float
    active_charge_time_rate: float
    max_charge_time_s: float
    effective_cumulated_time_threshold_s: float
    max_cumulated_time_s: float

    def __post_init__(self) -> None:
        require_positive("active_volume_threshold", self.active_volume_threshold)
        require_positive("active_charge_time_rate", self.active_charge_time_rate)
        require_positive("max_charge_time_s", self.max_charge_time_s)
        require_positive(
            "effective_cumulated_time_threshold_s",
            self.effective_cumulated_time_threshold_s,
        )
        require_positive("max_cumulated_time_s", self.max_cumulated_time_s)


# =============================================================================
# Pure transitions
# =============================================================================

def enter_active(settings: CumulativeSettings) -> ActiveRun:
    """Fresh run: full charge, nothing cumulated, empty FIFO."""
    return ActiveRun(
        charge_time_s=settings.max_charge_time_s,
        cumulated_time_s=0.0,
        pending=(),
    )


def total_active_time(
    settings: CumulativeSettings,
    segments: tuple[VoiceSegment, ...],
) -> float:
    return math.fsum(
        s.duration_s
        for s in segments
        if s.is_active(settings.active_volume_threshold)
    )


def exit_run(
    settings: CumulativeSettings,
    run: ActiveRun,
    *,
    reason: str,
) -> Transition:
    """
    Judge a finished run and go back to Inactive.

    The run is effective iff its locally active time reaches
    effective_cumulated_time_threshold_s.
    """
    total_active_s = total_active_time(settings, run.pending)
    effective = total_active_s >= settings.effective_cumulated_time_threshold_s

    drain: Effect
    if effective:
        drain = CommitRun(segments=run.pending, total_active_s=total_active_s)
    else:
        drain = DiscardRun(segments=run.pending, total_active_s=total_active_s)

    return Transition(
        state=INACTIVE,
        effects=(
            LogEvent({
                "event_type": (
                    "VAD_RUN_COMMITTED" if effective else "VAD_RUN_DISCARDED"
                ),
                "reason": reason,
                "segments": len(run.pending),
                "total_active_s": total_active_s,
                "cumulated_time_s": run.cumulated_time_s,
                "charge_time_s": run.charge_time_s,
            }),
            drain,
            SetVoiceActive(False),
            LogEvent({"event_type": "VAD_ENTER_INACTIVE", "reason": reason}),
        ),
    )


def step_active(
    settings: CumulativeSettings,
    run: ActiveRun,
    segment: VoiceSegment,
) -> Transition:
    """Add one segment to the run, update charge, exit if exhausted."""
    duration_s = segment.duration_s

    # Spend
    charge = run.charge_time_s - duration_s
    if segment.is_active(settings.active_volume_threshold):
        # Charge
        charge += duration_s * settings.active_charge_time_rate
    # Upper limit only; charge may go negative
    charge = min(charge, settings.max_charge_time_s)

    run = replace(
        run,
        charge_time_s=charge,
        cumulated_time_s=run.cumulated_time_s + duration_s,
        pending=run.pending + (segment,),
    )

    if run.cumulated_time_s >= settings.max_cumulated_time_s:
        return exit_run(settings, run, reason="max_cumulated_time")
    if run.charge_time_s <= 0.0:
        return exit_run(settings, run, reason="charge_exhausted")

    return Transition(state=run)


def step(
    settings: CumulativeSettings,
    state: DetectorState,
    segment: VoiceSegment,
) -> Transition:
    """Dispatch one segment on the current state."""
    if isinstance(state, ActiveRun):
        return step_active(settings, state, segment)

    if not segment.is_active(settings.active_volume_threshold):
        # Stay Inactive; nobody keeps the segment
        return Transition(state=state, effects=(ReleaseSegment(segment),))

    entered = enter_active(settings)
    # The triggering segment is the first item of the new run
    first = step_active(settings, entered, segment)
    return Transition(
        state=first.state,
        effects=(
            LogEvent({
                "event_type": "VAD_ENTER_ACTIVE",
                "volume": segment.volume,
                "sequence_num": segment.sequence_num,
            }),
            SetVoiceActive(True),
        ) + first.effects,
    )


# =============================================================================
# Stateful wrapper
# =============================================================================

class CumulativeChargeDetector(DetectorAlgorithm):
    """
    Holds the live state of the cumulative variant and delegates every
    decision to the pure transition functions above.

    Raises:
        ConfigurationError at construction if any parameter is <= 0.
    """

    algorithm = Algorithm.CUMULATIVE
    retains_segments = True

    def __init__(
        self,
        *,
        active_volume_threshold: float,
        active_charge_time_rate: float,
        max_charge_time_s: float,
        effective_cumulated_time_threshold_s: float,
        max_cumulated_time_s: float,
    ) -> None:
        self._settings = CumulativeSettings(
            active_volume_threshold=active_volume_threshold,
            active_charge_time_rate=active_charge_time_rate,
            max_charge_time_s=max_charge_time_s,
            effective_cumulated_time_threshold_s=effective_cumulated_time_threshold_s,
            max_cumulated_time_s=max_cumulated_time_s,
        )
        self._state: DetectorState = INACTIVE

    @property
    def settings(self) -> CumulativeSettings:
        return self._settings

    @property
    def state(self) -> DetectorState:
        return self._state

    def ingest(self, segment: VoiceSegment) -> tuple[Effect, ...]:
        transition = step(self._settings, self._state, segment)
        self._state = transition.state
        return transition.effects

    def force_inactive(self) -> tuple[Effect, ...]:
        if not isinstance(self._state, ActiveRun):
            return ()
        transition = exit_run(self._settings, self._state, reason="forced")
        self._state = transition.state
        return transition.effects

    def shutdown(self) -> tuple[Effect, ...]:
        state = self._state
        self._state = INACTIVE
        if not isinstance(state, ActiveRun):
            return ()
        return (
            DiscardRun(
                segments=state.pending,
                total_active_s=total_active_time(self._settings, state.pending),
            ),
            SetVoiceActive(False),
            LogEvent({"event_type": "VAD_ENTER_INACTIVE", "reason": "shutdown"}),
        )
