"""
Side-effect definitions emitted by detector transitions.

Rules:
- Effects are declarative requests for side effects.
- Effects are emitted by pure transition functions and executed by the
  detector front (VoiceActivityDetector).
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Effect subclasses MUST be frozen dataclasses.
    - A segment appears in at most one CommitRun/DiscardRun/ReleaseSegment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from audio.segments import VoiceSegment
from detection.states import DetectorState


class EffectType(str, Enum):
    """
    Canonical effect types.

    Stable discriminants used for logging and dispatch.
    """
    SET_VOICE_ACTIVE = "SET_VOICE_ACTIVE"
    COMMIT_RUN = "COMMIT_RUN"
    DISCARD_RUN = "DISCARD_RUN"
    RELEASE_SEGMENT = "RELEASE_SEGMENT"
    LOG_EVENT = "LOG_EVENT"


class Effect:
    """
    Base effect type.

    effect_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    effect_type: EffectType


@dataclass(frozen=True)
class SetVoiceActive(Effect):
    """Publish a new level on the activity signal."""
    is_active: bool
    effect_type: EffectType = EffectType.SET_VOICE_ACTIVE


@dataclass(frozen=True)
class CommitRun(Effect):
    """Forward every segment to the buffer, in order, then release each."""
    segments: tuple[VoiceSegment, ...]
    total_active_s: float
    effect_type: EffectType = EffectType.COMMIT_RUN


@dataclass(frozen=True)
class DiscardRun(Effect):
    """Release every segment without forwarding."""
    segments: tuple[VoiceSegment, ...]
    total_active_s: float
    effect_type: EffectType = EffectType.DISCARD_RUN


@dataclass(frozen=True)
class ReleaseSegment(Effect):
    """Release a single segment nobody retained."""
    segment: VoiceSegment
    effect_type: EffectType = EffectType.RELEASE_SEGMENT


@dataclass(frozen=True)
class LogEvent(Effect):
    """Structured log line; the front adds detector identity."""
    event: dict[str, Any]
    effect_type: EffectType = EffectType.LOG_EVENT


@dataclass(frozen=True)
class Transition:
    """Result of a pure transition: the next state plus ordered effects."""
    state: DetectorState
    effects: tuple[Effect, ...] = field(default=())
