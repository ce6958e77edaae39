"""
Detector configuration.

Responsibilities:
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No threshold validation beyond parsing (detectors validate on
  construction)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, TypeVar

from audio.segments import VolumeMode
from defaults import (
    ACTIVATION_RATE_THRESHOLD,
    ACTIVE_CHARGE_TIME_RATE,
    ACTIVE_VOLUME_THRESHOLD,
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    DEACTIVATION_RATE_THRESHOLD,
    EFFECTIVE_CUMULATED_TIME_THRESHOLD_S,
    MAX_CHARGE_TIME_S,
    MAX_CUMULATED_TIME_S,
    MAX_QUEUEING_TIME_S,
    SEGMENT_DURATION_S,
    TICK_INTERVAL_S,
    WAVE_BITS_PER_SAMPLE,
)
from detection.base import Algorithm
from detection.errors import ConfigurationError

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class DetectorConfig:
    """
    Immutable detector configuration.

    Constructed once at process startup (or per test) and passed to
    build_detector().
    """

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    # ------------------------------------------------------------------
    # Algorithm selection
    # ------------------------------------------------------------------

    algorithm: Algorithm = Algorithm.CUMULATIVE
    active_volume_threshold: float = ACTIVE_VOLUME_THRESHOLD

    # ------------------------------------------------------------------
    # Rate-windowed
    # ------------------------------------------------------------------

    max_queueing_time_s: float = MAX_QUEUEING_TIME_S
    activation_rate_threshold: float = ACTIVATION_RATE_THRESHOLD
    deactivation_rate_threshold: float = DEACTIVATION_RATE_THRESHOLD
    interval_s: float = TICK_INTERVAL_S

    # ------------------------------------------------------------------
    # Cumulative
    # ------------------------------------------------------------------

    active_charge_time_rate: float = ACTIVE_CHARGE_TIME_RATE
    max_charge_time_s: float = MAX_CHARGE_TIME_S
    effective_cumulated_time_threshold_s: float = EFFECTIVE_CUMULATED_TIME_THRESHOLD_S
    max_cumulated_time_s: float = MAX_CUMULATED_TIME_S

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ
    channels: int = AUDIO_CHANNELS
    segment_duration_s: float = SEGMENT_DURATION_S
    volume_mode: VolumeMode = VolumeMode.RMS
    wave_bits_per_sample: int = WAVE_BITS_PER_SAMPLE

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(env: Mapping[str, str] | None = None) -> DetectorConfig:
        """
        Load configuration from environment variables.

        Missing variables fall back to defaults.

        Raises:
            ConfigurationError if a value cannot be parsed.
        """
        source = os.environ if env is None else env

        return DetectorConfig(
            enable_json_logs=source.get("ENABLE_JSON_LOGS", "1") == "1",

            algorithm=_enum(source, "VAD_ALGORITHM", Algorithm, Algorithm.CUMULATIVE),
            active_volume_threshold=_float(
                source, "VAD_ACTIVE_VOLUME_THRESHOLD", ACTIVE_VOLUME_THRESHOLD
            ),

            max_queueing_time_s=_float(
                source, "VAD_MAX_QUEUEING_TIME_S", MAX_QUEUEING_TIME_S
            ),
            activation_rate_threshold=_float(
                source, "VAD_ACTIVATION_RATE_THRESHOLD", ACTIVATION_RATE_THRESHOLD
            ),
            deactivation_rate_threshold=_float(
                source, "VAD_DEACTIVATION_RATE_THRESHOLD", DEACTIVATION_RATE_THRESHOLD
            ),
            interval_s=_float(source, "VAD_INTERVAL_S", TICK_INTERVAL_S),

            active_charge_time_rate=_float(
                source, "VAD_ACTIVE_CHARGE_TIME_RATE", ACTIVE_CHARGE_TIME_RATE
            ),
            max_charge_time_s=_float(source, "VAD_MAX_CHARGE_TIME_S", MAX_CHARGE_TIME_S),
            effective_cumulated_time_threshold_s=_float(
                source,
                "VAD_EFFECTIVE_CUMULATED_TIME_THRESHOLD_S",
                EFFECTIVE_CUMULATED_TIME_THRESHOLD_S,
            ),
            max_cumulated_time_s=_float(
                source, "VAD_MAX_CUMULATED_TIME_S", MAX_CUMULATED_TIME_S
            ),

            sample_rate_hz=_int(source, "AUDIO_SAMPLE_RATE_HZ", AUDIO_SAMPLE_RATE_HZ),
            channels=_int(source, "AUDIO_CHANNELS", AUDIO_CHANNELS),
            segment_duration_s=_float(
                source, "VAD_SEGMENT_DURATION_S", SEGMENT_DURATION_S
            ),
            volume_mode=_enum(source, "VAD_VOLUME_MODE", VolumeMode, VolumeMode.RMS),
            wave_bits_per_sample=_int(
                source, "WAVE_BITS_PER_SAMPLE", WAVE_BITS_PER_SAMPLE
            ),
        )


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _float(source: Mapping[str, str], key: str, default: float) -> float:
    raw = source.get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(key, raw, "expected a number") from e


def _int(source: Mapping[str, str], key: str, default: int) -> int:
    raw = source.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(key, raw, "expected an integer") from e


def _enum(source: Mapping[str, str], key: str, enum_cls: type[E], default: E) -> E:
    raw = source.get(key)
    if raw is None:
        return default
    try:
        return enum_cls(raw.strip().lower())
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(key, raw, f"expected one of: {allowed}") from e
