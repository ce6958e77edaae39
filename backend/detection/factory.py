"""
Detector construction from configuration.

Selects exactly one algorithm variant. All threshold validation happens
here, before a single segment can be processed.
"""

from __future__ import annotations

from typing import Optional

from buffers.base import VoiceBuffer
from config import DetectorConfig
from detection.base import Algorithm, DetectorAlgorithm
from detection.cumulative import CumulativeChargeDetector
from detection.detector import VoiceActivityDetector
from detection.rate_windowed import RateWindowedDetector
from sources.base import VoiceSource


def build_algorithm(config: DetectorConfig) -> DetectorAlgorithm:
    """
    Build the algorithm named by config.algorithm.

    Raises:
        ConfigurationError if the selected variant's parameters are invalid.
    """
    if config.algorithm is Algorithm.RATE_WINDOWED:
        return RateWindowedDetector(
            max_queueing_time_s=config.max_queueing_time_s,
            active_volume_threshold=config.active_volume_threshold,
            activation_rate_threshold=config.activation_rate_threshold,
            deactivation_rate_threshold=config.deactivation_rate_threshold,
            interval_s=config.interval_s,
        )

    return CumulativeChargeDetector(
        active_volume_threshold=config.active_volume_threshold,
        active_charge_time_rate=config.active_charge_time_rate,
        max_charge_time_s=config.max_charge_time_s,
        effective_cumulated_time_threshold_s=config.effective_cumulated_time_threshold_s,
        max_cumulated_time_s=config.max_cumulated_time_s,
    )


def build_detector(
    config: DetectorConfig,
    *,
    source: VoiceSource,
    buffer: VoiceBuffer,
    detector_id: Optional[str] = None,
) -> VoiceActivityDetector:
    """Wire a configured algorithm between source and buffer."""
    return VoiceActivityDetector(
        algorithm=build_algorithm(config),
        source=source,
        buffer=buffer,
        detector_id=detector_id,
    )
