"""
DEFAULTS-AS-CONSTANTS
---------------------
Single source of truth for default behavioral values.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Config and tests import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio format (PCM16 mono @ 16kHz, 20ms segments)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
SEGMENT_DURATION_S: Final[float] = 0.02

WAVE_BITS_PER_SAMPLE: Final[int] = 16
WAVE_SUPPORTED_BITS: Final[frozenset[int]] = frozenset({16, 24, 32})

# =============================================================================
# Binary mic framing
# =============================================================================
# Client → Server: 4B seq_num (u32 LE) + PCM16 samples
C2S_SEQ_NUM_BYTES: Final[int] = 4

SEQ_NUM_START: Final[int] = 1
SEQ_NUM_MAX: Final[int] = 2**32 - 1  # u32 wraparound

# =============================================================================
# Shared detection
# =============================================================================

ACTIVE_VOLUME_THRESHOLD: Final[float] = 0.01

# =============================================================================
# Rate-windowed detector
# =============================================================================

MAX_QUEUEING_TIME_S: Final[float] = 1.0
ACTIVATION_RATE_THRESHOLD: Final[float] = 0.6
DEACTIVATION_RATE_THRESHOLD: Final[float] = 0.4
TICK_INTERVAL_S: Final[float] = 0.5

# =============================================================================
# Cumulative charge detector
# =============================================================================

ACTIVE_CHARGE_TIME_RATE: Final[float] = 2.0
MAX_CHARGE_TIME_S: Final[float] = 1.0
EFFECTIVE_CUMULATED_TIME_THRESHOLD_S: Final[float] = 0.3
MAX_CUMULATED_TIME_S: Final[float] = 10.0

# =============================================================================
# Internal time resolution
# =============================================================================

NS_PER_SECOND: Final[int] = 1_000_000_000
