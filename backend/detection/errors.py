"""
Error taxonomy for voice activity detection.

- ConfigurationError: bad parameters, raised at construction only.
- InvalidStateError: caller-ordering bugs (never expected at runtime).
- ForwardCancelled: shutdown interrupted a forward; resolved locally.
"""

from __future__ import annotations

from typing import Any


class VoiceActivityError(Exception):
    """Base class for voice activity detection errors."""


class ConfigurationError(VoiceActivityError, ValueError):
    """
    Raised when a detector, source or buffer parameter is out of range.

    Carries the offending parameter name and value so callers can report
    which setting must change.
    """

    def __init__(self, name: str, value: Any, message: str) -> None:
        super().__init__(f"{name}={value!r}: {message}")
        self.name = name
        self.value = value


class InvalidStateError(VoiceActivityError, RuntimeError):
    """
    Raised when an operation is issued in an order the contract forbids,
    e.g. forwarding before a run was started.
    """


class SegmentReleasedError(InvalidStateError):
    """Raised when a voice segment is released a second time."""


class ForwardCancelled(VoiceActivityError):
    """
    Raised when the detector-lifetime cancellation scope fires while a
    forward is pending, or when a forward is attempted after it fired.
    """


def require_positive(name: str, value: float) -> None:
    """Raise ConfigurationError unless value > 0."""
    if not value > 0:
        raise ConfigurationError(name, value, "must be greater than 0")
