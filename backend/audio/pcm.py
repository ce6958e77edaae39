"""PCM conversion utilities."""
import numpy as np

from detection.errors import ConfigurationError


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian bytes to float32 in [-1.0, 1.0).

    Interleaved multi-channel input stays interleaved.
    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; caller should treat as malformed frame upstream.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    return audio_i16.astype(np.float32) / 32768.0


def float32_to_pcm(samples: np.ndarray, *, bits_per_sample: int = 16) -> bytes:
    """
    Convert float32 samples in [-1.0, 1.0] to signed little-endian PCM.

    Supports 16, 24 and 32 bit output. Out-of-range samples are clipped.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)

    if bits_per_sample == 16:
        return (clipped * 32767.0).astype("<i2").tobytes()

    if bits_per_sample == 24:
        as_i32 = (clipped * 8_388_607.0).astype("<i4")
        # Keep the low three bytes of each little-endian int32
        return as_i32.view(np.uint8).reshape(-1, 4)[:, :3].tobytes()

    if bits_per_sample == 32:
        return (clipped * 2_147_483_647.0).astype("<i4").tobytes()

    raise ConfigurationError(
        "bits_per_sample", bits_per_sample, "must be 16, 24 or 32"
    )
