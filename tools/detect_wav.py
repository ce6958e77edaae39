"""
Run voice activity detection over a WAV file.

Reads a mono/multi-channel 16-bit PCM WAV, feeds it through the detector
one segment at a time and writes every forwarded run to its own WAV file.

    python tools/detect_wav.py input.wav --out-dir runs/
    python tools/detect_wav.py input.wav --algorithm rate_windowed

Detector thresholds come from the same VAD_* environment variables as the
server (and .env, if present).
"""

from __future__ import annotations

import argparse
import asyncio
import io
import wave
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from buffers.wave_buffer import WaveVoiceBuffer
from config import DetectorConfig
from detection.base import Algorithm
from detection.factory import build_detector
from observability import logger
from sources.pcm_stream import PcmStreamSource


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("wav_path", type=Path)
    parser.add_argument("--out-dir", type=Path, default=Path("vad_runs"))
    parser.add_argument(
        "--algorithm",
        choices=[a.value for a in Algorithm],
        default=None,
        help="override VAD_ALGORITHM",
    )
    parser.add_argument("--quiet", action="store_true", help="disable JSONL logs")
    return parser.parse_args()


async def detect_file(
    wav_path: Path,
    out_dir: Path,
    config: DetectorConfig,
) -> list[Path]:
    """Detect over the whole file. Returns the written run files in order."""
    with wave.open(str(wav_path), "rb") as wf:
        if wf.getsampwidth() != 2:
            raise SystemExit(f"{wav_path}: only 16-bit PCM input is supported")
        config = replace(
            config,
            sample_rate_hz=wf.getframerate(),
            channels=wf.getnchannels(),
        )
        pcm = wf.readframes(wf.getnframes())

    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    def on_run(stream: io.BytesIO) -> None:
        path = out_dir / f"{wav_path.stem}_run{len(written) + 1:03d}.wav"
        with stream:
            path.write_bytes(stream.getvalue())
        written.append(path)

    source = PcmStreamSource(
        sample_rate_hz=config.sample_rate_hz,
        channels=config.channels,
        segment_duration_s=config.segment_duration_s,
        volume_mode=config.volume_mode,
    )
    buffer = WaveVoiceBuffer(
        on_run,
        sample_rate_hz=config.sample_rate_hz,
        bits_per_sample=config.wave_bits_per_sample,
        channels=config.channels,
    )

    async with build_detector(config, source=source, buffer=buffer) as detector:
        source.push_pcm(pcm)
        detector.update()
        await detector.join()
        # Whatever is still active at end of file is closed out like a stop
        await detector.set_detector_active(False)

    return written


def main() -> None:
    load_dotenv()
    args = _parse_args()

    config = DetectorConfig.load_from_env()
    if args.algorithm is not None:
        config = replace(config, algorithm=Algorithm(args.algorithm))
    logger.configure(enabled=config.enable_json_logs and not args.quiet)

    written = asyncio.run(detect_file(args.wav_path, args.out_dir, config))

    print(f"{len(written)} run(s) written to {args.out_dir}")
    for path in written:
        print(" ", path)


if __name__ == "__main__":
    main()
