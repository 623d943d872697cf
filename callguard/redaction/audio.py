"""Audio redaction using FFmpeg.

Mutes time ranges of a recording with a single volume-gate filter pass.
The filter only zeroes samples inside each range, so the cost grows with
file size rather than with the number of ranges.
"""

import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path

import structlog

from callguard.common.audio_probe import AudioProbeError, probe_audio

logger = structlog.get_logger()


class RedactionError(Exception):
    """FFmpeg is unavailable, failed, or produced unusable output."""

    pass


def build_silence_filter(spans: Sequence[tuple[float, float]]) -> str:
    """Build an FFmpeg audio filter that silences each range.

    Args:
        spans: (start, end) ranges in seconds

    Returns:
        Comma-joined volume filters, one per range
    """
    filters = []
    for start, end in spans:
        start = max(0.0, float(start))
        end = max(float(end), start)
        filters.append(f"volume=enable='between(t,{start:.3f},{end:.3f})':volume=0")
    return ",".join(filters)


def redact(
    audio: bytes,
    spans: Sequence[tuple[float, float]],
    *,
    ffmpeg_path: str = "ffmpeg",
    timeout_seconds: float = 300,
) -> bytes:
    """Silence the given time ranges of a recording.

    Args:
        audio: Original recording bytes
        spans: Disjoint (start, end) ranges in seconds
        ffmpeg_path: FFmpeg executable
        timeout_seconds: Maximum FFmpeg runtime

    Returns:
        Redacted WAV bytes (16-bit PCM). The input itself when spans is empty.

    Raises:
        RedactionError: If FFmpeg cannot be started, fails or times out, if
            the temporary files cannot be written, or if its output is empty
            or unreadable
    """
    if not spans:
        return audio
    if not audio:
        raise RedactionError("No audio to redact")

    filter_chain = build_silence_filter(spans)

    try:
        with tempfile.TemporaryDirectory(prefix="callguard-redact-") as tmp:
            input_path = Path(tmp) / "input.wav"
            output_path = Path(tmp) / "output.wav"
            input_path.write_bytes(audio)

            cmd = [
                ffmpeg_path,
                "-hide_banner",
                "-loglevel",
                "error",
                "-y",
                "-i",
                str(input_path),
                "-af",
                filter_chain,
                "-c:a",
                "pcm_s16le",
                str(output_path),
            ]
            logger.debug("ffmpeg_command", cmd=" ".join(cmd))

            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=timeout_seconds,
                )
            except FileNotFoundError as e:
                raise RedactionError(f"FFmpeg not found: {ffmpeg_path}") from e
            except OSError as e:
                raise RedactionError(f"FFmpeg could not be started: {e}") from e
            except subprocess.TimeoutExpired as e:
                raise RedactionError(
                    f"FFmpeg timed out after {timeout_seconds}s"
                ) from e

            if result.returncode != 0:
                logger.error(
                    "ffmpeg_failed",
                    returncode=result.returncode,
                    stderr=result.stderr,
                )
                raise RedactionError(f"FFmpeg failed: {result.stderr.strip()}")

            if not output_path.exists():
                raise RedactionError("FFmpeg produced no output file")
            redacted = output_path.read_bytes()
    except OSError as e:
        raise RedactionError(f"Temporary audio file I/O failed: {e}") from e

    if not redacted:
        raise RedactionError("FFmpeg produced empty output")

    try:
        probe_audio(redacted, "redacted.wav")
    except AudioProbeError as e:
        raise RedactionError(f"Redacted audio is unreadable: {e}") from e

    logger.info(
        "audio_redacted",
        range_count=len(spans),
        input_bytes=len(audio),
        output_bytes=len(redacted),
    )
    return redacted


def ffmpeg_available(ffmpeg_path: str = "ffmpeg", timeout_seconds: float = 10) -> bool:
    """Check whether FFmpeg can be executed."""
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0
