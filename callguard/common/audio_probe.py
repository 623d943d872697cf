"""Audio probing for recording validation and duration lookup.

Uses tinytag to read format, duration, sample rate and channel count from
the file header. Only the header is needed, so callers may pass the first
few kilobytes of a recording instead of the whole file.
"""

from dataclasses import dataclass
from io import BytesIO

import structlog
from tinytag import TinyTag, TinyTagException

logger = structlog.get_logger()


@dataclass
class AudioMetadata:
    """Audio file metadata extracted from an audio header."""

    duration: float  # Duration in seconds
    sample_rate: int  # Sample rate in Hz (e.g., 8000, 16000)
    channels: int  # Number of audio channels (1=mono, 2=stereo)
    bit_depth: int | None  # Bits per sample - None for lossy formats


class AudioProbeError(Exception):
    """Error during audio probing."""

    pass


class InvalidAudioError(AudioProbeError):
    """Audio data is invalid or unsupported."""

    pass


def probe_audio(data: bytes, filename: str | None = "recording.wav") -> AudioMetadata:
    """Probe audio data to extract metadata.

    Args:
        data: Raw audio bytes, or a prefix long enough to hold the header
        filename: Name used for format detection

    Returns:
        AudioMetadata with duration, sample_rate and channels

    Raises:
        InvalidAudioError: If the data is not readable audio
        AudioProbeError: If probing fails unexpectedly
    """
    if not data:
        raise InvalidAudioError("Audio data is empty")

    try:
        tag = TinyTag.get(file_obj=BytesIO(data), filename=filename)
    except TinyTagException as e:
        raise InvalidAudioError(f"Unable to read audio header: {e}") from e
    except Exception as e:
        raise AudioProbeError(f"Unexpected error probing audio: {e}") from e

    if tag.duration is None:
        raise InvalidAudioError("Could not determine audio duration")
    if tag.samplerate is None or tag.channels is None:
        raise InvalidAudioError("Could not determine sample rate or channel count")

    return AudioMetadata(
        duration=tag.duration,
        sample_rate=tag.samplerate,
        channels=tag.channels,
        bit_depth=tag.bitdepth,
    )


def probe_duration(head: bytes, filename: str | None = None) -> float | None:
    """Return the duration declared in an audio header, or None if unreadable.

    Without a filename the format is detected from the header bytes.
    """
    try:
        return probe_audio(head, filename).duration
    except AudioProbeError as e:
        logger.info("audio_duration_unavailable", error=str(e))
        return None
