from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Detection Types
# =============================================================================


class SensitiveCategory(str, Enum):
    """Kind of sensitive information a span was flagged for."""

    CARD_NUMBER = "card_number"
    CVV = "cvv"
    SSN = "ssn"
    DOB = "dob"
    EMAIL = "email"
    ADDRESS = "address"
    CREDENTIAL = "credential"


@dataclass(frozen=True)
class WordTiming:
    """Single transcript word with its position in the source audio."""

    word: str
    start: float  # Seconds
    end: float  # Seconds


@dataclass(frozen=True)
class SensitiveSpan:
    """Detected sensitive utterance in both the audio and text domains."""

    start_time: float  # Audio time (seconds), padding applied
    end_time: float  # Audio time (seconds), padding applied
    category: SensitiveCategory
    text_range: tuple[int, int] | None  # Character offsets [start, end)


@dataclass(frozen=True)
class MergedSpan:
    """Disjoint union of one or more SensitiveSpans."""

    start_time: float
    end_time: float
    reasons: frozenset[SensitiveCategory]
    text_ranges: tuple[tuple[int, int], ...] | None  # None when unaligned

    @property
    def reason(self) -> str:
        """Comma-joined category values, sorted for stable persistence."""
        return ",".join(sorted(c.value for c in self.reasons))


# =============================================================================
# Redaction Record Types
# =============================================================================


class RedactionStatus(str, Enum):
    """Redaction lifecycle state stored on a call."""

    NOT_NEEDED = "not_needed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RedactionStatus.COMPLETED, RedactionStatus.FAILED)


class RedactionErrorCode(str, Enum):
    """Why a redaction run ended in FAILED."""

    AUDIO_REDACTION_FAILED = "audio_redaction_failed"
    TEXT_ALIGNMENT_FAILED = "text_alignment_failed"
    RECORDING_UNAVAILABLE = "recording_unavailable"
    REPLACE_FAILED = "replace_failed"  # Original untouched, safe to retry
    REPLACE_INCONSISTENT = "replace_inconsistent"  # Needs operator attention
    INTERNAL_ERROR = "internal_error"  # Unexpected crash or cancellation


class RedactionSegment(BaseModel):
    """One muted range of a redacted recording."""

    model_config = ConfigDict(frozen=True)

    start: float
    end: float
    reason: str


class RedactionResult(BaseModel):
    """Redaction record persisted on the owning call."""

    status: RedactionStatus = RedactionStatus.NOT_NEEDED
    redacted: bool = False
    redacted_segments: list[RedactionSegment] = Field(default_factory=list)
    redacted_at: datetime | None = None
    error_code: RedactionErrorCode | None = None

    @property
    def shows_redacted_badge(self) -> bool:
        """Dashboard shows the "recording redacted" badge only when completed."""
        return self.status == RedactionStatus.COMPLETED and self.redacted

    @property
    def playable(self) -> bool:
        """Recordings are never played while a redaction is in flight."""
        return self.status != RedactionStatus.PROCESSING


def segments_from_merged(spans: list[MergedSpan]) -> list[RedactionSegment]:
    """Build persisted segments from merged spans, preserving order."""
    return [
        RedactionSegment(
            start=round(span.start_time, 3),
            end=round(span.end_time, 3),
            reason=span.reason,
        )
        for span in spans
    ]
