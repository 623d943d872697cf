"""Pydantic request schemas for Gateway API."""

from pydantic import BaseModel, Field

from callguard.common.models import WordTiming
from callguard.redaction.pipeline import TranscriptInput


class WordTimingParams(BaseModel):
    """One transcript word with its audio offsets."""

    word: str
    start: float = Field(ge=0, description="Start offset in seconds")
    end: float = Field(ge=0, description="End offset in seconds")


class RedactionRequest(BaseModel):
    """Word-timed transcript submitted for redaction.

    Maps to the body of POST /v1/calls/{call_id}/redaction.
    """

    text: str = Field(description="Full transcript text")
    words: list[WordTimingParams] = Field(
        default_factory=list,
        description="Transcript words with timings. Empty means no redaction is possible.",
    )

    def to_transcript(self) -> TranscriptInput:
        return TranscriptInput(
            text=self.text,
            words=[WordTiming(word=w.word, start=w.start, end=w.end) for w in self.words],
        )
