"""Pydantic response schemas for Gateway API."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from callguard.common.models import (
    RedactionErrorCode,
    RedactionResult,
    RedactionSegment,
    RedactionStatus,
)


class AudioMetaResponse(BaseModel):
    """Response for GET /v1/audio/{call_id}/meta."""

    model_config = ConfigDict(populate_by_name=True)

    duration_seconds: float | None = Field(
        default=None,
        serialization_alias="durationSeconds",
        description="Duration declared in the recording header, null if unknown",
    )


class RedactionStatusResponse(BaseModel):
    """Redaction state of a call as shown on the dashboard."""

    call_id: UUID
    status: RedactionStatus
    redacted: bool
    redacted_segments: list[RedactionSegment]
    redacted_at: datetime | None = None
    error_code: RedactionErrorCode | None = None
    show_redacted_badge: bool = Field(
        description="Whether the recording may be labelled as redacted"
    )
    playable: bool = Field(description="Whether the recording may be played now")

    @classmethod
    def from_result(cls, call_id: UUID, result: RedactionResult) -> "RedactionStatusResponse":
        return cls(
            call_id=call_id,
            status=result.status,
            redacted=result.redacted,
            redacted_segments=result.redacted_segments,
            redacted_at=result.redacted_at,
            error_code=result.error_code,
            show_redacted_badge=result.shows_redacted_badge,
            playable=result.playable,
        )


class RedactionAcceptedResponse(BaseModel):
    """Response for POST /v1/calls/{call_id}/redaction."""

    call_id: UUID
    status: str = "accepted"


class ErrorDetail(BaseModel):
    """Error detail of the standard error envelope."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
