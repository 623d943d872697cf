from callguard.gateway.models.requests import RedactionRequest, WordTimingParams
from callguard.gateway.models.responses import (
    AudioMetaResponse,
    ErrorDetail,
    ErrorResponse,
    RedactionAcceptedResponse,
    RedactionStatusResponse,
)

__all__ = [
    "AudioMetaResponse",
    "ErrorDetail",
    "ErrorResponse",
    "RedactionAcceptedResponse",
    "RedactionRequest",
    "RedactionStatusResponse",
    "WordTimingParams",
]
