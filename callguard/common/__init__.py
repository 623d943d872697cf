from callguard.common.models import (
    MergedSpan,
    RedactionErrorCode,
    RedactionResult,
    RedactionSegment,
    RedactionStatus,
    SensitiveCategory,
    SensitiveSpan,
    WordTiming,
)
from callguard.common.redis import get_redis, reset_provider

__all__ = [
    "MergedSpan",
    "RedactionErrorCode",
    "RedactionResult",
    "RedactionSegment",
    "RedactionStatus",
    "SensitiveCategory",
    "SensitiveSpan",
    "WordTiming",
    "get_redis",
    "reset_provider",
]
