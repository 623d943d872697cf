"""Transcript text sanitization."""

from callguard.common.constants import REDACTION_MARKER
from callguard.redaction.detector import scan_text
from callguard.redaction.merger import merge_text_ranges


def sanitize(transcript_text: str, text_ranges: list[tuple[int, int]]) -> str:
    """Replace each character range with the redaction marker.

    Ranges must be disjoint (the merger guarantees this). Replacements are
    applied right to left so earlier offsets stay valid.
    """
    result = transcript_text
    for start, end in sorted(text_ranges, key=lambda r: r[0], reverse=True):
        result = result[:start] + REDACTION_MARKER + result[end:]
    return result


def redact_text(text: str | None) -> str:
    """Sanitize stored text that has no word timings.

    Used for transcripts and analyses persisted before redaction existed.
    """
    if not text:
        return ""
    return sanitize(text, merge_text_ranges(scan_text(text)))
