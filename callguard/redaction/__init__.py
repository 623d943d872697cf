"""Sensitive-data detection and redaction for call transcripts and recordings."""

from callguard.redaction.audio import RedactionError, redact
from callguard.redaction.detector import detect, scan_text
from callguard.redaction.merger import merge, merge_text_ranges
from callguard.redaction.sanitizer import redact_text, sanitize

__all__ = [
    "RedactionError",
    "detect",
    "merge",
    "merge_text_ranges",
    "redact",
    "redact_text",
    "sanitize",
    "scan_text",
]
