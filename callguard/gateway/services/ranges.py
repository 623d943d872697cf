"""HTTP Range header parsing for recording delivery.

Supports a single byte range in the forms ``bytes=a-b``, ``bytes=a-`` and
``bytes=-N``. Multi-range requests are rejected rather than answered with a
multipart body.
"""

import re
from dataclasses import dataclass

_RANGE_SPEC_RE = re.compile(r"(\d*)-(\d*)")


class InvalidRangeError(Exception):
    """Range header is malformed or cannot be satisfied for this file size."""

    def __init__(self, total: int, reason: str):
        self.total = total
        self.reason = reason
        super().__init__(reason)

    @property
    def content_range(self) -> str:
        return f"bytes */{self.total}"


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range within a file."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total: int) -> str:
        return f"bytes {self.start}-{self.end}/{total}"


def parse_range(header: str | None, total: int) -> ByteRange | None:
    """Resolve a Range header against a file of ``total`` bytes.

    Args:
        header: Raw Range header value, or None
        total: File size in bytes

    Returns:
        The requested range clamped to the file, or None when no range
        was requested

    Raises:
        InvalidRangeError: If the header is malformed, asks for several
            ranges, or no byte of the range lies within the file
    """
    if header is None or not header.strip():
        return None

    unit, sep, value = header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise InvalidRangeError(total, f"Unsupported range unit in {header!r}")

    value = value.strip()
    if "," in value:
        raise InvalidRangeError(total, "Multiple ranges are not supported")

    match = _RANGE_SPEC_RE.fullmatch(value)
    if match is None or (not match.group(1) and not match.group(2)):
        raise InvalidRangeError(total, f"Malformed range {header!r}")

    first, last = match.group(1), match.group(2)

    if not first:
        # Suffix range: the final N bytes
        suffix = int(last)
        if suffix == 0 or total == 0:
            raise InvalidRangeError(total, "Range not satisfiable")
        return ByteRange(max(0, total - suffix), total - 1)

    start = int(first)
    if start >= total:
        raise InvalidRangeError(total, "Range start beyond end of file")

    end = int(last) if last else total - 1
    if end < start:
        raise InvalidRangeError(total, "Range end precedes start")

    return ByteRange(start, min(end, total - 1))
