"""Coalesce detected spans into a sorted, disjoint set.

The audio redactor gets one mute instruction per merged span, so overlapping
inputs must never reach the ffmpeg filter graph, and the text sanitizer needs
disjoint ranges to splice replacements safely.
"""

from callguard.common.models import MergedSpan, SensitiveCategory, SensitiveSpan


def _union_text(
    a: tuple[tuple[int, int], ...] | None, b: tuple[int, int] | None
) -> tuple[tuple[int, int], ...] | None:
    # An unaligned member leaves the merged span unaligned
    if a is None or b is None:
        return None
    # Spans close in time can be far apart in text; keep the words between them
    return tuple(merge_text_ranges([*a, b]))


def _start_text(
    text_range: tuple[int, int] | None,
) -> tuple[tuple[int, int], ...] | None:
    return None if text_range is None else (text_range,)


def merge(
    spans: list[SensitiveSpan],
    audio_duration: float | None = None,
) -> list[MergedSpan]:
    """Merge overlapping or touching spans by time.

    Args:
        spans: Padded spans from the detector, in any order
        audio_duration: Recording length in seconds; merged spans are clipped
            to [0, audio_duration] when given

    Returns:
        Spans sorted by start time, pairwise non-overlapping, each carrying
        the union of the categories it absorbed and the disjoint text ranges
        of its members
    """
    if not spans:
        return []

    ordered = sorted(spans, key=lambda s: (s.start_time, s.end_time))

    merged: list[MergedSpan] = []
    current_start = ordered[0].start_time
    current_end = ordered[0].end_time
    current_reasons: set[SensitiveCategory] = {ordered[0].category}
    current_text = _start_text(ordered[0].text_range)

    for span in ordered[1:]:
        if span.start_time <= current_end:
            current_end = max(current_end, span.end_time)
            current_reasons.add(span.category)
            current_text = _union_text(current_text, span.text_range)
        else:
            merged.append(
                MergedSpan(
                    current_start,
                    current_end,
                    frozenset(current_reasons),
                    current_text,
                )
            )
            current_start, current_end = span.start_time, span.end_time
            current_reasons = {span.category}
            current_text = _start_text(span.text_range)

    merged.append(
        MergedSpan(current_start, current_end, frozenset(current_reasons), current_text)
    )

    return [_clip(span, audio_duration) for span in merged]


def _clip(span: MergedSpan, audio_duration: float | None) -> MergedSpan:
    upper = audio_duration if audio_duration is not None else float("inf")
    start = min(max(0.0, span.start_time), upper)
    end = min(max(start, span.end_time), upper)
    if start == span.start_time and end == span.end_time:
        return span
    return MergedSpan(start, end, span.reasons, span.text_ranges)


def merge_text_ranges(ranges: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or touching character ranges into a sorted disjoint list."""
    if not ranges:
        return []

    ordered = sorted(ranges)
    merged = [ordered[0]]
    for start, end in ordered[1:]:
        last_start, last_end = merged[-1]
        if start <= last_end:
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def text_ranges(spans: list[MergedSpan]) -> list[tuple[int, int]]:
    """Disjoint text ranges covered by merged spans."""
    return merge_text_ranges(
        [r for s in spans if s.text_ranges is not None for r in s.text_ranges]
    )
