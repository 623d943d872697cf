"""Unit tests for span merging."""

import random

import pytest

from callguard.common.models import SensitiveCategory, SensitiveSpan
from callguard.redaction.merger import merge, merge_text_ranges, text_ranges
from callguard.redaction.sanitizer import sanitize

CARD = SensitiveCategory.CARD_NUMBER
CVV = SensitiveCategory.CVV
EMAIL = SensitiveCategory.EMAIL


def span(start, end, category=CARD, text=(0, 1)):
    return SensitiveSpan(start_time=start, end_time=end, category=category, text_range=text)


class TestMerge:
    """Tests for merge()."""

    def test_empty(self):
        assert merge([]) == []

    def test_overlapping_spans_merge(self):
        merged = merge([span(1.0, 3.0, CARD, (10, 20)), span(2.5, 4.0, CVV, (25, 30))])

        assert len(merged) == 1
        assert merged[0].start_time == 1.0
        assert merged[0].end_time == 4.0
        assert merged[0].reasons == frozenset({CARD, CVV})
        assert merged[0].reason == "card_number,cvv"
        assert merged[0].text_ranges == ((10, 20), (25, 30))

    def test_overlapping_text_ranges_coalesce(self):
        merged = merge([span(1.0, 3.0, CARD, (10, 20)), span(2.0, 4.0, CVV, (18, 30))])

        assert merged[0].text_ranges == ((10, 30),)

    def test_words_between_time_merged_spans_are_kept(self):
        text = "card 4111 then the code is 123"
        merged = merge([span(1.0, 3.0, CARD, (5, 9)), span(2.8, 4.0, CVV, (27, 30))])

        assert len(merged) == 1
        assert text_ranges(merged) == [(5, 9), (27, 30)]
        assert (
            sanitize(text, text_ranges(merged))
            == "card [REDACTED] then the code is [REDACTED]"
        )

    def test_touching_spans_merge(self):
        merged = merge([span(1.0, 2.0), span(2.0, 3.0)])

        assert [(m.start_time, m.end_time) for m in merged] == [(1.0, 3.0)]

    def test_disjoint_spans_stay_separate_and_sorted(self):
        merged = merge([span(5.0, 6.0, EMAIL), span(1.0, 2.0, CARD)])

        assert [(m.start_time, m.end_time) for m in merged] == [(1.0, 2.0), (5.0, 6.0)]
        assert [m.reason for m in merged] == ["card_number", "email"]

    def test_contained_span_is_absorbed(self):
        merged = merge([span(1.0, 10.0), span(2.0, 3.0, CVV)])

        assert len(merged) == 1
        assert (merged[0].start_time, merged[0].end_time) == (1.0, 10.0)

    def test_chain_merges_to_fixpoint(self):
        merged = merge([span(4.0, 6.0), span(0.0, 2.0), span(1.5, 4.5)])

        assert [(m.start_time, m.end_time) for m in merged] == [(0.0, 6.0)]

    def test_clipped_to_audio_duration(self):
        merged = merge([span(-1.0, 0.5), span(9.0, 12.0)], audio_duration=10.0)

        assert [(m.start_time, m.end_time) for m in merged] == [(0.0, 0.5), (9.0, 10.0)]

    def test_unaligned_member_leaves_merged_span_unaligned(self):
        merged = merge([span(1.0, 3.0, text=(0, 5)), span(2.0, 4.0, text=None)])

        assert merged[0].text_ranges is None

    def test_random_spans_are_sorted_disjoint_and_covering(self):
        rng = random.Random(1234)
        for _ in range(200):
            spans = []
            for _ in range(rng.randint(1, 12)):
                start = rng.uniform(0, 60)
                spans.append(span(start, start + rng.uniform(0, 5)))

            merged = merge(spans)

            for a, b in zip(merged, merged[1:]):
                assert a.start_time <= a.end_time < b.start_time <= b.end_time
            for s in spans:
                assert any(
                    m.start_time <= s.start_time and s.end_time <= m.end_time
                    for m in merged
                )


class TestTextRanges:
    """Tests for text range merging."""

    @pytest.mark.parametrize(
        "ranges,expected",
        [
            ([], []),
            ([(5, 10)], [(5, 10)]),
            ([(5, 10), (8, 12)], [(5, 12)]),
            ([(5, 10), (10, 12)], [(5, 12)]),
            ([(20, 30), (0, 4)], [(0, 4), (20, 30)]),
        ],
    )
    def test_merge_text_ranges(self, ranges, expected):
        assert merge_text_ranges(ranges) == expected

    def test_text_ranges_of_merged_spans(self):
        merged = merge([span(0.0, 1.0, text=(0, 10)), span(5.0, 6.0, text=(8, 20))])

        # Disjoint in time but overlapping in text
        assert len(merged) == 2
        assert text_ranges(merged) == [(0, 20)]
