"""Unit tests for sensitive span detection."""

import pytest

from callguard.common.models import SensitiveCategory, WordTiming
from callguard.redaction.detector import (
    DOB_MAX_PADDING_SECONDS,
    LOOKAHEAD_WORDS,
    detect,
    scan_text,
)
from callguard.redaction.merger import merge, text_ranges
from callguard.redaction.sanitizer import sanitize


def timed_words(text: str, step: float = 0.5, length: float = 0.4) -> list[WordTiming]:
    """One WordTiming per whitespace token, evenly spaced."""
    return [
        WordTiming(word=w, start=i * step, end=i * step + length)
        for i, w in enumerate(text.split())
    ]


def redact_transcript(text: str) -> str:
    spans = merge(detect(text, timed_words(text)))
    return sanitize(text, text_ranges(spans))


class TestCardNumbers:
    """Tests for card number detection."""

    def test_keyword_followed_by_digits(self):
        text = "my credit card is 4111 1111 1111 1111"
        spans = detect(text, timed_words(text))

        assert spans
        assert {s.category for s in spans} == {SensitiveCategory.CARD_NUMBER}

        merged = merge(spans)
        assert len(merged) == 1
        # Digit run is words 4..7, padded by 0.5s
        assert merged[0].start_time == pytest.approx(1.5)
        assert merged[0].end_time == pytest.approx(4.4)
        assert merged[0].reasons == frozenset({SensitiveCategory.CARD_NUMBER})

    def test_sanitized_text_keeps_keyword(self):
        assert (
            redact_transcript("my credit card is 4111 1111 1111 1111")
            == "my credit card [REDACTED]"
        )

    def test_audio_span_excludes_keyword(self):
        text = "visa 4111 1111 1111 1111"
        spans = detect(text, timed_words(text), padding_seconds=0.0)

        # "visa" is word 0 (0.0-0.4); content starts at word 1
        assert min(s.start_time for s in spans) == pytest.approx(0.5)

    def test_spoken_digits(self):
        text = "card number four one one one two two"
        spans = detect(text, timed_words(text))

        assert len(spans) == 1
        assert spans[0].category == SensitiveCategory.CARD_NUMBER
        assert redact_transcript(text) == "card number [REDACTED]"

    def test_bare_digit_sequence_without_keyword(self):
        text = "the number is 4111 1111 1111 1111 ok"
        spans = detect(text, timed_words(text))

        assert [s.category for s in spans] == [SensitiveCategory.CARD_NUMBER]
        assert redact_transcript(text) == "the number is [REDACTED] ok"

    def test_short_digit_sequence_without_keyword_is_ignored(self):
        text = "call me back at extension 4021 tomorrow"
        assert detect(text, timed_words(text)) == []

    def test_keyword_without_content_is_ignored(self):
        text = "can I pay with a credit card please"
        assert detect(text, timed_words(text)) == []

    def test_keyword_at_end_of_transcript(self):
        text = "what is the number on your credit card"
        assert detect(text, timed_words(text)) == []

    def test_content_beyond_lookahead_is_ignored(self):
        filler = " ".join(["hmm"] * LOOKAHEAD_WORDS)
        text = f"credit card {filler} 4111"
        assert detect(text, timed_words(text)) == []


class TestOtherCategories:
    """Tests for the remaining keyword categories."""

    def test_cvv(self):
        text = "the security code is 123"
        spans = detect(text, timed_words(text))

        assert [s.category for s in spans] == [SensitiveCategory.CVV]
        assert redact_transcript(text) == "the security code [REDACTED]"

    def test_ssn_keyword_and_formatted_token(self):
        text = "social security number is 123-45-6789"
        spans = detect(text, timed_words(text))

        assert {s.category for s in spans} == {SensitiveCategory.SSN}
        assert len(merge(spans)) == 1
        assert redact_transcript(text) == "social security [REDACTED]"

    def test_dob_uses_reduced_padding(self):
        text = "my date of birth is may fifth 1990"
        spans = detect(text, timed_words(text), padding_seconds=0.5)

        assert [s.category for s in spans] == [SensitiveCategory.DOB]
        # Content is words 5..7
        assert spans[0].start_time == pytest.approx(2.5 - DOB_MAX_PADDING_SECONDS)
        assert spans[0].end_time == pytest.approx(3.9 + DOB_MAX_PADDING_SECONDS)
        assert redact_transcript(text) == "my date of birth [REDACTED]"

    def test_dob_with_connectors(self):
        text = "birthday the fifth of may thanks"
        assert redact_transcript(text) == "birthday [REDACTED] thanks"

    def test_address_needs_street_suffix(self):
        text = "my address is 42 Wallaby Way Sydney"
        spans = detect(text, timed_words(text))

        assert [s.category for s in spans] == [SensitiveCategory.ADDRESS]
        assert redact_transcript(text) == "my address [REDACTED] Sydney"

    def test_address_without_suffix_is_ignored(self):
        text = "my address is 42 somewhere far away"
        assert detect(text, timed_words(text)) == []

    def test_credential_covers_following_words(self):
        text = "my password is hunter2 thanks"
        spans = detect(text, timed_words(text))

        assert [s.category for s in spans] == [SensitiveCategory.CREDENTIAL]
        assert redact_transcript(text) == "my password [REDACTED]"

    def test_explicit_email(self):
        text = "reach me at john.doe@example.com please"
        spans = detect(text, timed_words(text))

        assert [s.category for s in spans] == [SensitiveCategory.EMAIL]
        assert redact_transcript(text) == "reach me at [REDACTED] please"

    def test_spoken_email(self):
        text = "it is john at example dot com thanks"
        spans = detect(text, timed_words(text))

        assert [s.category for s in spans] == [SensitiveCategory.EMAIL]
        assert redact_transcript(text) == "it [REDACTED] thanks"

    def test_at_without_domain_is_ignored(self):
        text = "I will be at home later today"
        assert detect(text, timed_words(text)) == []


class TestTimingAndAlignment:
    """Tests for time and text mapping."""

    def test_no_timing_data_yields_no_spans(self):
        assert detect("my credit card is 4111 1111 1111 1111", []) == []

    def test_spans_clipped_to_audio_duration(self):
        text = "my credit card is 4111 1111 1111 1111"
        spans = detect(text, timed_words(text), audio_duration=4.0)

        assert all(0.0 <= s.start_time <= s.end_time <= 4.0 for s in spans)

    def test_start_never_negative(self):
        text = "4111 1111 1111 1111"
        spans = detect(text, timed_words(text), padding_seconds=2.0)

        assert spans[0].start_time == 0.0

    def test_punctuated_words_align(self):
        text = "My card number is 4111-1111-1111-1111."
        spans = merge(detect(text, timed_words(text)))

        assert sanitize(text, text_ranges(spans)) == "My card number [REDACTED]"

    def test_unaligned_words_have_no_text_range(self):
        text = "my credit card is"
        words = timed_words(text) + [
            WordTiming(word="4111", start=2.0, end=2.4),
            WordTiming(word="1111", start=2.5, end=2.9),
        ]
        spans = detect(text, words)

        assert spans
        assert all(s.text_range is None for s in spans)

    @pytest.mark.parametrize(
        "text",
        [
            "my credit card is 4111 1111 1111 1111",
            "the security code is 123 and my date of birth is june 3rd 1985",
            "my address is 42 Wallaby Way and my password is hunter2",
            "it is john at example dot com or jane@example.org",
            "social security number is 123-45-6789",
            "card number four one one one two two",
        ],
    )
    def test_sanitized_transcript_detects_nothing(self, text):
        sanitized = redact_transcript(text)

        assert sanitized != text
        assert detect(sanitized, timed_words(sanitized)) == []


class TestScanText:
    """Tests for untimed text scanning."""

    def test_finds_ranges_without_timings(self):
        text = "card number 4111 1111 1111 1111"
        ranges = scan_text(text)

        assert ranges
        start = min(r[0] for r in ranges)
        assert text[start:] == "4111 1111 1111 1111"

    def test_clean_text(self):
        assert scan_text("thanks for calling, have a nice day") == []
