"""Unit tests for transcript sanitization."""

from callguard.common.constants import REDACTION_MARKER
from callguard.redaction.sanitizer import redact_text, sanitize


class TestSanitize:
    """Tests for sanitize()."""

    def test_no_ranges_returns_text_unchanged(self):
        assert sanitize("hello there", []) == "hello there"

    def test_single_range(self):
        text = "my pin is 1234 ok"
        assert sanitize(text, [(7, 14)]) == f"my pin {REDACTION_MARKER} ok"

    def test_multiple_ranges_applied_right_to_left(self):
        text = "aaa SECRET bbb OTHER ccc"
        result = sanitize(text, [(4, 10), (15, 20)])

        assert result == "aaa [REDACTED] bbb [REDACTED] ccc"

    def test_range_order_does_not_matter(self):
        text = "aaa SECRET bbb OTHER ccc"
        assert sanitize(text, [(15, 20), (4, 10)]) == sanitize(text, [(4, 10), (15, 20)])


class TestRedactText:
    """Tests for redact_text() on stored, untimed text."""

    def test_empty(self):
        assert redact_text("") == ""
        assert redact_text(None) == ""

    def test_card_number(self):
        assert (
            redact_text("card number 4111 1111 1111 1111 thanks")
            == "card number [REDACTED] thanks"
        )

    def test_clean_text_unchanged(self):
        text = "Customer asked about opening hours."
        assert redact_text(text) == text

    def test_idempotent(self):
        once = redact_text("my password is hunter2 and my ssn is 123-45-6789")
        assert redact_text(once) == once
