"""Sensitive span detection over word-timed call transcripts.

Detection is keyword and pattern driven, not a classifier. A keyword such as
"credit card" opens a short lookahead window; the first plausible content run
inside the window (digits for card numbers, a house number plus street suffix
for addresses, ...) becomes the span. The keyword only triggers detection: the
audio span covers the content words, while the text range starts right after
the keyword so the sanitized transcript still reads "my credit card [REDACTED]".

Detection prefers missing an utterance over muting unrelated speech, so a
keyword with no content nearby yields nothing, and transcripts without word
timings yield nothing at all.

The thresholds below were tuned on real PBX recordings; change them as a
product decision, not to fix a single call.
"""

import re
from dataclasses import dataclass
from typing import Callable

import structlog

from callguard.common.constants import REDACTION_MARKER
from callguard.common.models import SensitiveCategory, SensitiveSpan, WordTiming

logger = structlog.get_logger()

# Padding applied around each detected run, in seconds
DEFAULT_PADDING_SECONDS = 0.5

# DOB values sit close to other speech and drifting timestamps near the end of
# a call swallow trailing words, so DOB spans are padded less.
DOB_MAX_PADDING_SECONDS = 0.15

# Words scanned after a keyword for sensitive content
LOOKAHEAD_WORDS = 15
SSN_LOOKAHEAD_WORDS = 20

# Words muted after a password/PIN keyword
CREDENTIAL_SPAN_WORDS = 10

# Words between a house number and its street suffix
ADDRESS_SUFFIX_WINDOW = 6

# Spoken email: max words between "at" and "dot", and words kept before "at"
SPOKEN_EMAIL_DOT_WINDOW = 8
SPOKEN_EMAIL_LEADING_WORDS = 2

# Digit count of a bare card number read out without any keyword
CARD_SEQUENCE_MIN_DIGITS = 12
CARD_SEQUENCE_MAX_DIGITS = 19

# Characters a transcript word may be displaced from the alignment cursor
ALIGN_SLACK_CHARS = 32

KEYWORDS: dict[SensitiveCategory, tuple[tuple[str, ...], ...]] = {
    SensitiveCategory.CARD_NUMBER: (
        ("credit", "card"),
        ("debit", "card"),
        ("card", "number"),
        ("payment", "card"),
        ("creditcard",),
        ("visa",),
        ("mastercard",),
        ("amex",),
    ),
    SensitiveCategory.CVV: (
        ("cvv",),
        ("cvc",),
        ("cvv2",),
        ("cvc2",),
        ("security", "code"),
        ("verification", "code"),
    ),
    SensitiveCategory.SSN: (
        ("ssn",),
        ("social", "security"),
        ("socialsecurity",),
    ),
    SensitiveCategory.DOB: (
        ("date", "of", "birth"),
        ("dateofbirth",),
        ("birth", "date"),
        ("birthdate",),
        ("birthday",),
        ("dob",),
    ),
    SensitiveCategory.ADDRESS: (
        ("address",),
        ("streetaddress",),
    ),
    SensitiveCategory.CREDENTIAL: (
        ("password",),
        ("passcode",),
        ("pincode",),
        ("pin",),
    ),
}

NUMBER_WORDS = frozenset(
    {
        "zero", "oh", "one", "two", "three", "four", "five", "six", "seven",
        "eight", "nine", "ten", "eleven", "twelve", "thirteen", "fourteen",
        "fifteen", "sixteen", "seventeen", "eighteen", "nineteen", "twenty",
        "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety",
        "hundred", "thousand",
    }
)  # fmt: skip

MONTHS = frozenset(
    {
        "january", "february", "march", "april", "may", "june", "july",
        "august", "september", "october", "november", "december", "jan",
        "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept", "oct", "nov",
        "dec",
    }
)  # fmt: skip

SPELLED_ORDINALS = frozenset(
    {
        "first", "second", "third", "fourth", "fifth", "sixth", "seventh",
        "eighth", "ninth", "tenth", "eleventh", "twelfth", "thirteenth",
        "fourteenth", "fifteenth", "sixteenth", "seventeenth", "eighteenth",
        "nineteenth", "twentieth", "thirtieth",
    }
)  # fmt: skip

STREET_SUFFIXES = frozenset(
    {
        "st", "street", "rd", "road", "ave", "avenue", "blvd", "boulevard",
        "dr", "drive", "ln", "lane", "ct", "court", "way", "circle", "cir",
        "pkwy", "parkway", "trail", "trl",
    }
)  # fmt: skip

# Words allowed inside a spoken date ("the fifth of may")
DOB_CONNECTORS = frozenset({"of", "the"})

EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
FORMATTED_SSN_RE = re.compile(r"\d{3}-\d{2}-\d{4}")
HOUSE_NUMBER_RE = re.compile(r"\d{1,6}[a-z]?")
ORDINAL_RE = re.compile(r"\d{1,2}(st|nd|rd|th)")
DIGIT_RE = re.compile(r"\d")
NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
EDGE_PUNCT_RE = re.compile(r"^[^\w@]+|[^\w@]+$")
TOKEN_RE = re.compile(r"\S+")


@dataclass(frozen=True)
class _Token:
    raw: str
    normalized: str  # Lowercase alphanumerics only
    start: float | None
    end: float | None
    char_range: tuple[int, int] | None

    @property
    def is_marker(self) -> bool:
        return self.raw.strip(".,;:!?") == REDACTION_MARKER

    @property
    def has_digits(self) -> bool:
        return bool(DIGIT_RE.search(self.raw))


@dataclass(frozen=True)
class _Match:
    """Index-level detection before it is mapped to time and text."""

    category: SensitiveCategory
    first: int  # First content token
    last: int  # Last content token (inclusive)
    text_first: int  # First token whose text is replaced


def _normalize(raw: str) -> str:
    return NON_ALNUM_RE.sub("", raw.lower())


def _is_numeric(token: _Token) -> bool:
    if token.is_marker:
        return False
    return token.has_digits or token.normalized in NUMBER_WORDS


def _is_date_like(token: _Token) -> bool:
    if token.is_marker:
        return False
    if _is_numeric(token):
        return True
    normalized = token.normalized
    return (
        normalized in MONTHS
        or normalized in SPELLED_ORDINALS
        or bool(ORDINAL_RE.fullmatch(normalized))
    )


def _align_words(text: str, words: list[WordTiming]) -> list[tuple[int, int] | None]:
    """Locate each transcript word in the transcript text.

    Walks a cursor forward through the text. A word that cannot be found
    close to the cursor gets no range and does not move the cursor, so a
    single mismatched word cannot shift every following range.
    """
    lowered = text.lower()
    cursor = 0
    ranges: list[tuple[int, int] | None] = []

    for word in words:
        needle = word.word.strip()
        if not needle:
            ranges.append(None)
            continue

        found: tuple[int, int] | None = None
        candidates = [needle, EDGE_PUNCT_RE.sub("", needle)]
        for candidate in candidates:
            if not candidate:
                continue
            idx = lowered.find(candidate.lower(), cursor)
            if idx != -1 and idx - cursor <= ALIGN_SLACK_CHARS:
                found = (idx, idx + len(candidate))
                break

        ranges.append(found)
        if found is not None:
            cursor = found[1]

    return ranges


def _tokens_from_words(text: str, words: list[WordTiming]) -> list[_Token]:
    char_ranges = _align_words(text, words)
    return [
        _Token(
            raw=word.word.strip(),
            normalized=_normalize(word.word),
            start=word.start,
            end=word.end,
            char_range=char_range,
        )
        for word, char_range in zip(words, char_ranges, strict=True)
    ]


def _tokens_from_text(text: str) -> list[_Token]:
    return [
        _Token(
            raw=m.group(0),
            normalized=_normalize(m.group(0)),
            start=None,
            end=None,
            char_range=(m.start(), m.end()),
        )
        for m in TOKEN_RE.finditer(text)
    ]


def _keyword_at(tokens: list[_Token], i: int, category: SensitiveCategory) -> int:
    """Return the number of tokens a category keyword spans at i, 0 if none."""
    for phrase in KEYWORDS[category]:
        end = i + len(phrase)
        if end > len(tokens):
            continue
        if all(tokens[i + k].normalized == part for k, part in enumerate(phrase)):
            return len(phrase)
    return 0


def _extend_run(
    tokens: list[_Token],
    first: int,
    limit: int,
    qualifies: Callable[[_Token], bool],
    connectors: frozenset[str] = frozenset(),
) -> int:
    """Extend a content run from `first` while tokens qualify, up to `limit`."""
    last = first
    j = first + 1
    while j <= limit:
        if qualifies(tokens[j]):
            last = j
            j += 1
        elif (
            tokens[j].normalized in connectors
            and j + 1 <= limit
            and qualifies(tokens[j + 1])
        ):
            last = j + 1
            j += 2
        else:
            break
    return last


def _numeric_run(tokens: list[_Token], start: int, limit: int) -> tuple[int, int] | None:
    """Find the first numeric run in tokens[start..limit].

    A run made only of spoken number words needs at least two of them, so a
    stray "one" ("the one on the back") does not end the search early.
    """
    j = start
    while j <= limit:
        if _is_numeric(tokens[j]):
            last = _extend_run(tokens, j, limit, _is_numeric)
            run = tokens[j : last + 1]
            if any(t.has_digits for t in run) or len(run) >= 2:
                return j, last
            j = last + 1
        else:
            j += 1
    return None


def _date_run(tokens: list[_Token], start: int, limit: int) -> tuple[int, int] | None:
    for j in range(start, limit + 1):
        if _is_date_like(tokens[j]):
            return j, _extend_run(tokens, j, limit, _is_date_like, DOB_CONNECTORS)
    return None


def _address_run(
    tokens: list[_Token], start: int, limit: int
) -> tuple[int, int] | None:
    for j in range(start, limit + 1):
        if not HOUSE_NUMBER_RE.fullmatch(tokens[j].normalized):
            continue
        for k in range(j + 1, min(j + ADDRESS_SUFFIX_WINDOW, len(tokens) - 1) + 1):
            if tokens[k].normalized in STREET_SUFFIXES:
                return j, k
    return None


def _credential_run(
    tokens: list[_Token], start: int, limit: int
) -> tuple[int, int] | None:
    if start > limit or tokens[start].is_marker:
        return None
    last = start
    for j in range(start + 1, limit + 1):
        if tokens[j].is_marker:
            break
        last = j
    return start, last


def _scan_keywords(tokens: list[_Token]) -> list[_Match]:
    matches: list[_Match] = []
    n = len(tokens)

    for category in KEYWORDS:
        consumed_until = -1
        for i in range(n):
            if i <= consumed_until:
                continue
            kw_len = _keyword_at(tokens, i, category)
            if not kw_len:
                continue

            content_start = i + kw_len
            if content_start >= n:
                continue

            if category == SensitiveCategory.CREDENTIAL:
                limit = min(content_start + CREDENTIAL_SPAN_WORDS - 1, n - 1)
                run = _credential_run(tokens, content_start, limit)
            else:
                lookahead = (
                    SSN_LOOKAHEAD_WORDS
                    if category == SensitiveCategory.SSN
                    else LOOKAHEAD_WORDS
                )
                limit = min(content_start + lookahead - 1, n - 1)
                if category == SensitiveCategory.DOB:
                    run = _date_run(tokens, content_start, limit)
                elif category == SensitiveCategory.ADDRESS:
                    run = _address_run(tokens, content_start, limit)
                else:
                    run = _numeric_run(tokens, content_start, limit)

            if run is None:
                continue

            first, last = run
            matches.append(
                _Match(
                    category=category,
                    first=first,
                    last=last,
                    text_first=content_start,
                )
            )
            consumed_until = last

    return matches


def _scan_patterns(tokens: list[_Token]) -> list[_Match]:
    matches: list[_Match] = []
    n = len(tokens)

    def add(category: SensitiveCategory, first: int, last: int) -> None:
        matches.append(_Match(category, first, last, first))

    for i, token in enumerate(tokens):
        if token.is_marker:
            continue

        # Written email: john@example.com
        if EMAIL_RE.search(token.raw):
            add(SensitiveCategory.EMAIL, i, i)
            continue

        # Formatted SSN: 123-45-6789
        if FORMATTED_SSN_RE.fullmatch(EDGE_PUNCT_RE.sub("", token.raw)):
            add(SensitiveCategory.SSN, i, i)
            continue

        # Spoken email: john at example dot com
        if token.normalized == "at" and i > 0:
            dot_idx = -1
            for j in range(i + 2, min(i + SPOKEN_EMAIL_DOT_WINDOW, n - 1) + 1):
                if tokens[j].normalized == "dot":
                    dot_idx = j
                    break
            if dot_idx == -1 or dot_idx + 1 >= n:
                continue
            tld = tokens[dot_idx + 1].normalized
            if not tld.isalpha() or len(tld) < 2:
                continue
            domain = tokens[i + 1 : dot_idx]
            if any(t.is_marker or not t.normalized for t in domain):
                continue

            last = dot_idx + 1
            # Second-level suffixes: "dot co dot uk"
            if (
                last + 2 < n
                and tokens[last + 1].normalized == "dot"
                and tokens[last + 2].normalized.isalpha()
            ):
                last += 2
            first = max(0, i - SPOKEN_EMAIL_LEADING_WORDS)
            while first < i and tokens[first].is_marker:
                first += 1
            add(SensitiveCategory.EMAIL, first, last)

    # Bare card numbers read out without a keyword
    i = 0
    while i < n:
        if not tokens[i].has_digits or tokens[i].is_marker:
            i += 1
            continue
        last = _extend_run(tokens, i, n - 1, lambda t: t.has_digits)
        digit_count = sum(len(DIGIT_RE.findall(t.raw)) for t in tokens[i : last + 1])
        if CARD_SEQUENCE_MIN_DIGITS <= digit_count <= CARD_SEQUENCE_MAX_DIGITS:
            add(SensitiveCategory.CARD_NUMBER, i, last)
        i = last + 1

    return matches


def _scan(tokens: list[_Token]) -> list[_Match]:
    if not tokens:
        return []
    return _scan_keywords(tokens) + _scan_patterns(tokens)


def _text_range(tokens: list[_Token], match: _Match) -> tuple[int, int] | None:
    head = tokens[match.text_first].char_range
    tail = tokens[match.last].char_range
    if head is None or tail is None:
        return None
    return head[0], tail[1]


def detect(
    transcript_text: str,
    words: list[WordTiming],
    padding_seconds: float = DEFAULT_PADDING_SECONDS,
    *,
    audio_duration: float | None = None,
) -> list[SensitiveSpan]:
    """Detect sensitive spans in a word-timed transcript.

    Args:
        transcript_text: Full transcript text
        words: Transcript words with start/end offsets in seconds
        padding_seconds: Seconds added before and after each span
        audio_duration: Recording length; when given, spans are clipped to it

    Returns:
        Unmerged spans in detection order. Empty when there is no timing data.
    """
    if not words:
        return []

    tokens = _tokens_from_words(transcript_text, words)
    spans: list[SensitiveSpan] = []

    for match in _scan(tokens):
        first = tokens[match.first]
        last = tokens[match.last]

        pad = padding_seconds
        if match.category == SensitiveCategory.DOB:
            pad = min(padding_seconds, DOB_MAX_PADDING_SECONDS)

        start_time = max(0.0, first.start - pad)
        end_time = max(start_time, last.end + pad)
        if audio_duration is not None:
            start_time = min(start_time, audio_duration)
            end_time = min(end_time, audio_duration)

        spans.append(
            SensitiveSpan(
                start_time=start_time,
                end_time=end_time,
                category=match.category,
                text_range=_text_range(tokens, match),
            )
        )

    if spans:
        logger.debug(
            "sensitive_spans_detected",
            span_count=len(spans),
            categories=sorted({s.category.value for s in spans}),
        )

    return spans


def scan_text(text: str) -> list[tuple[int, int]]:
    """Find sensitive character ranges in text that has no word timings.

    Applies the same rules as :func:`detect` to whitespace tokens. Used to
    sanitize transcripts and analyses that are already stored.
    """
    tokens = _tokens_from_text(text)
    ranges = []
    for match in _scan(tokens):
        text_range = _text_range(tokens, match)
        if text_range is not None:
            ranges.append(text_range)
    return ranges
