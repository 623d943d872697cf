"""Unit tests for HTTP Range header parsing."""

import pytest

from callguard.gateway.services.ranges import ByteRange, InvalidRangeError, parse_range


class TestParseRange:
    """Tests for parse_range()."""

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_no_range(self, header):
        assert parse_range(header, 10000) is None

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("bytes=0-499", ByteRange(0, 499)),
            ("bytes=9500-", ByteRange(9500, 9999)),
            ("bytes=-500", ByteRange(9500, 9999)),
            ("bytes=-20000", ByteRange(0, 9999)),
            ("bytes=9000-20000", ByteRange(9000, 9999)),
            ("bytes=9999-9999", ByteRange(9999, 9999)),
            ("Bytes = 10-19", ByteRange(10, 19)),
        ],
    )
    def test_satisfiable(self, header, expected):
        assert parse_range(header, 10000) == expected

    def test_suffix_range_headers(self):
        byte_range = parse_range("bytes=-500", 10000)

        assert byte_range.length == 500
        assert byte_range.content_range(10000) == "bytes 9500-9999/10000"

    @pytest.mark.parametrize(
        "header",
        [
            "bytes=10000-",
            "bytes=20000-30000",
            "bytes=-0",
            "bytes=500-100",
            "bytes=0-1,5-9",
            "bytes=-",
            "bytes=abc",
            "items=0-10",
            "0-10",
        ],
    )
    def test_invalid(self, header):
        with pytest.raises(InvalidRangeError) as exc_info:
            parse_range(header, 10000)

        assert exc_info.value.content_range == "bytes */10000"

    def test_empty_file_cannot_satisfy_a_range(self):
        with pytest.raises(InvalidRangeError):
            parse_range("bytes=0-", 0)
        with pytest.raises(InvalidRangeError):
            parse_range("bytes=-10", 0)
