"""Tests for the line protocol codec and number parsing."""

from __future__ import annotations

import math

import pytest

from benchlab_scpi.codec import clean, frame, is_query, split_lines
from benchlab_scpi.number import parse_number, parse_numbers, parse_reading

# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TestIsQuery:
    """Tests for is_query."""

    @pytest.mark.parametrize("command", ["*IDN?", "MEAS:SHOW?", ":WAV:PRE?", "A?B", "?"])
    def test_queries(self, command: str) -> None:
        assert is_query(command)

    @pytest.mark.parametrize("command", ["CONF:VOLT:DC", "*RST", ":WAV:SOUR CHAN1", ""])
    def test_commands(self, command: str) -> None:
        assert not is_query(command)

    def test_multi_line_sequence_is_query(self) -> None:
        assert is_query(":WAV:SOUR CHAN1\n:WAV:DATA?")


class TestFrame:
    """Tests for frame."""

    def test_appends_single_newline(self) -> None:
        assert frame("CONF:VOLT:DC") == b"CONF:VOLT:DC\n"

    def test_multi_line(self) -> None:
        assert frame("A\nB?") == b"A\nB?\n"


class TestClean:
    """Tests for clean."""

    def test_strips_terminators(self) -> None:
        assert clean(b"1.2345E+00\r\n") == "1.2345E+00"

    def test_drops_non_printable_bytes(self) -> None:
        assert clean(b"\x00\x1b12.5\x7f\xffV") == "12.5V"

    def test_trims_whitespace(self) -> None:
        assert clean(b"  OK  ") == "OK"

    def test_accepts_text(self) -> None:
        assert clean("\tHOLD 1.0\n") == "HOLD 1.0"

    def test_text_outside_latin1_dropped(self) -> None:
        assert clean("1.0 Ω") == "1.0"

    @pytest.mark.parametrize(
        "raw",
        [b"", b"\r\n", b" a b ", b"\x01\x02 x \x03", bytes(range(256)), b"\xfe 9.9E37 \xff"],
    )
    def test_idempotent(self, raw: bytes) -> None:
        once = clean(raw)
        assert clean(once) == once
        assert all(0x20 <= ord(ch) <= 0x7E for ch in once)


class TestSplitLines:
    """Tests for split_lines."""

    def test_complete_and_partial(self) -> None:
        assert split_lines(b"a\nb\nc") == ([b"a", b"b"], b"c")

    def test_no_terminator(self) -> None:
        assert split_lines(b"abc") == ([], b"abc")

    def test_trailing_terminator(self) -> None:
        assert split_lines(b"a\n") == ([b"a"], b"")


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


class TestParseNumber:
    """Tests for parse_number and parse_numbers."""

    def test_nr3(self) -> None:
        assert parse_number("1.23E+4") == 12300.0

    def test_whitespace(self) -> None:
        assert parse_number("  -0.5\n") == -0.5

    def test_special(self) -> None:
        assert math.isnan(parse_number("NAN"))
        assert parse_number("NINF") == float("-inf")

    def test_invalid(self) -> None:
        with pytest.raises(ValueError, match="Not a SCPI number"):
            parse_number("volts")

    def test_list(self) -> None:
        assert parse_numbers("1,2.5,-3E-1") == (1.0, 2.5, -0.3)


class TestParseReading:
    """Tests for parse_reading."""

    def test_normal(self) -> None:
        assert parse_reading("2.04") == 2.04

    def test_overflow_sentinel(self) -> None:
        assert parse_reading("9.9E37") == 0.0

    def test_negative_overflow(self) -> None:
        assert parse_reading("-9.9E37") == 0.0

    def test_threshold_is_exclusive(self) -> None:
        assert parse_reading("1E30") == 1e30

    def test_non_numeric(self) -> None:
        assert parse_reading("****") == 0.0

    def test_nan_and_inf(self) -> None:
        assert parse_reading("NAN") == 0.0
        assert parse_reading("INF") == 0.0

    def test_empty(self) -> None:
        assert parse_reading("") == 0.0
