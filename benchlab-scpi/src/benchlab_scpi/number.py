"""Numeric replies from bench instruments.

Multimeters and oscilloscopes answer measurement queries with SCPI numbers:
NR1 (``"42"``), NR2 (``"1.23"``) or NR3 (``"1.2345E+00"``), and the NAN, INF
and NINF keywords. When a measurement is not available the instrument
returns an overflow sentinel instead, typically ``9.9E37``.
"""

from __future__ import annotations

import math

#: Readings whose magnitude exceeds this are overflow sentinels.
OVERFLOW_THRESHOLD = 1e30

_KEYWORD_VALUES: dict[str, float] = {
    "NAN": math.nan,
    "INF": math.inf,
    "+INF": math.inf,
    "NINF": -math.inf,
    "-INF": -math.inf,
}


def parse_number(text: str) -> float:
    """Parse one SCPI number.

    Args:
        text: Reply text; surrounding whitespace is ignored.

    Returns:
        The value, which may be NaN or infinite for the SCPI keywords.

    Raises:
        ValueError: If *text* is not a number.
    """
    token = text.strip().upper()
    if token in _KEYWORD_VALUES:
        return _KEYWORD_VALUES[token]
    try:
        return float(token)
    except ValueError:
        raise ValueError(f"Not a SCPI number: {text!r}") from None


def parse_numbers(text: str) -> tuple[float, ...]:
    """Parse a comma-separated reply such as a waveform preamble."""
    return tuple(parse_number(field) for field in text.split(","))


def parse_reading(text: str) -> float:
    """Parse a measurement, mapping unusable values to ``0.0``.

    Text that is not a number, NaN, infinities and overflow sentinels all
    read as zero, which is what the bench UI displays for "no measurement".

    Args:
        text: Reply text.

    Returns:
        The measured value, or 0.0.
    """
    try:
        value = parse_number(text)
    except ValueError:
        return 0.0
    if math.isnan(value) or abs(value) > OVERFLOW_THRESHOLD:
        return 0.0
    return value
