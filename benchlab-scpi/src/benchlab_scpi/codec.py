"""Line protocol codec for SCPI-like instruments.

Outbound commands are ASCII text terminated by a single newline. A command
is a query, and therefore expects a reply, if and only if its text contains
a ``?`` anywhere. Replies are cleaned by dropping every byte outside the
printable ASCII range and trimming surrounding whitespace.
"""

from __future__ import annotations

import re

TERMINATOR = b"\n"

_NON_PRINTABLE_RE = re.compile(rb"[^\x20-\x7e]")


def is_query(command: str) -> bool:
    """Return True if *command* expects a reply (contains ``?``)."""
    return "?" in command


def frame(command: str) -> bytes:
    """Encode *command* for the wire with one trailing newline.

    Multi-line command text is sent as a single frame; only one terminator
    is appended at the very end.

    Args:
        command: Command text, possibly spanning several lines.

    Returns:
        The ASCII-encoded command followed by ``\\n``.
    """
    return command.encode("ascii") + TERMINATOR


def clean(raw: bytes | str) -> str:
    """Strip non-printable bytes and surrounding whitespace from a reply.

    Args:
        raw: Reply bytes, or text (characters outside latin-1 are dropped).

    Returns:
        Text containing only bytes 0x20-0x7E, without leading or trailing
        whitespace.
    """
    if isinstance(raw, str):
        raw = raw.encode("latin-1", errors="ignore")
    return _NON_PRINTABLE_RE.sub(b"", raw).decode("ascii").strip()


def split_lines(buffer: bytes) -> tuple[list[bytes], bytes]:
    """Split complete newline-terminated lines off the front of *buffer*.

    Args:
        buffer: Accumulated bytes.

    Returns:
        ``(lines, rest)`` where *lines* are the complete lines without their
        terminators and *rest* is the trailing partial line.
    """
    *lines, rest = buffer.split(TERMINATOR)
    return lines, rest
