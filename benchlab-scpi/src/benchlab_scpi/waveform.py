"""Oscilloscope waveform capture decoding.

A capture reply is a hybrid of text and binary. The scope first answers the
text queries of the capture sequence, one line each, and then the
``:WAV:DATA?`` query with a TMC definite-length block::

    0.5\\n                  <- :CHAN1:SCAL?  volts per division
    2.04\\n                 <- :MEAS:VPP?    peak-to-peak voltage
    1.0E+03\\n              <- :MEAS:FREQ?   frequency
    0,0,1200,1,...\\n       <- :WAV:PRE?     ten-field preamble
    #9000001200<bytes>\\n   <- :WAV:DATA?    #<N><N length digits><payload>

The payload may arrive across many chunks. :class:`BlockAccumulator` buffers
chunks and tracks how much of the block header and payload has been seen;
:func:`decode_capture` turns a complete buffer into a
:class:`~benchlab_core.types.capture.WaveformCapture`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from benchlab_core.errors import MalformedBlockError
from benchlab_core.types.capture import WaveformCapture

from benchlab_scpi.number import parse_numbers, parse_reading

logger = logging.getLogger(__name__)

WAVEFORM_CAPTURE_COMMANDS: tuple[str, ...] = (
    ":WAV:SOUR CHAN1",
    ":WAV:MODE NORM",
    ":WAV:FORM BYTE",
    ":CHAN1:SCAL?",
    ":MEAS:VPP?",
    ":MEAS:FREQ?",
    ":WAV:PRE?",
    ":WAV:DATA?",
)

#: The capture sequence as one multi-line command, written in a single frame.
WAVEFORM_CAPTURE_SEQUENCE = "\n".join(WAVEFORM_CAPTURE_COMMANDS)

#: Horizontal divisions assumed when deriving seconds per division.
HORIZONTAL_DIVISIONS = 10

_HASH = ord("#")
_METADATA_LINES = 4
_PREAMBLE_FIELDS = 10


class BlockState(Enum):
    """Progress of a binary block transfer."""

    AWAITING_HEADER = "awaiting_header"
    AWAITING_LENGTH = "awaiting_length"
    AWAITING_PAYLOAD = "awaiting_payload"
    COMPLETE = "complete"


class BlockAccumulator:
    """Incremental parser for a reply ending in a definite-length block.

    Feed chunks with :meth:`feed` until it returns True. If the stream ends
    first, :meth:`finish` raises a :class:`MalformedBlockError` describing
    the missing part.

    Example:
        >>> acc = BlockAccumulator()
        >>> acc.feed(b"1\\n2\\n3\\n4,5\\n#14ab")
        False
        >>> acc.feed(b"cd\\n")
        True
        >>> acc.payload
        b'abcd'
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._state = BlockState.AWAITING_HEADER
        self._header_index = -1
        self._num_digits = 0
        self._data_length = 0

    @property
    def state(self) -> BlockState:
        return self._state

    @property
    def is_complete(self) -> bool:
        return self._state is BlockState.COMPLETE

    @property
    def buffer(self) -> bytes:
        """Everything received so far."""
        return bytes(self._buffer)

    @property
    def payload_start(self) -> int:
        return self._header_index + 2 + self._num_digits

    @property
    def data_length(self) -> int:
        return self._data_length

    @property
    def block_end(self) -> int:
        """Offset just past the payload; bytes from here on follow the block."""
        return self.payload_start + self._data_length

    @property
    def header_text(self) -> str:
        """ASCII text preceding the ``#`` marker."""
        if self._header_index < 0:
            raise MalformedBlockError("Binary block header (#) not found")
        return self._buffer[: self._header_index].decode("ascii", errors="replace")

    @property
    def payload(self) -> bytes:
        """The binary payload, excluding any trailing terminator."""
        if not self.is_complete:
            raise MalformedBlockError(f"Binary block is incomplete ({self._state.value})")
        start = self.payload_start
        return bytes(self._buffer[start : start + self._data_length])

    def feed(self, chunk: bytes) -> bool:
        """Append *chunk* and advance the state machine.

        Args:
            chunk: Newly received bytes.

        Returns:
            True once the whole block payload has been received.

        Raises:
            MalformedBlockError: If the header digit count or length field is
                not a valid decimal number.
        """
        if self._state is BlockState.COMPLETE:
            return True
        self._buffer.extend(chunk)

        if self._state is BlockState.AWAITING_HEADER:
            index = self._buffer.find(_HASH)
            if index < 0 or len(self._buffer) < index + 2:
                return False
            digit = self._buffer[index + 1]
            if not ord("1") <= digit <= ord("9"):
                raise MalformedBlockError(
                    f"Invalid binary block digit count {chr(digit)!r} after '#'"
                )
            self._header_index = index
            self._num_digits = digit - ord("0")
            self._state = BlockState.AWAITING_LENGTH

        if self._state is BlockState.AWAITING_LENGTH:
            start = self._header_index + 2
            end = start + self._num_digits
            if len(self._buffer) < end:
                return False
            field = bytes(self._buffer[start:end])
            if not field.isdigit():
                raise MalformedBlockError(f"Invalid binary block length field {field!r}")
            self._data_length = int(field)
            self._state = BlockState.AWAITING_PAYLOAD
            logger.debug("Block header parsed: %d payload bytes expected", self._data_length)

        if self._state is BlockState.AWAITING_PAYLOAD:
            if len(self._buffer) < self.block_end:
                return False
            self._state = BlockState.COMPLETE

        return True

    def finish(self) -> None:
        """Check that the stream ended with a complete block.

        Raises:
            MalformedBlockError: Describing which part of the block is missing.
        """
        if self._state is BlockState.AWAITING_HEADER:
            if self._buffer.find(_HASH) < 0:
                raise MalformedBlockError(
                    f"Binary block header (#) not found in {len(self._buffer)} bytes"
                )
            raise MalformedBlockError("Binary block header truncated after '#'")
        if self._state is BlockState.AWAITING_LENGTH:
            raise MalformedBlockError(
                f"Binary block length field truncated: expected {self._num_digits} digits"
            )
        if self._state is BlockState.AWAITING_PAYLOAD:
            received = len(self._buffer) - self.payload_start
            raise MalformedBlockError(
                f"Binary block payload truncated: expected {self._data_length} bytes, "
                f"received {received}"
            )


@dataclass(frozen=True)
class WaveformPreamble:
    """Scaling descriptor returned by ``:WAV:PRE?``.

    Attributes:
        format: Data format code (0 = BYTE).
        type: Acquisition type code.
        points: Number of points in the waveform.
        count: Number of averages.
        x_increment: Seconds between samples.
        x_origin: Time of the first sample.
        x_reference: Reference sample index for time.
        y_increment: Volts per code step.
        y_origin: Vertical offset in volts.
        y_reference: Code value corresponding to the vertical origin.
    """

    format: float
    type: float
    points: float
    count: float
    x_increment: float
    x_origin: float
    x_reference: float
    y_increment: float
    y_origin: float
    y_reference: float

    @classmethod
    def parse(cls, text: str) -> WaveformPreamble:
        """Parse a comma-separated preamble.

        Args:
            text: Preamble reply with at least ten numeric fields.

        Returns:
            The parsed preamble; fields beyond the tenth are ignored.

        Raises:
            MalformedBlockError: If there are fewer than ten fields or one of
                them is not numeric.
        """
        fields = text.split(",")
        if len(fields) < _PREAMBLE_FIELDS:
            raise MalformedBlockError(
                f"Waveform preamble has {len(fields)} fields, expected at least "
                f"{_PREAMBLE_FIELDS}: {text!r}"
            )
        try:
            values = parse_numbers(",".join(fields[:_PREAMBLE_FIELDS]))
        except ValueError as exc:
            raise MalformedBlockError(f"Waveform preamble is not numeric: {text!r}") from exc
        return cls(*values)

    def to_volts(self, raw: int) -> float:
        """Convert one unsigned sample code to volts."""
        return (raw - self.y_reference) * self.y_increment + self.y_origin


def decode_block(accumulator: BlockAccumulator) -> WaveformCapture:
    """Decode a completed accumulator into a waveform capture.

    Args:
        accumulator: Accumulator whose block is complete.

    Returns:
        The decoded capture.

    Raises:
        MalformedBlockError: If the metadata lines or preamble are unusable.
    """
    lines = [line.strip() for line in accumulator.header_text.split("\n")]
    lines = [line for line in lines if line]
    if len(lines) < _METADATA_LINES:
        raise MalformedBlockError(
            f"Expected {_METADATA_LINES} metadata lines before the binary block, "
            f"got {len(lines)}"
        )

    voltage_scale = parse_reading(lines[0]) or 1.0
    vpp = parse_reading(lines[1])
    freq = parse_reading(lines[2])
    preamble = WaveformPreamble.parse(lines[3])

    waveform = tuple(preamble.to_volts(raw) for raw in accumulator.payload)
    time_scale = preamble.x_increment * len(waveform) / HORIZONTAL_DIVISIONS

    return WaveformCapture(
        waveform=waveform,
        time_scale=time_scale,
        voltage_scale=voltage_scale,
        voltage_offset=preamble.y_origin,
        vpp=vpp,
        freq=freq,
    )


def decode_capture(raw: bytes) -> WaveformCapture:
    """Decode a complete capture reply.

    Args:
        raw: The full reply: metadata lines followed by the binary block.

    Returns:
        The decoded capture.

    Raises:
        MalformedBlockError: If any part of the reply is missing or invalid.
    """
    accumulator = BlockAccumulator()
    if not accumulator.feed(raw):
        accumulator.finish()
    return decode_block(accumulator)
