"""Bench multimeter and oscilloscope emulators.

In-process emulators that answer the command set used by the bench
application's default command maps. Each emulator takes one command line at
a time through :meth:`InstrumentEmulator.process` and returns the raw bytes
to send back, or None when the line produces no reply.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable

# ---------------------------------------------------------------------------
# Long-form → short-form keyword map
# ---------------------------------------------------------------------------

_LONG_TO_SHORT: dict[str, str] = {
    "CONFIGURE": "CONF",
    "MEASURE": "MEAS",
    "VOLTAGE": "VOLT",
    "RESISTANCE": "RES",
    "DIODE": "DIOD",
    "WAVEFORM": "WAV",
    "SOURCE": "SOUR",
    "FORMAT": "FORM",
    "PREAMBLE": "PRE",
    "CHANNEL1": "CHAN1",
    "SCALE": "SCAL",
    "FREQUENCY": "FREQ",
}


def _normalize_header(header: str) -> str:
    """Normalize a header to canonical short form.

    Uppercases, strips the leading colon and maps long keywords to their
    short forms, e.g. ``":waveform:preamble?"`` becomes ``"WAV:PRE?"``.
    """
    upper = header.strip().upper()
    if upper.startswith(":"):
        upper = upper[1:]
    query = upper.endswith("?")
    segments = upper.rstrip("?").split(":")
    normalized = ":".join(_LONG_TO_SHORT.get(seg, seg) for seg in segments)
    return normalized + "?" if query else normalized


def build_block(payload: bytes) -> bytes:
    """Frame *payload* as a definite-length block (``#<N><length><payload>``)."""
    length = str(len(payload)).encode("ascii")
    if len(length) > 9:
        raise ValueError(f"Block payload too large: {len(payload)} bytes")
    return b"#" + str(len(length)).encode("ascii") + length + payload


# ---------------------------------------------------------------------------
# Base emulator
# ---------------------------------------------------------------------------


class InstrumentEmulator:
    """Line-at-a-time emulator with command and query dispatch tables.

    Subclasses fill ``_set_handlers`` (commands, receiving the argument text)
    and ``_query_handlers`` (queries, returning the reply bytes). Replies to
    text queries are terminated with ``\\n`` by :meth:`process`.

    Args:
        identity: ``*IDN?`` reply.
    """

    def __init__(self, identity: str) -> None:
        self._identity = identity
        self._lock = threading.Lock()
        self._received: list[str] = []
        self._errors: list[str] = []
        self._set_handlers: dict[str, Callable[[str], None]] = {}
        self._query_handlers: dict[str, Callable[[], bytes]] = {}

    @property
    def received(self) -> list[str]:
        """Copy of every non-empty line processed so far."""
        with self._lock:
            return list(self._received)

    @property
    def errors(self) -> list[str]:
        """Lines that matched no handler."""
        with self._lock:
            return list(self._errors)

    def process(self, line: str) -> bytes | None:
        """Process one command line.

        Args:
            line: Command text without its terminator.

        Returns:
            Reply bytes for a known query, None for commands and unknown lines.
        """
        line = line.strip()
        if not line:
            return None
        with self._lock:
            self._received.append(line)
            return self._dispatch(line)

    def _dispatch(self, line: str) -> bytes | None:
        if "?" in line:
            index = line.index("?")
            header = _normalize_header(line[: index + 1])
            if header == "*IDN?":
                return (self._identity + "\n").encode("ascii")
            handler = self._query_handlers.get(header)
            if handler is None:
                self._errors.append(line)
                return None
            return handler()

        parts = line.split(None, 1)
        header = _normalize_header(parts[0])
        args = parts[1] if len(parts) > 1 else ""
        if header in ("*RST", "*CLS"):
            return None
        handler_set = self._set_handlers.get(header)
        if handler_set is None:
            self._errors.append(line)
            return None
        handler_set(args)
        return None


def _text(value: str) -> bytes:
    return (value + "\n").encode("ascii")


# ---------------------------------------------------------------------------
# Multimeter
# ---------------------------------------------------------------------------


@dataclass
class MultimeterReadings:
    """Values returned by the multimeter emulator per measurement function.

    Attributes:
        voltage: DC voltage reading in volts.
        resistance: Resistance reading in ohms.
        diode: Diode forward voltage in volts.
    """

    voltage: float = 1.2345
    resistance: float = 1000.0
    diode: float = 0.5512


class MultimeterEmulator(InstrumentEmulator):
    """Bench multimeter emulator.

    Handles ``CONF:VOLT:DC``, ``CONF:RES`` and ``CONF:DIOD`` to select the
    measurement function, and ``MEAS:SHOW?`` / ``READ?`` to read it.
    ``MEAS:VOLT:DC?``, ``MEAS:RES?`` and ``MEAS:DIOD?`` select and read in
    one step.

    Args:
        identity: ``*IDN?`` reply.
        readings: Initial readings.
    """

    def __init__(
        self,
        identity: str = "OWON,XDM1241,EMU000001,V1.0",
        readings: MultimeterReadings | None = None,
    ) -> None:
        super().__init__(identity)
        self._readings = readings or MultimeterReadings()
        self._function = "VOLT"
        self._override: str | None = None

        self._set_handlers = {
            "CONF:VOLT:DC": lambda _args: self._select("VOLT"),
            "CONF:VOLT": lambda _args: self._select("VOLT"),
            "CONF:RES": lambda _args: self._select("RES"),
            "CONF:DIOD": lambda _args: self._select("DIOD"),
        }
        self._query_handlers = {
            "MEAS:SHOW?": self._read,
            "READ?": self._read,
            "MEAS:VOLT:DC?": lambda: self._measure("VOLT"),
            "MEAS:VOLT?": lambda: self._measure("VOLT"),
            "MEAS:RES?": lambda: self._measure("RES"),
            "MEAS:DIOD?": lambda: self._measure("DIOD"),
            "CONF?": lambda: _text(self._function),
        }

    @property
    def function(self) -> str:
        """Selected measurement function: ``"VOLT"``, ``"RES"`` or ``"DIOD"``."""
        return self._function

    @property
    def readings(self) -> MultimeterReadings:
        return self._readings

    def set_reading_text(self, text: str | None) -> None:
        """Force the raw reply of the next reads (None restores the readings)."""
        with self._lock:
            self._override = text

    def _select(self, function: str) -> None:
        self._function = function

    def _measure(self, function: str) -> bytes:
        self._function = function
        return self._read()

    def _read(self) -> bytes:
        if self._override is not None:
            return _text(self._override)
        value = {
            "VOLT": self._readings.voltage,
            "RES": self._readings.resistance,
            "DIOD": self._readings.diode,
        }[self._function]
        return _text(f"{value:.4E}")


# ---------------------------------------------------------------------------
# Oscilloscope
# ---------------------------------------------------------------------------


@dataclass
class OscilloscopeSettings:
    """Acquisition returned by the oscilloscope emulator.

    Attributes:
        samples: Raw 8-bit sample codes sent as the block payload.
        x_increment: Seconds between samples.
        y_increment: Volts per code step.
        y_origin: Vertical offset in volts.
        y_reference: Code value of the vertical origin.
        scale: ``:CHAN1:SCAL?`` reply.
        vpp: ``:MEAS:VPP?`` reply (may be an overflow sentinel).
        freq: ``:MEAS:FREQ?`` reply (may be an overflow sentinel).
    """

    samples: bytes = field(default_factory=lambda: bytes(range(0, 256, 4)))
    x_increment: float = 1e-6
    y_increment: float = 0.04
    y_origin: float = 0.0
    y_reference: int = 128
    scale: str = "1.000000E+00"
    vpp: str = "2.520000E+00"
    freq: str = "1.000000E+03"


class OscilloscopeEmulator(InstrumentEmulator):
    """Oscilloscope emulator serving one byte-format channel 1 acquisition.

    Accepts the ``:WAV:SOUR``, ``:WAV:MODE`` and ``:WAV:FORM`` setup commands
    and answers the capture queries, ``:WAV:DATA?`` with a definite-length
    block followed by ``\\n``.

    Args:
        identity: ``*IDN?`` reply.
        settings: Acquisition to serve.
    """

    def __init__(
        self,
        identity: str = "RIGOL TECHNOLOGIES,DHO814,EMU000002,00.01.01",
        settings: OscilloscopeSettings | None = None,
    ) -> None:
        super().__init__(identity)
        self.settings = settings or OscilloscopeSettings()
        self.waveform_setup: dict[str, str] = {}

        self._set_handlers = {
            "WAV:SOUR": lambda args: self._setup("SOUR", args),
            "WAV:MODE": lambda args: self._setup("MODE", args),
            "WAV:FORM": lambda args: self._setup("FORM", args),
        }
        self._query_handlers = {
            "CHAN1:SCAL?": lambda: _text(self.settings.scale),
            "MEAS:VPP?": lambda: _text(self.settings.vpp),
            "MEAS:FREQ?": lambda: _text(self.settings.freq),
            "WAV:PRE?": self._preamble,
            "WAV:DATA?": self._data,
        }

    def _setup(self, key: str, args: str) -> None:
        self.waveform_setup[key] = args.strip().upper()

    def _preamble(self) -> bytes:
        s = self.settings
        fields = [
            "0",
            "0",
            str(len(s.samples)),
            "1",
            f"{s.x_increment:.6E}",
            "0.000000E+00",
            "0",
            f"{s.y_increment:.6E}",
            f"{s.y_origin:.6E}",
            str(s.y_reference),
        ]
        return _text(",".join(fields))

    def _data(self) -> bytes:
        return build_block(self.settings.samples) + b"\n"
