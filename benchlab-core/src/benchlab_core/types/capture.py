"""Capture result types.

A capture is the outcome of one logical instrument action. It is one of
three shapes:

- :class:`ScalarCapture`: success from a multimeter-style exchange, with the
  cleaned reply text when the command was a query.
- :class:`WaveformCapture`: success from an oscilloscope block transfer.
- :class:`CaptureFailure`: any failure, with a human-readable message.

``to_dict()`` renders the camelCase mapping consumed by the UI layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

SUCCESS = "success"
ERROR = "error"


@dataclass(frozen=True)
class ScalarCapture:
    """Successful scalar exchange.

    Attributes:
        value: Cleaned reply text, or None for fire-and-forget commands.
    """

    value: str | None = None

    @property
    def status(self) -> str:
        return SUCCESS

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": SUCCESS}
        if self.value is not None:
            result["value"] = self.value
        return result


@dataclass(frozen=True)
class WaveformCapture:
    """Successful oscilloscope capture.

    Attributes:
        waveform: Voltage samples in volts, one per payload byte.
        time_scale: Approximate seconds per horizontal division.
        voltage_scale: Volts per vertical division reported by the scope.
        voltage_offset: Y origin from the preamble, in volts.
        vpp: Peak-to-peak voltage, 0 when the scope reported no valid value.
        freq: Signal frequency in hertz, 0 when the scope reported no valid value.
    """

    waveform: tuple[float, ...]
    time_scale: float
    voltage_scale: float
    voltage_offset: float
    vpp: float
    freq: float

    @property
    def status(self) -> str:
        return SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": SUCCESS,
            "waveform": list(self.waveform),
            "timeScale": self.time_scale,
            "voltageScale": self.voltage_scale,
            "voltageOffset": self.voltage_offset,
            "vpp": self.vpp,
            "freq": self.freq,
        }


@dataclass(frozen=True)
class CaptureFailure:
    """Failed capture.

    Attributes:
        message: Description of what went wrong.
        kind: Error category (e.g. ``"Timeout"``, ``"UnknownAction"``).
    """

    message: str
    kind: str = "Error"

    @property
    def status(self) -> str:
        return ERROR

    def to_dict(self) -> dict[str, Any]:
        return {"status": ERROR, "message": self.message}


CaptureResult = Union[ScalarCapture, WaveformCapture, CaptureFailure]


@dataclass(frozen=True)
class OperationStatus:
    """Outcome of an operation that returns no data.

    Used for connection tests and monitor start/stop.

    Attributes:
        ok: True if the operation succeeded.
        message: Failure description, empty on success.
    """

    ok: bool
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": SUCCESS if self.ok else ERROR}
        if self.message:
            result["message"] = self.message
        return result
