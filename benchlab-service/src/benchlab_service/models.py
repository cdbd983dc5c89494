"""Pydantic models for REST API requests and responses.

This module defines the data models used by the bench REST API. Capture
responses use the camelCase field names the bench UI expects
(``timeScale``, ``voltageScale``, ``voltageOffset``).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from benchlab_core.types.capture import (
    CaptureFailure,
    CaptureResult,
    OperationStatus,
    ScalarCapture,
    WaveformCapture,
)
from benchlab_core.types.instrument import InstrumentConfig


class HealthResponse(BaseModel):
    """Health check response.

    Attributes:
        status: ``"ok"`` once the dispatcher is running.
        instruments: Number of configured instruments.
    """

    status: str
    instruments: int


class InstrumentInfo(BaseModel):
    """Configured instrument.

    Attributes:
        name: Unique instrument name.
        kind: ``"multimeter"`` or ``"oscilloscope"``.
        connection_type: ``"tcp"`` or ``"serial"``.
        address: ``host:port`` or ``path@baud``.
        active: Whether this instrument is used when executing by kind.
        actions: Action keys in the command map.
        monitoring: Whether a monitor is running.
    """

    name: str
    kind: str
    connection_type: str
    address: str
    active: bool
    actions: list[str]
    monitoring: bool = False

    @classmethod
    def from_config(cls, config: InstrumentConfig, monitoring: bool = False) -> InstrumentInfo:
        return cls(
            name=config.name,
            kind=config.kind.value,
            connection_type=config.connection_type.value,
            address=str(config.address),
            active=config.active,
            actions=sorted(config.commands),
            monitoring=monitoring,
        )


class ExecuteRequest(BaseModel):
    """Body of an execute request.

    Attributes:
        action: Action key to run, e.g. ``"READ_DC"``.
    """

    action: str


class CaptureResponse(BaseModel):
    """Result of an instrument action.

    Scalar successes carry ``value`` (queries only), waveform successes carry
    the waveform fields and failures carry ``message`` and ``kind``.
    """

    model_config = ConfigDict(populate_by_name=True)

    status: str
    value: str | None = None
    message: str | None = None
    kind: str | None = None
    waveform: list[float] | None = None
    time_scale: float | None = Field(default=None, alias="timeScale")
    voltage_scale: float | None = Field(default=None, alias="voltageScale")
    voltage_offset: float | None = Field(default=None, alias="voltageOffset")
    vpp: float | None = None
    freq: float | None = None

    @classmethod
    def from_capture(cls, result: CaptureResult) -> CaptureResponse:
        """Build a response from a dispatcher result."""
        if isinstance(result, CaptureFailure):
            return cls(status=result.status, message=result.message, kind=result.kind)
        if isinstance(result, WaveformCapture):
            return cls(
                status=result.status,
                waveform=list(result.waveform),
                time_scale=result.time_scale,
                voltage_scale=result.voltage_scale,
                voltage_offset=result.voltage_offset,
                vpp=result.vpp,
                freq=result.freq,
            )
        assert isinstance(result, ScalarCapture)
        return cls(status=result.status, value=result.value)


class OperationResponse(BaseModel):
    """Outcome of a connection test or monitor start/stop.

    Attributes:
        status: ``"success"`` or ``"error"``.
        message: Failure description, if any.
    """

    status: str
    message: str | None = None

    @classmethod
    def from_status(cls, result: OperationStatus) -> OperationResponse:
        data = result.to_dict()
        return cls(status=data["status"], message=data.get("message"))


class MonitorEvent(BaseModel):
    """One event observed by a monitor.

    Attributes:
        timestamp: Unix time the event was received.
        kind: ``"data"`` for an instrument line, otherwise the status name.
        text: The line, or the error message for ``"error"`` events.
    """

    timestamp: float
    kind: str
    text: str = ""


class MonitorStateResponse(BaseModel):
    """Monitor state of one instrument.

    Attributes:
        name: Instrument name.
        monitoring: Whether the monitor is running.
        status: Last reported monitor status, if any.
        events: Most recent events, oldest first.
    """

    name: str
    monitoring: bool
    status: str | None = None
    events: list[MonitorEvent] = Field(default_factory=list)
