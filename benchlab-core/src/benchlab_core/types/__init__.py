"""Core data types for benchlab.

Submodules:
    instrument: Instrument configuration (InstrumentKind, ConnectionType,
        TcpAddress, SerialAddress, InstrumentConfig)
    capture: Capture results (ScalarCapture, WaveformCapture, CaptureFailure,
        OperationStatus)

All types are exported from this package for convenience.
"""

from benchlab_core.types.capture import (
    CaptureFailure,
    CaptureResult,
    OperationStatus,
    ScalarCapture,
    WaveformCapture,
)
from benchlab_core.types.instrument import (
    ConnectionType,
    InstrumentAddress,
    InstrumentConfig,
    InstrumentKind,
    SerialAddress,
    TcpAddress,
)

__all__ = [
    # Capture results
    "CaptureFailure",
    "CaptureResult",
    "OperationStatus",
    "ScalarCapture",
    "WaveformCapture",
    # Instrument configuration
    "ConnectionType",
    "InstrumentAddress",
    "InstrumentConfig",
    "InstrumentKind",
    "SerialAddress",
    "TcpAddress",
]
