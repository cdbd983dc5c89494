"""Core library for the benchlab instrument driver layer.

This package provides the error hierarchy and the plain data types shared by
the driver, emulator and service packages. It depends only on the standard
library.

Key components:
    - Types: Instrument configuration (InstrumentConfig and its address
      types) and capture results (ScalarCapture, WaveformCapture,
      CaptureFailure).
    - Errors: Hierarchy of exception types for the driver failure modes.

Example:
    >>> from benchlab_core import InstrumentConfig, InstrumentKind, ConnectionType, TcpAddress
    >>> dmm = InstrumentConfig(
    ...     name="bench_dmm",
    ...     kind=InstrumentKind.MULTIMETER,
    ...     connection_type=ConnectionType.TCP,
    ...     address=TcpAddress("127.0.0.1", 5025),
    ...     commands={"CONFIGURE_VOLTAGE": "CONF:VOLT:DC"},
    ... )
    >>> dmm.command_for("CONFIGURE_VOLTAGE")
    'CONF:VOLT:DC'
"""

from benchlab_core.errors import (
    BenchlabError,
    ChannelStateError,
    InstrumentTimeoutError,
    MalformedBlockError,
    SerialConfigMissingError,
    TransportError,
    UnknownActionError,
)
from benchlab_core.types import (
    CaptureFailure,
    CaptureResult,
    ConnectionType,
    InstrumentAddress,
    InstrumentConfig,
    InstrumentKind,
    OperationStatus,
    ScalarCapture,
    SerialAddress,
    TcpAddress,
    WaveformCapture,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Instrument configuration
    "ConnectionType",
    "InstrumentAddress",
    "InstrumentConfig",
    "InstrumentKind",
    "SerialAddress",
    "TcpAddress",
    # Capture results
    "CaptureFailure",
    "CaptureResult",
    "OperationStatus",
    "ScalarCapture",
    "WaveformCapture",
    # Errors
    "BenchlabError",
    "ChannelStateError",
    "InstrumentTimeoutError",
    "MalformedBlockError",
    "SerialConfigMissingError",
    "TransportError",
    "UnknownActionError",
]
