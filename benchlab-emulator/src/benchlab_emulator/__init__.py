"""Bench instrument emulators for benchlab.

This package provides in-process emulators for the bench multimeter and
oscilloscope, and a raw TCP server that exposes them on a socket the way the
real instruments do.

Modules:
    emulator: Multimeter and oscilloscope emulators, block framing helper.
    server: Threaded TCP server with unsolicited-line push support.

Example:
    Serve an oscilloscope for the driver::

        from benchlab_emulator import OscilloscopeEmulator, EmulatorServer

        server = EmulatorServer(OscilloscopeEmulator(), port=0, chunk_size=16)
        server.start()
"""

from benchlab_emulator.emulator import (
    InstrumentEmulator,
    MultimeterEmulator,
    MultimeterReadings,
    OscilloscopeEmulator,
    OscilloscopeSettings,
    build_block,
)
from benchlab_emulator.server import EmulatorServer

__all__ = [
    # Emulators
    "InstrumentEmulator",
    "MultimeterEmulator",
    "MultimeterReadings",
    "OscilloscopeEmulator",
    "OscilloscopeSettings",
    "build_block",
    # Server
    "EmulatorServer",
]
