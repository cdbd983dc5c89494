"""SCPI-style protocol driver for bench instruments.

This package talks to multimeters and oscilloscopes over raw TCP sockets and
serial lines using a line-oriented text protocol. It includes:

- Links for TCP (asyncio streams) and serial ports (pyserial)
- A channel state machine with ephemeral and persistent lifecycles
- Command framing and reply cleaning
- Oscilloscope binary block (``#<N><len><bytes>``) decoding
- Monitor sessions for unsolicited instrument data
- A dispatcher mapping action keys to raw commands per instrument
- YAML instrument configuration loading

Typical usage::

    from benchlab_scpi import Dispatcher, load_instruments

    dispatcher = Dispatcher(load_instruments("bench.yaml"))
    result = await dispatcher.execute("bench_dmm", "READ_DC")
    print(result.to_dict())
    await dispatcher.close()
"""

from benchlab_scpi.channel import Channel, ChannelPolicy, ChannelState, ReplyMode
from benchlab_scpi.codec import clean, frame, is_query, split_lines
from benchlab_scpi.config import DEFAULT_COMMANDS, load_instruments, parse_instrument
from benchlab_scpi.dispatcher import Dispatcher
from benchlab_scpi.driver import InstrumentDriver
from benchlab_scpi.monitor import MonitorSession, MonitorStatus
from benchlab_scpi.number import parse_number, parse_numbers, parse_reading
from benchlab_scpi.transport import Link, SerialLink, TcpLink, create_link
from benchlab_scpi.waveform import (
    WAVEFORM_CAPTURE_COMMANDS,
    WAVEFORM_CAPTURE_SEQUENCE,
    BlockAccumulator,
    BlockState,
    WaveformPreamble,
    decode_block,
    decode_capture,
)

__all__ = [
    # Channel
    "Channel",
    "ChannelPolicy",
    "ChannelState",
    "ReplyMode",
    # Codec
    "clean",
    "frame",
    "is_query",
    "split_lines",
    # Configuration
    "DEFAULT_COMMANDS",
    "load_instruments",
    "parse_instrument",
    # Dispatch
    "Dispatcher",
    "InstrumentDriver",
    # Monitor
    "MonitorSession",
    "MonitorStatus",
    # Number parsing
    "parse_number",
    "parse_numbers",
    "parse_reading",
    # Transport
    "Link",
    "SerialLink",
    "TcpLink",
    "create_link",
    # Waveform
    "WAVEFORM_CAPTURE_COMMANDS",
    "WAVEFORM_CAPTURE_SEQUENCE",
    "BlockAccumulator",
    "BlockState",
    "WaveformPreamble",
    "decode_block",
    "decode_capture",
]
