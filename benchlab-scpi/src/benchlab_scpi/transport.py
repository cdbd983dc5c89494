"""Physical links to instruments.

A link owns one TCP socket or one serial port. It knows nothing about
commands or replies: it pushes incoming byte chunks to a data callback and
reports closure (clean or failed) to a closed callback. Framing and routing
are the job of :class:`benchlab_scpi.channel.Channel`.

Implementations:
- :class:`TcpLink`: raw socket via asyncio streams, delivers chunks as they
  arrive with no framing.
- :class:`SerialLink`: pyserial port read through the default executor,
  delivers newline-split lines.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Callable, Optional, Protocol

import serial

from benchlab_core.errors import InstrumentTimeoutError, TransportError
from benchlab_core.types.instrument import (
    ConnectionType,
    InstrumentConfig,
    SerialAddress,
    TcpAddress,
)

logger = logging.getLogger(__name__)

#: Called with each chunk of incoming bytes.
DataCallback = Callable[[bytes], None]

#: Called once when the link closes on its own; the argument is the failure, if any.
ClosedCallback = Callable[[Optional[Exception]], None]


class Link(Protocol):
    """Protocol for a byte-stream link to one instrument.

    ``open`` starts delivery to *on_data*. If the remote end closes or an I/O
    error occurs, the link tears itself down and calls *on_closed* exactly
    once. A local :meth:`close` does not invoke *on_closed*.
    """

    @property
    def description(self) -> str:
        """Human-readable address, used in log and error messages."""
        ...

    @property
    def is_open(self) -> bool:
        """Return True while the link is open."""
        ...

    async def open(self, on_data: DataCallback, on_closed: ClosedCallback) -> None:
        """Open the link and start delivering incoming data.

        Raises:
            TransportError: If the link cannot be opened.
            InstrumentTimeoutError: If connecting takes too long.
        """
        ...

    async def write(self, data: bytes) -> None:
        """Write *data*, returning once the transport has accepted it.

        Raises:
            TransportError: If the link is closed or the write fails.
        """
        ...

    async def close(self) -> None:
        """Close the link. Safe to call multiple times."""
        ...


class TcpLink:
    """Raw TCP socket link.

    Args:
        address: Host and port of the instrument.
        connect_timeout: Seconds allowed for the TCP handshake.
        chunk_size: Maximum bytes per read.
    """

    def __init__(
        self,
        address: TcpAddress,
        *,
        connect_timeout: float = 2.0,
        chunk_size: int = 65536,
    ) -> None:
        self._address = address
        self._connect_timeout = connect_timeout
        self._chunk_size = chunk_size
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._on_data: DataCallback | None = None
        self._on_closed: ClosedCallback | None = None

    @property
    def description(self) -> str:
        return f"tcp://{self._address}"

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    async def open(self, on_data: DataCallback, on_closed: ClosedCallback) -> None:
        if self._writer is not None:
            return
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._address.host, self._address.port),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            raise InstrumentTimeoutError(
                f"connection to {self.description}", self._connect_timeout
            ) from None
        except OSError as exc:
            raise TransportError(f"Failed to connect to {self.description}: {exc}") from exc

        self._on_data = on_data
        self._on_closed = on_closed
        self._read_task = asyncio.create_task(self._read_loop())
        logger.debug("Opened %s", self.description)

    async def write(self, data: bytes) -> None:
        if self._writer is None:
            raise TransportError(f"{self.description} is not open")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as exc:
            raise TransportError(f"Write to {self.description} failed: {exc}") from exc

    async def close(self) -> None:
        task = self._read_task
        self._read_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                logger.debug("Error while closing %s: %s", self.description, exc)
            logger.debug("Closed %s", self.description)

    async def _read_loop(self) -> None:
        """Deliver chunks until EOF or error, then report closure."""
        assert self._reader is not None
        error: Exception | None = None
        try:
            while True:
                chunk = await self._reader.read(self._chunk_size)
                if not chunk:
                    logger.debug("%s closed by remote end", self.description)
                    break
                if self._on_data is not None:
                    self._on_data(chunk)
        except asyncio.CancelledError:
            return
        except OSError as exc:
            error = TransportError(f"Read from {self.description} failed: {exc}")

        on_closed = self._on_closed
        self._read_task = None
        await self.close()
        if on_closed is not None:
            on_closed(error)


class SerialLink:
    """Serial port link backed by pyserial.

    pyserial is blocking, so opening, reading and writing run in the default
    executor. Reads use ``readline`` with a short timeout, so data reaches the
    channel already split on newlines.

    Args:
        address: Device path and baud rate.
        read_timeout: Seconds each blocking ``readline`` may wait.
    """

    def __init__(self, address: SerialAddress, *, read_timeout: float = 0.1) -> None:
        self._address = address
        self._read_timeout = read_timeout
        self._serial: serial.Serial | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._running = False
        self._on_data: DataCallback | None = None
        self._on_closed: ClosedCallback | None = None

    @property
    def description(self) -> str:
        return f"serial://{self._address}"

    @property
    def is_open(self) -> bool:
        return self._serial is not None

    async def open(self, on_data: DataCallback, on_closed: ClosedCallback) -> None:
        if self._serial is not None:
            return
        loop = asyncio.get_running_loop()
        try:
            self._serial = await loop.run_in_executor(
                None,
                functools.partial(
                    serial.Serial,
                    port=self._address.path,
                    baudrate=self._address.baud_rate,
                    timeout=self._read_timeout,
                ),
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            raise TransportError(f"Failed to open {self.description}: {exc}") from exc

        self._on_data = on_data
        self._on_closed = on_closed
        self._running = True
        self._read_task = asyncio.create_task(self._read_loop())
        logger.debug("Opened %s", self.description)

    async def write(self, data: bytes) -> None:
        port = self._serial
        if port is None:
            raise TransportError(f"{self.description} is not open")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, port.write, data)
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Write to {self.description} failed: {exc}") from exc

    async def close(self) -> None:
        self._running = False
        task = self._read_task
        self._read_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        port = self._serial
        self._serial = None
        if port is not None:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, port.close)
            except (serial.SerialException, OSError) as exc:
                logger.debug("Error while closing %s: %s", self.description, exc)
            logger.debug("Closed %s", self.description)

    async def _read_loop(self) -> None:
        """Deliver lines until stopped or the port fails, then report closure."""
        assert self._serial is not None
        port = self._serial
        loop = asyncio.get_running_loop()
        error: Exception | None = None
        while self._running:
            try:
                line = await loop.run_in_executor(None, port.readline)
            except asyncio.CancelledError:
                return
            except (serial.SerialException, OSError) as exc:
                error = TransportError(f"Read from {self.description} failed: {exc}")
                break
            if line and self._on_data is not None:
                self._on_data(line)

        if error is None:
            return
        on_closed = self._on_closed
        self._read_task = None
        await self.close()
        if on_closed is not None:
            on_closed(error)


def create_link(config: InstrumentConfig) -> Link:
    """Build the link matching an instrument's connection type.

    Args:
        config: Instrument configuration.

    Returns:
        An unopened :class:`TcpLink` or :class:`SerialLink`.
    """
    if config.connection_type is ConnectionType.SERIAL:
        assert isinstance(config.address, SerialAddress)
        return SerialLink(config.address)
    assert isinstance(config.address, TcpAddress)
    return TcpLink(config.address, connect_timeout=config.timeout)
