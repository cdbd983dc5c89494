"""Raw TCP server exposing an instrument emulator.

Serves an :class:`~benchlab_emulator.emulator.InstrumentEmulator` over a raw
socket, the same way networked bench instruments listen on their SCPI port.
It is used by the end-to-end driver tests and for development without
hardware.

Example:
    Start a multimeter emulator on an ephemeral port::

        from benchlab_emulator import MultimeterEmulator, EmulatorServer

        server = EmulatorServer(MultimeterEmulator(), port=0)
        server.start()

        host, port = server.address
        # nc {host} {port}
        # > MEAS:SHOW?
        # < 1.2345E+00

        server.push_line("HOLD 1.2345E+00")  # unsolicited data
        server.stop()
"""

from __future__ import annotations

import logging
import socket
import socketserver
import threading
from typing import Any

from benchlab_emulator.emulator import InstrumentEmulator

logger = logging.getLogger(__name__)


class _EmulatorRequestHandler(socketserver.StreamRequestHandler):
    """Handle one TCP connection, forwarding lines to the emulator.

    Each received line is passed to the emulator; any reply is written back,
    split into chunks when the server has a chunk size.
    """

    server: _EmulatorTcpServer

    def setup(self) -> None:
        super().setup()
        self.server.register(self)

    def finish(self) -> None:
        self.server.unregister(self)
        try:
            super().finish()
        except OSError:
            pass

    def handle(self) -> None:
        try:
            for raw_line in self.rfile:
                line = raw_line.decode("ascii", errors="replace").strip()
                if not line:
                    continue
                reply = self.server.emulator.process(line)
                if reply is None or self.server.silent:
                    continue
                self.send(reply)
        except OSError as exc:
            logger.debug("Client connection ended: %s", exc)

    def send(self, data: bytes) -> None:
        """Write *data* to the client, honouring the server chunk size."""
        chunk_size = self.server.chunk_size or len(data)
        with self.server.write_lock(self):
            for start in range(0, len(data), chunk_size):
                self.wfile.write(data[start : start + chunk_size])
                self.wfile.flush()


class _EmulatorTcpServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """Threading TCP server holding the emulator and its connected clients."""

    allow_reuse_address = True
    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        emulator: InstrumentEmulator,
        chunk_size: int | None,
        silent: bool,
        **kwargs: Any,
    ) -> None:
        self.emulator = emulator
        self.chunk_size = chunk_size
        self.silent = silent
        self._clients: dict[_EmulatorRequestHandler, threading.Lock] = {}
        self._clients_lock = threading.Lock()
        self.connection_count = 0
        super().__init__(server_address, _EmulatorRequestHandler, **kwargs)

    def register(self, handler: _EmulatorRequestHandler) -> None:
        with self._clients_lock:
            self._clients[handler] = threading.Lock()
            self.connection_count += 1

    def unregister(self, handler: _EmulatorRequestHandler) -> None:
        with self._clients_lock:
            self._clients.pop(handler, None)

    def write_lock(self, handler: _EmulatorRequestHandler) -> threading.Lock:
        with self._clients_lock:
            return self._clients.get(handler) or threading.Lock()

    def clients(self) -> list[_EmulatorRequestHandler]:
        with self._clients_lock:
            return list(self._clients)


class EmulatorServer:
    """TCP server wrapping an instrument emulator.

    Runs a threading TCP server in a background daemon thread; every client
    connection gets its own handler thread.

    Args:
        emulator: The emulator to serve.
        host: Bind address (default ``"127.0.0.1"``).
        port: Bind port (default ``5025``). Use ``0`` for an OS-assigned
            ephemeral port.
        chunk_size: If set, replies are written in chunks of at most this many
            bytes, each flushed separately.
        silent: If True, queries are recorded but never answered.
    """

    def __init__(
        self,
        emulator: InstrumentEmulator,
        host: str = "127.0.0.1",
        port: int = 5025,
        *,
        chunk_size: int | None = None,
        silent: bool = False,
    ) -> None:
        if chunk_size is not None and chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._emulator = emulator
        self._server = _EmulatorTcpServer((host, port), emulator, chunk_size, silent)
        self._thread: threading.Thread | None = None

    @property
    def emulator(self) -> InstrumentEmulator:
        return self._emulator

    @property
    def connection_count(self) -> int:
        """Number of client connections accepted since start."""
        return self._server.connection_count

    @property
    def client_count(self) -> int:
        """Number of currently connected clients."""
        return len(self._server.clients())

    @property
    def silent(self) -> bool:
        return self._server.silent

    @silent.setter
    def silent(self, value: bool) -> None:
        self._server.silent = value

    def start(self) -> None:
        """Start serving in a daemon thread."""
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.debug("Emulator server listening on %s:%d", *self.address)

    def stop(self) -> None:
        """Disconnect clients, shut down the server and wait for the thread."""
        self.disconnect_clients()
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
            self._thread = None
        self._server.server_close()

    def push_line(self, text: str) -> int:
        """Send an unsolicited line to every connected client.

        Args:
            text: Line text; a ``\\n`` terminator is appended.

        Returns:
            Number of clients the line was sent to.
        """
        data = (text + "\n").encode("ascii")
        sent = 0
        for client in self._server.clients():
            try:
                client.send(data)
            except OSError as exc:
                logger.debug("Push to client failed: %s", exc)
                continue
            sent += 1
        return sent

    def disconnect_clients(self) -> None:
        """Close every client connection, as if the instrument dropped them."""
        for client in self._server.clients():
            try:
                client.connection.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    @property
    def address(self) -> tuple[str, int]:
        """Return the actual bound ``(host, port)`` address."""
        addr = self._server.server_address
        return (str(addr[0]), int(addr[1]))
