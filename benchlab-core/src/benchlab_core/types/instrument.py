"""Instrument configuration types.

An :class:`InstrumentConfig` describes one bench instrument: what it is, how
to reach it and which raw protocol command each logical action maps to. It
is loaded once per driver instance and never mutated afterwards.

Classes:
    InstrumentKind: Multimeter or oscilloscope.
    ConnectionType: Raw TCP socket or serial line.
    TcpAddress: Host and port of a networked instrument.
    SerialAddress: Device path and baud rate of a serial instrument.
    InstrumentConfig: Complete per-instrument configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from benchlab_core.errors import UnknownActionError


class InstrumentKind(str, Enum):
    """Category of instrument, which selects how replies are decoded."""

    MULTIMETER = "multimeter"
    OSCILLOSCOPE = "oscilloscope"


class ConnectionType(str, Enum):
    """Physical link used to reach an instrument."""

    TCP = "tcp"
    SERIAL = "serial"

    @classmethod
    def parse(cls, text: str) -> ConnectionType:
        """Parse a connection type name.

        Accepts ``"tcp_raw"`` as an alias for :attr:`TCP`.

        Args:
            text: Connection type name (case-insensitive).

        Returns:
            The matching connection type.

        Raises:
            ValueError: If the name is not recognized.
        """
        token = text.strip().lower()
        if token == "tcp_raw":
            return cls.TCP
        try:
            return cls(token)
        except ValueError:
            raise ValueError(f"Unknown connection type: {text!r}") from None


@dataclass(frozen=True)
class TcpAddress:
    """Network address of a raw-socket instrument.

    Attributes:
        host: Hostname or IP address.
        port: TCP port (1-65535).
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must be non-empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in 1..65535, got {self.port}")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class SerialAddress:
    """Serial port of an instrument.

    Attributes:
        path: Device path (e.g. ``"/dev/ttyUSB0"`` or ``"COM3"``).
        baud_rate: Line speed in bits/second.
    """

    path: str
    baud_rate: int

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("path must be non-empty")
        if self.baud_rate <= 0:
            raise ValueError(f"baud_rate must be positive, got {self.baud_rate}")

    def __str__(self) -> str:
        return f"{self.path}@{self.baud_rate}"


InstrumentAddress = Union[TcpAddress, SerialAddress]


@dataclass(frozen=True)
class InstrumentConfig:
    """Configuration for a single instrument.

    Attributes:
        name: Unique instrument name (e.g. ``"bench_dmm"``).
        kind: Instrument category.
        connection_type: Link type; must agree with the address type.
        address: Where the instrument lives.
        commands: Mapping from action key (e.g. ``"CONFIGURE_VOLTAGE"``) to the
            raw command text sent for it.
        timeout: Reply window for scalar queries, in seconds.
        waveform_timeout: Wall-clock bound for a whole waveform transfer, in
            seconds.
        active: Whether this is the instrument used when executing by kind.
    """

    name: str
    kind: InstrumentKind
    connection_type: ConnectionType
    address: InstrumentAddress
    commands: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 2.0
    waveform_timeout: float = 4.0
    active: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must be non-empty")
        if self.connection_type is ConnectionType.TCP and not isinstance(
            self.address, TcpAddress
        ):
            raise ValueError(f"Instrument {self.name!r}: TCP connection requires a TcpAddress")
        if self.connection_type is ConnectionType.SERIAL and not isinstance(
            self.address, SerialAddress
        ):
            raise ValueError(
                f"Instrument {self.name!r}: serial connection requires a SerialAddress"
            )
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.waveform_timeout <= 0:
            raise ValueError("waveform_timeout must be positive")
        for action_key, command in self.commands.items():
            if not command.isascii():
                raise ValueError(
                    f"Instrument {self.name!r}: command for {action_key!r} must be ASCII"
                )
        object.__setattr__(self, "commands", MappingProxyType(dict(self.commands)))

    def command_for(self, action_key: str) -> str:
        """Resolve an action key to its raw command text.

        Args:
            action_key: Logical action name.

        Returns:
            The command text from the command map.

        Raises:
            UnknownActionError: If the key is absent or maps to an empty command.
        """
        command = self.commands.get(action_key)
        if not command:
            raise UnknownActionError(self.name, action_key)
        return command
