"""Instrument configuration loading.

Instrument records use the same field names as the bench application's
instrument table, so rows exported from it can be pasted in unchanged.

Example YAML configuration:
    instruments:
      bench_dmm:
        type: multimeter
        connection_type: tcp_raw
        ip_address: 192.168.1.100
        port: 9876
        is_active: true
        command_map: |
          {"READ_DC": "MEAS:SHOW?", "CONFIGURE_VOLTAGE": "CONF:VOLT:DC AUTO"}

      bench_scope:
        type: oscilloscope
        connection_type: tcp_raw
        ip_address: 192.168.1.102
        port: 5555
        waveform_timeout: 6.0

      usb_dmm:
        type: multimeter
        connection_type: serial
        serial_settings:
          path: /dev/ttyUSB0
          baudRate: 115200

``command_map`` may be a mapping or JSON text. When it is omitted, the
defaults for the instrument kind are used.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from benchlab_core.errors import SerialConfigMissingError
from benchlab_core.types.instrument import (
    ConnectionType,
    InstrumentAddress,
    InstrumentConfig,
    InstrumentKind,
    SerialAddress,
    TcpAddress,
)

from benchlab_scpi.waveform import WAVEFORM_CAPTURE_SEQUENCE

logger = logging.getLogger(__name__)

DEFAULT_COMMANDS: dict[InstrumentKind, dict[str, str]] = {
    InstrumentKind.MULTIMETER: {
        "IDN": "*IDN?",
        "READ_DC": "MEAS:SHOW?",
        "READ_RESISTANCE": "MEAS:SHOW?",
        "READ_DIODE": "MEAS:SHOW?",
        "CONFIGURE_VOLTAGE": "CONF:VOLT:DC AUTO",
        "CONFIGURE_RESISTANCE": "CONF:RES AUTO",
        "CONFIGURE_DIODE": "CONF:DIOD",
    },
    InstrumentKind.OSCILLOSCOPE: {
        "IDN": "*IDN?",
        "SETUP_WAVE": ":WAV:SOUR CHAN1",
        "READ_WAVE": WAVEFORM_CAPTURE_SEQUENCE,
    },
}


def _decode_json(name: str, field_name: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if not value.strip():
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Instrument '{name}' {field_name} is not valid JSON: {exc}") from exc


def _parse_commands(name: str, kind: InstrumentKind, data: Mapping[str, Any]) -> dict[str, str]:
    raw = _decode_json(name, "command_map", data.get("command_map"))
    if raw is None:
        return dict(DEFAULT_COMMANDS[kind])
    if not isinstance(raw, Mapping):
        raise ValueError(f"Instrument '{name}' command_map must be a mapping")
    commands: dict[str, str] = {}
    for key, command in raw.items():
        if not isinstance(command, str):
            raise ValueError(f"Instrument '{name}' command for '{key}' must be a string")
        commands[str(key)] = command
    return commands


def _parse_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _resolve_serial(name: str, data: Mapping[str, Any]) -> SerialAddress:
    """Resolve the serial port, falling back to the network address fields.

    The bench application stores serial instruments with the port path in
    ``ip_address`` and the baud rate in ``port`` when ``serial_settings`` is
    empty.
    """
    settings = _decode_json(name, "serial_settings", data.get("serial_settings")) or {}
    if not isinstance(settings, Mapping):
        raise ValueError(f"Instrument '{name}' serial_settings must be a mapping")

    path = settings.get("path") or data.get("ip_address")
    baud_rate = _parse_int(
        settings.get("baudRate") or settings.get("baud_rate") or data.get("port")
    )
    if not path or baud_rate is None or baud_rate <= 0:
        raise SerialConfigMissingError(
            f"Instrument '{name}' uses a serial connection but has no valid port path and baud rate"
        )
    return SerialAddress(str(path), baud_rate)


def _resolve_tcp(name: str, data: Mapping[str, Any]) -> TcpAddress:
    host = data.get("ip_address")
    if not host:
        raise ValueError(f"Instrument '{name}' missing required field: ip_address")
    port = _parse_int(data.get("port"))
    if port is None:
        raise ValueError(f"Instrument '{name}' missing required field: port")
    return TcpAddress(str(host), port)


def parse_instrument(name: str, data: Mapping[str, Any]) -> InstrumentConfig:
    """Build an instrument configuration from a record.

    Args:
        name: Instrument name.
        data: Record fields (``type``, ``connection_type``, ``ip_address``,
            ``port``, ``command_map``, ``serial_settings``, ``timeout``,
            ``waveform_timeout``, ``is_active``).

    Returns:
        The parsed configuration.

    Raises:
        ValueError: If a field is missing or invalid.
        SerialConfigMissingError: If a serial instrument has no usable port.
    """
    kind_text = data.get("type")
    if not kind_text:
        raise ValueError(f"Instrument '{name}' missing required field: type")
    try:
        kind = InstrumentKind(str(kind_text).lower())
    except ValueError:
        raise ValueError(f"Instrument '{name}' has unknown type: {kind_text!r}") from None

    connection_type = ConnectionType.parse(str(data.get("connection_type", "tcp")))
    address: InstrumentAddress
    if connection_type is ConnectionType.SERIAL:
        address = _resolve_serial(name, data)
    else:
        address = _resolve_tcp(name, data)

    options: dict[str, Any] = {}
    for key in ("timeout", "waveform_timeout"):
        if data.get(key) is not None:
            options[key] = float(data[key])

    return InstrumentConfig(
        name=name,
        kind=kind,
        connection_type=connection_type,
        address=address,
        commands=_parse_commands(name, kind, data),
        active=bool(data.get("is_active", False)),
        **options,
    )


def load_instruments(path: str | Path) -> tuple[InstrumentConfig, ...]:
    """Load instrument configurations from a YAML file.

    Args:
        path: Path to the YAML (or JSON) file.

    Returns:
        Parsed configurations, in file order.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the config is invalid or missing required fields.
        SerialConfigMissingError: If a serial instrument has no usable port.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError("Config must be a YAML mapping")

    instruments_data = data.get("instruments", {})
    if not isinstance(instruments_data, dict):
        raise ValueError("instruments must be a mapping")

    instruments: list[InstrumentConfig] = []
    for name, inst_data in instruments_data.items():
        if not isinstance(inst_data, dict):
            raise ValueError(f"Instrument '{name}' must be a mapping")
        instruments.append(parse_instrument(str(name), inst_data))

    logger.info("Loaded %d instruments from %s", len(instruments), path)
    return tuple(instruments)
