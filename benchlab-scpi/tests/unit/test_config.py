"""Tests for instrument configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from benchlab_core.errors import SerialConfigMissingError
from benchlab_core.types.instrument import (
    ConnectionType,
    InstrumentKind,
    SerialAddress,
    TcpAddress,
)

from benchlab_scpi.config import DEFAULT_COMMANDS, load_instruments, parse_instrument
from benchlab_scpi.waveform import WAVEFORM_CAPTURE_SEQUENCE

SAMPLE_YAML = """\
instruments:
  bench_dmm:
    type: multimeter
    connection_type: tcp_raw
    ip_address: 192.168.1.100
    port: 9876
    is_active: true
    command_map: '{"READ_DC": "MEAS:SHOW?", "CONFIGURE_VOLTAGE": "CONF:VOLT:DC AUTO"}'

  bench_scope:
    type: oscilloscope
    connection_type: tcp_raw
    ip_address: 192.168.1.102
    port: 5555
    waveform_timeout: 6

  usb_dmm:
    type: multimeter
    connection_type: serial
    serial_settings:
      path: /dev/ttyUSB0
      baudRate: 115200
    command_map:
      READ_DC: "READ?"
"""


class TestParseInstrument:
    """Tests for parse_instrument."""

    def test_tcp_record(self) -> None:
        config = parse_instrument(
            "owon",
            {
                "type": "multimeter",
                "connection_type": "tcp_raw",
                "ip_address": "192.168.1.100",
                "port": 9876,
                "command_map": '{"IDN": "*IDN?"}',
                "is_active": 1,
            },
        )
        assert config.kind is InstrumentKind.MULTIMETER
        assert config.connection_type is ConnectionType.TCP
        assert config.address == TcpAddress("192.168.1.100", 9876)
        assert dict(config.commands) == {"IDN": "*IDN?"}
        assert config.active is True

    def test_default_commands(self) -> None:
        config = parse_instrument(
            "scope", {"type": "oscilloscope", "ip_address": "10.0.0.2", "port": "5555"}
        )
        assert dict(config.commands) == DEFAULT_COMMANDS[InstrumentKind.OSCILLOSCOPE]
        assert config.command_for("READ_WAVE") == WAVEFORM_CAPTURE_SEQUENCE
        assert config.address == TcpAddress("10.0.0.2", 5555)

    def test_timeouts(self) -> None:
        config = parse_instrument(
            "dmm",
            {"type": "multimeter", "ip_address": "h", "port": 1, "timeout": "0.5"},
        )
        assert config.timeout == 0.5
        assert config.waveform_timeout == 4.0

    def test_serial_settings_json(self) -> None:
        config = parse_instrument(
            "usb",
            {
                "type": "multimeter",
                "connection_type": "serial",
                "serial_settings": '{"path": "COM3", "baudRate": 9600}',
            },
        )
        assert config.address == SerialAddress("COM3", 9600)

    def test_serial_snake_case_baud(self) -> None:
        config = parse_instrument(
            "usb",
            {
                "type": "multimeter",
                "connection_type": "serial",
                "serial_settings": {"path": "/dev/ttyACM0", "baud_rate": 19200},
            },
        )
        assert config.address == SerialAddress("/dev/ttyACM0", 19200)

    def test_serial_falls_back_to_address_fields(self) -> None:
        config = parse_instrument(
            "usb",
            {
                "type": "multimeter",
                "connection_type": "serial",
                "ip_address": "COM4",
                "port": 115200,
                "serial_settings": "",
            },
        )
        assert config.address == SerialAddress("COM4", 115200)

    def test_serial_missing(self) -> None:
        with pytest.raises(SerialConfigMissingError, match="usb"):
            parse_instrument("usb", {"type": "multimeter", "connection_type": "serial"})

    def test_serial_bad_baud(self) -> None:
        with pytest.raises(SerialConfigMissingError):
            parse_instrument(
                "usb",
                {
                    "type": "multimeter",
                    "connection_type": "serial",
                    "serial_settings": {"path": "COM3", "baudRate": "fast"},
                },
            )

    def test_missing_type(self) -> None:
        with pytest.raises(ValueError, match="type"):
            parse_instrument("x", {"ip_address": "h", "port": 1})

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="unknown type"):
            parse_instrument("x", {"type": "psu", "ip_address": "h", "port": 1})

    def test_missing_port(self) -> None:
        with pytest.raises(ValueError, match="port"):
            parse_instrument("x", {"type": "multimeter", "ip_address": "h"})

    def test_invalid_command_map_json(self) -> None:
        with pytest.raises(ValueError, match="not valid JSON"):
            parse_instrument(
                "x",
                {"type": "multimeter", "ip_address": "h", "port": 1, "command_map": "{oops"},
            )

    def test_command_map_must_be_mapping(self) -> None:
        with pytest.raises(ValueError, match="mapping"):
            parse_instrument(
                "x",
                {"type": "multimeter", "ip_address": "h", "port": 1, "command_map": "[1, 2]"},
            )


class TestLoadInstruments:
    """Tests for load_instruments."""

    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "bench.yaml"
        path.write_text(SAMPLE_YAML, encoding="utf-8")
        configs = load_instruments(path)
        assert [c.name for c in configs] == ["bench_dmm", "bench_scope", "usb_dmm"]
        dmm, scope, usb = configs
        assert dmm.command_for("CONFIGURE_VOLTAGE") == "CONF:VOLT:DC AUTO"
        assert dmm.active
        assert scope.waveform_timeout == 6.0
        assert not scope.active
        assert usb.address == SerialAddress("/dev/ttyUSB0", 115200)
        assert usb.command_for("READ_DC") == "READ?"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_instruments(tmp_path / "missing.yaml")

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "bench.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="YAML mapping"):
            load_instruments(path)

    def test_instruments_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "bench.yaml"
        path.write_text("instruments: [1, 2]\n", encoding="utf-8")
        with pytest.raises(ValueError, match="instruments must be a mapping"):
            load_instruments(path)

    def test_instrument_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "bench.yaml"
        path.write_text("instruments:\n  dmm: 5\n", encoding="utf-8")
        with pytest.raises(ValueError, match="'dmm' must be a mapping"):
            load_instruments(path)

    def test_empty_instruments(self, tmp_path: Path) -> None:
        path = tmp_path / "bench.yaml"
        path.write_text("instruments: {}\n", encoding="utf-8")
        assert load_instruments(path) == ()
