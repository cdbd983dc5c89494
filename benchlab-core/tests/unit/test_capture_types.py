"""Tests for capture result types and errors."""

from __future__ import annotations

from benchlab_core.errors import (
    BenchlabError,
    InstrumentTimeoutError,
    MalformedBlockError,
    SerialConfigMissingError,
    TransportError,
    UnknownActionError,
)
from benchlab_core.types.capture import (
    CaptureFailure,
    OperationStatus,
    ScalarCapture,
    WaveformCapture,
)


class TestScalarCapture:
    """Tests for ScalarCapture."""

    def test_command_has_no_value(self) -> None:
        assert ScalarCapture().to_dict() == {"status": "success"}

    def test_query_value(self) -> None:
        capture = ScalarCapture("1.2345E+00")
        assert capture.status == "success"
        assert capture.to_dict() == {"status": "success", "value": "1.2345E+00"}

    def test_empty_reply_is_kept(self) -> None:
        assert ScalarCapture("").to_dict() == {"status": "success", "value": ""}


class TestWaveformCapture:
    """Tests for WaveformCapture."""

    def test_to_dict_uses_camel_case(self) -> None:
        capture = WaveformCapture(
            waveform=(0.0, 0.5),
            time_scale=1e-4,
            voltage_scale=0.5,
            voltage_offset=-0.1,
            vpp=1.0,
            freq=1000.0,
        )
        assert capture.to_dict() == {
            "status": "success",
            "waveform": [0.0, 0.5],
            "timeScale": 1e-4,
            "voltageScale": 0.5,
            "voltageOffset": -0.1,
            "vpp": 1.0,
            "freq": 1000.0,
        }


class TestFailures:
    """Tests for CaptureFailure and OperationStatus."""

    def test_failure_dict(self) -> None:
        failure = CaptureFailure("Timeout waiting for reply after 2 s", "Timeout")
        assert failure.status == "error"
        assert failure.to_dict() == {
            "status": "error",
            "message": "Timeout waiting for reply after 2 s",
        }

    def test_operation_status(self) -> None:
        assert OperationStatus(True).to_dict() == {"status": "success"}
        assert OperationStatus(False, "refused").to_dict() == {
            "status": "error",
            "message": "refused",
        }


class TestErrors:
    """Tests for the error hierarchy."""

    def test_kinds(self) -> None:
        assert UnknownActionError("dmm", "X").kind == "UnknownAction"
        assert InstrumentTimeoutError("reply", 2.0).kind == "Timeout"
        assert TransportError("x").kind == "TransportError"
        assert MalformedBlockError("x").kind == "MalformedBlock"
        assert SerialConfigMissingError("x").kind == "SerialConfigMissing"

    def test_all_derive_from_base(self) -> None:
        for error in (
            UnknownActionError("dmm", "X"),
            InstrumentTimeoutError("reply", 2.0),
            TransportError("x"),
            MalformedBlockError("x"),
            SerialConfigMissingError("x"),
        ):
            assert isinstance(error, BenchlabError)

    def test_timeout_message(self) -> None:
        error = InstrumentTimeoutError("reply to 'MEAS:SHOW?'", 2.0)
        assert str(error) == "Timeout waiting for reply to 'MEAS:SHOW?' after 2 s"
        assert error.timeout == 2.0
