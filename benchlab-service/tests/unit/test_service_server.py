"""Unit tests for the bench REST API server."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from benchlab_core.types.capture import (
    CaptureFailure,
    OperationStatus,
    ScalarCapture,
    WaveformCapture,
)
from benchlab_core.types.instrument import InstrumentKind

from benchlab_service import server
from benchlab_service.bench import Bench
from benchlab_service.models import InstrumentInfo, MonitorEvent, MonitorStateResponse
from benchlab_service.server import create_app


@pytest.fixture
def mock_bench() -> MagicMock:
    """Create a mock bench with one multimeter."""
    bench = MagicMock(spec=Bench)
    bench.__contains__.side_effect = lambda name: name == "bench_dmm"
    bench.dispatcher.configs = (MagicMock(), MagicMock())
    bench.list_instruments.return_value = [
        InstrumentInfo(
            name="bench_dmm",
            kind="multimeter",
            connection_type="tcp",
            address="192.168.1.100:9876",
            active=True,
            actions=["READ_DC"],
        )
    ]
    return bench


@pytest.fixture
def client(mock_bench: MagicMock) -> Iterator[TestClient]:
    """Create a test client with the mocked bench."""
    app = create_app()

    with patch.object(server, "_bench", mock_bench):
        yield TestClient(app)


class TestHealthEndpoint:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "instruments": 2}


class TestInstrumentsEndpoint:
    def test_list(self, client: TestClient) -> None:
        response = client.get("/instruments")

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["name"] == "bench_dmm"
        assert data[0]["monitoring"] is False


class TestExecuteEndpoint:
    def test_scalar_value(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.execute.return_value = ScalarCapture("1.2345E+00")

        response = client.post("/instruments/bench_dmm/execute", json={"action": "READ_DC"})

        assert response.status_code == 200
        assert response.json() == {"status": "success", "value": "1.2345E+00"}
        mock_bench.execute.assert_awaited_once_with("bench_dmm", "READ_DC")

    def test_command_without_value(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.execute.return_value = ScalarCapture()

        response = client.post(
            "/instruments/bench_dmm/execute", json={"action": "CONFIGURE_VOLTAGE"}
        )

        assert response.json() == {"status": "success"}

    def test_failure(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.execute.return_value = CaptureFailure("Unknown action: 'FOO'", "UnknownAction")

        response = client.post("/instruments/bench_dmm/execute", json={"action": "FOO"})

        assert response.status_code == 200
        assert response.json() == {
            "status": "error",
            "message": "Unknown action: 'FOO'",
            "kind": "UnknownAction",
        }

    def test_unknown_instrument(self, client: TestClient, mock_bench: MagicMock) -> None:
        response = client.post("/instruments/nope/execute", json={"action": "READ_DC"})

        assert response.status_code == 404
        mock_bench.execute.assert_not_called()

    def test_missing_action(self, client: TestClient) -> None:
        response = client.post("/instruments/bench_dmm/execute", json={})

        assert response.status_code == 422

    def test_by_kind(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.execute_kind.return_value = ScalarCapture("5.5120E-01")

        response = client.post(
            "/instruments/kind/multimeter/execute", json={"action": "READ_DIODE"}
        )

        assert response.status_code == 200
        assert response.json()["value"] == "5.5120E-01"
        mock_bench.execute_kind.assert_awaited_once_with(InstrumentKind.MULTIMETER, "READ_DIODE")

    def test_by_unknown_kind(self, client: TestClient) -> None:
        response = client.post("/instruments/kind/psu/execute", json={"action": "IDN"})

        assert response.status_code == 422


class TestCaptureEndpoint:
    def test_waveform_uses_camel_case(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.capture_waveform.return_value = WaveformCapture(
            waveform=(0.0, 0.04),
            time_scale=1e-4,
            voltage_scale=1.0,
            voltage_offset=0.0,
            vpp=2.52,
            freq=1000.0,
        )

        response = client.post("/instruments/bench_dmm/capture")

        assert response.status_code == 200
        assert response.json() == {
            "status": "success",
            "waveform": [0.0, 0.04],
            "timeScale": 1e-4,
            "voltageScale": 1.0,
            "voltageOffset": 0.0,
            "vpp": 2.52,
            "freq": 1000.0,
        }


class TestConnectionEndpoint:
    def test_success(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.test_connection.return_value = OperationStatus(True)

        response = client.post("/instruments/bench_dmm/test-connection")

        assert response.json() == {"status": "success"}

    def test_failure(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.test_connection.return_value = OperationStatus(False, "Connection refused")

        response = client.post("/instruments/bench_dmm/test-connection")

        assert response.json() == {"status": "error", "message": "Connection refused"}


class TestMonitorEndpoints:
    def test_start_and_stop(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.start_monitor.return_value = OperationStatus(True)
        mock_bench.stop_monitor.return_value = OperationStatus(True)

        assert client.post("/instruments/bench_dmm/monitor/start").json() == {
            "status": "success"
        }
        assert client.post("/instruments/bench_dmm/monitor/stop").json() == {
            "status": "success"
        }
        mock_bench.start_monitor.assert_awaited_once_with("bench_dmm")
        mock_bench.stop_monitor.assert_awaited_once_with("bench_dmm")

    def test_state(self, client: TestClient, mock_bench: MagicMock) -> None:
        mock_bench.monitor_state.return_value = MonitorStateResponse(
            name="bench_dmm",
            monitoring=True,
            status="connected",
            events=[MonitorEvent(timestamp=1.0, kind="data", text="HOLD 1.0")],
        )

        response = client.get("/instruments/bench_dmm/monitor")

        assert response.status_code == 200
        data = response.json()
        assert data["monitoring"] is True
        assert data["status"] == "connected"
        assert data["events"] == [{"timestamp": 1.0, "kind": "data", "text": "HOLD 1.0"}]

    def test_state_unknown_instrument(self, client: TestClient) -> None:
        response = client.get("/instruments/nope/monitor")

        assert response.status_code == 404


class TestUninitialized:
    def test_health_without_bench_raises(self) -> None:
        app = create_app()
        with patch.object(server, "_bench", None):
            test_client = TestClient(app, raise_server_exceptions=True)
            with pytest.raises(RuntimeError, match="not initialized"):
                test_client.get("/health")


class TestLifespan:
    def test_loads_config(self, tmp_path: Path) -> None:
        config_path = tmp_path / "bench.yaml"
        config_path.write_text(
            "instruments:\n"
            "  bench_dmm:\n"
            "    type: multimeter\n"
            "    ip_address: 127.0.0.1\n"
            "    port: 5025\n",
            encoding="utf-8",
        )

        with TestClient(create_app(config_path)) as test_client:
            response = test_client.get("/instruments")
            assert [item["name"] for item in response.json()] == ["bench_dmm"]

        assert server._bench is None  # pylint: disable=protected-access


class TestMain:
    def test_missing_config_exits_nonzero(self, tmp_path: Path) -> None:
        with patch("uvicorn.run") as run:
            assert server.main([str(tmp_path / "missing.yaml")]) == 1
        run.assert_not_called()

    def test_invalid_config_exits_nonzero(self, tmp_path: Path) -> None:
        config_path = tmp_path / "bench.yaml"
        config_path.write_text("instruments: [1, 2]\n", encoding="utf-8")
        with patch("uvicorn.run") as run:
            assert server.main([str(config_path)]) == 1
        run.assert_not_called()

    def test_runs_uvicorn(self, tmp_path: Path) -> None:
        config_path = tmp_path / "bench.yaml"
        config_path.write_text("instruments: {}\n", encoding="utf-8")
        with patch("uvicorn.run") as run:
            status = server.main(
                [str(config_path), "--host", "0.0.0.0", "--port", "9000", "--log-level", "debug"]
            )
        assert status == 0
        run.assert_called_once()
        assert run.call_args.kwargs == {"host": "0.0.0.0", "port": 9000, "log_level": "debug"}
