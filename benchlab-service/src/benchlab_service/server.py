"""FastAPI server for the bench instrument REST API."""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator

from fastapi import FastAPI, HTTPException

from benchlab_core.errors import BenchlabError
from benchlab_core.types.instrument import InstrumentKind
from benchlab_scpi.config import load_instruments

from benchlab_service.bench import Bench
from benchlab_service.models import (
    CaptureResponse,
    ExecuteRequest,
    HealthResponse,
    InstrumentInfo,
    MonitorStateResponse,
    OperationResponse,
)

logger = logging.getLogger(__name__)

# Global bench instance (set during lifespan)
_bench: Bench | None = None


def _get_bench() -> Bench:
    """Get the global bench instance."""
    if _bench is None:
        raise RuntimeError("Bench not initialized")
    return _bench


def _require(name: str) -> Bench:
    bench = _get_bench()
    if name not in bench:
        raise HTTPException(status_code=404, detail=f"Instrument '{name}' not found")
    return bench


def create_app(config_path: str | Path | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        config_path: Path to the instrument configuration YAML.
            If None, the bench must be set before serving requests.

    Returns:
        Configured FastAPI application.
    """
    app_state: dict[str, Any] = {"config_path": config_path}

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        global _bench  # pylint: disable=global-statement

        cfg_path = app_state.get("config_path")
        if cfg_path:
            logger.info("Loading instrument configuration from %s", cfg_path)
            _bench = Bench(load_instruments(cfg_path))

        yield

        if _bench is not None:
            logger.info("Shutting down bench")
            await _bench.close()
            _bench = None

    app = FastAPI(
        title="benchlab Instrument API",
        description="REST API for bench multimeters and oscilloscopes",
        version="0.1.0",
        lifespan=lifespan,
    )

    capture_options: dict[str, Any] = {
        "methods": ["POST"],
        "response_model": CaptureResponse,
        "response_model_exclude_none": True,
    }
    operation_options: dict[str, Any] = {
        "methods": ["POST"],
        "response_model": OperationResponse,
        "response_model_exclude_none": True,
    }

    app.add_api_route("/health", _health, methods=["GET"], response_model=HealthResponse)
    app.add_api_route(
        "/instruments", _list_instruments, methods=["GET"], response_model=list[InstrumentInfo]
    )
    app.add_api_route("/instruments/kind/{kind}/execute", _execute_kind, **capture_options)
    app.add_api_route("/instruments/{name}/execute", _execute, **capture_options)
    app.add_api_route("/instruments/{name}/capture", _capture, **capture_options)
    app.add_api_route("/instruments/{name}/test-connection", _test_connection, **operation_options)
    app.add_api_route("/instruments/{name}/monitor/start", _start_monitor, **operation_options)
    app.add_api_route("/instruments/{name}/monitor/stop", _stop_monitor, **operation_options)
    app.add_api_route(
        "/instruments/{name}/monitor",
        _monitor_state,
        methods=["GET"],
        response_model=MonitorStateResponse,
    )

    return app


async def _health() -> HealthResponse:
    """Health check endpoint."""
    bench = _get_bench()
    return HealthResponse(status="ok", instruments=len(bench.dispatcher.configs))


async def _list_instruments() -> list[InstrumentInfo]:
    """List all instruments."""
    return _get_bench().list_instruments()


async def _execute(name: str, request: ExecuteRequest) -> CaptureResponse:
    """Run an action on an instrument."""
    bench = _require(name)
    result = await bench.execute(name, request.action)
    return CaptureResponse.from_capture(result)


async def _execute_kind(kind: InstrumentKind, request: ExecuteRequest) -> CaptureResponse:
    """Run an action on the active instrument of a kind."""
    result = await _get_bench().execute_kind(kind, request.action)
    return CaptureResponse.from_capture(result)


async def _capture(name: str) -> CaptureResponse:
    """Capture a waveform from an oscilloscope."""
    bench = _require(name)
    result = await bench.capture_waveform(name)
    return CaptureResponse.from_capture(result)


async def _test_connection(name: str) -> OperationResponse:
    """Check that an instrument is reachable."""
    bench = _require(name)
    return OperationResponse.from_status(await bench.test_connection(name))


async def _start_monitor(name: str) -> OperationResponse:
    """Start monitoring an instrument."""
    bench = _require(name)
    return OperationResponse.from_status(await bench.start_monitor(name))


async def _stop_monitor(name: str) -> OperationResponse:
    """Stop monitoring an instrument."""
    bench = _require(name)
    return OperationResponse.from_status(await bench.stop_monitor(name))


async def _monitor_state(name: str) -> MonitorStateResponse:
    """Get the monitor status and recent events of an instrument."""
    bench = _require(name)
    return bench.monitor_state(name)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="benchlab-server",
        description="Serve the configured bench instruments over HTTP",
    )
    parser.add_argument("config", type=Path, help="instrument configuration (YAML)")
    parser.add_argument("--host", default="127.0.0.1", help="bind address [%(default)s]")
    parser.add_argument("--port", type=int, default=8000, help="bind port [%(default)s]")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the instrument server until interrupted.

    The configuration is checked before the server starts so that a bad file
    fails fast instead of inside the application lifespan.

    Returns:
        Process exit status.
    """
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        instruments = load_instruments(args.config)
    except (FileNotFoundError, ValueError, BenchlabError) as exc:
        logger.error("Cannot load instrument configuration %s: %s", args.config, exc)
        return 1
    logger.info(
        "Serving %d instrument(s) from %s on %s:%d",
        len(instruments),
        args.config,
        args.host,
        args.port,
    )

    import uvicorn  # pylint: disable=import-outside-toplevel

    uvicorn.run(
        create_app(args.config),
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
