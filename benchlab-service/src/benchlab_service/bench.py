"""Bench orchestration for the REST service."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field

from benchlab_core.errors import BenchlabError
from benchlab_core.types.capture import CaptureResult, OperationStatus
from benchlab_core.types.instrument import InstrumentConfig, InstrumentKind

from benchlab_scpi.dispatcher import Dispatcher
from benchlab_scpi.driver import LinkFactory
from benchlab_scpi.monitor import MonitorStatus
from benchlab_scpi.transport import create_link

from benchlab_service.models import InstrumentInfo, MonitorEvent, MonitorStateResponse

logger = logging.getLogger(__name__)

#: Monitor events kept per instrument.
MONITOR_BACKLOG = 100


@dataclass
class _MonitorLog:
    events: deque[MonitorEvent] = field(default_factory=lambda: deque(maxlen=MONITOR_BACKLOG))
    status: MonitorStatus | None = None


class Bench:
    """A set of instruments behind one dispatcher, plus monitor backlogs.

    Args:
        instruments: Instrument configurations.
        link_factory: Builds links; replaced in tests.

    Example:
        bench = Bench(load_instruments("bench.yaml"))
        result = await bench.execute("bench_dmm", "READ_DC")
        await bench.start_monitor("bench_dmm")
        state = bench.monitor_state("bench_dmm")
        await bench.close()
    """

    def __init__(
        self,
        instruments: tuple[InstrumentConfig, ...],
        *,
        link_factory: LinkFactory = create_link,
    ) -> None:
        self._dispatcher = Dispatcher(instruments, link_factory=link_factory)
        self._monitors: dict[str, _MonitorLog] = {}

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def __contains__(self, name: object) -> bool:
        return name in self._dispatcher

    def list_instruments(self) -> list[InstrumentInfo]:
        """Describe every configured instrument."""
        return [
            InstrumentInfo.from_config(
                config, self._dispatcher.driver(config.name).is_monitoring
            )
            for config in self._dispatcher.configs
        ]

    async def execute(self, name: str, action_key: str) -> CaptureResult:
        return await self._dispatcher.execute(name, action_key)

    async def execute_kind(self, kind: InstrumentKind, action_key: str) -> CaptureResult:
        return await self._dispatcher.execute_kind(kind, action_key)

    async def capture_waveform(self, name: str) -> CaptureResult:
        return await self._dispatcher.capture_waveform(name)

    async def test_connection(self, name: str) -> OperationStatus:
        return await self._dispatcher.test_connection(name)

    async def start_monitor(self, name: str) -> OperationStatus:
        """Start a monitor that records lines and status changes in a backlog."""
        log = _MonitorLog()
        self._monitors[name] = log

        def on_data(line: str) -> None:
            log.events.append(MonitorEvent(timestamp=time.time(), kind="data", text=line))

        def on_status(status: MonitorStatus, error: BenchlabError | None) -> None:
            log.status = status
            text = str(error) if error is not None else ""
            log.events.append(MonitorEvent(timestamp=time.time(), kind=status.value, text=text))

        return await self._dispatcher.start_monitor(name, on_data, on_status)

    async def stop_monitor(self, name: str) -> OperationStatus:
        return await self._dispatcher.stop_monitor(name)

    def monitor_state(self, name: str) -> MonitorStateResponse:
        """Return the monitor status and recent events of an instrument."""
        log = self._monitors.get(name)
        return MonitorStateResponse(
            name=name,
            monitoring=self._dispatcher.driver(name).is_monitoring,
            status=log.status.value if log is not None and log.status is not None else None,
            events=list(log.events) if log is not None else [],
        )

    async def close(self) -> None:
        """Stop all monitors."""
        await self._dispatcher.close()
        logger.info("Bench closed")
