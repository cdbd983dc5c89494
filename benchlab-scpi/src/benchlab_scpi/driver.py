"""Per-instrument driver.

An :class:`InstrumentDriver` resolves action keys through the instrument's
command map and runs the resulting command over a channel. Without a monitor
each call gets its own ephemeral channel; while a monitor is running, calls
reuse the monitor's persistent channel.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable

from benchlab_core.errors import BenchlabError
from benchlab_core.types.capture import OperationStatus, ScalarCapture, WaveformCapture
from benchlab_core.types.instrument import InstrumentConfig, InstrumentKind

from benchlab_scpi.channel import Channel, ChannelPolicy, LineListener
from benchlab_scpi.monitor import MonitorSession, StatusListener
from benchlab_scpi.transport import Link, create_link
from benchlab_scpi.waveform import WAVEFORM_CAPTURE_SEQUENCE, decode_capture

logger = logging.getLogger(__name__)

#: Builds an unopened link for an instrument.
LinkFactory = Callable[[InstrumentConfig], Link]

_BLOCK_QUERY = re.compile(r":?WAV(?:EFORM)?:DATA\?\s*$", re.IGNORECASE)


class InstrumentDriver:
    """Driver for one configured instrument.

    Args:
        config: The instrument configuration.
        link_factory: Builds links; replaced in tests.
    """

    def __init__(
        self,
        config: InstrumentConfig,
        *,
        link_factory: LinkFactory = create_link,
    ) -> None:
        self._config = config
        self._link_factory = link_factory
        self._monitor: MonitorSession | None = None
        self._monitor_lock = asyncio.Lock()

    @property
    def config(self) -> InstrumentConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def is_monitoring(self) -> bool:
        return self._monitor is not None and self._monitor.is_active

    # -- Exchanges -----------------------------------------------------------

    async def execute(self, action_key: str) -> ScalarCapture | WaveformCapture:
        """Run the command mapped to *action_key*.

        Args:
            action_key: Logical action, e.g. ``"CONFIGURE_VOLTAGE"``.

        Returns:
            A scalar capture, or a waveform capture for an oscilloscope command
            ending with the waveform data query.

        Raises:
            UnknownActionError: If the command map has no entry for the key.
                No I/O is attempted.
            InstrumentTimeoutError: If the instrument does not answer in time.
            TransportError: If the link fails.
            MalformedBlockError: If a waveform reply cannot be decoded.
        """
        command = self._config.command_for(action_key)
        logger.debug("%s: %s -> %r", self.name, action_key, command)
        return await self._run(command)

    async def capture_waveform(self) -> WaveformCapture:
        """Run the standard channel 1 capture sequence and decode the result."""
        return await self._run_block(WAVEFORM_CAPTURE_SEQUENCE)

    async def _run(self, command: str) -> ScalarCapture | WaveformCapture:
        if self._expects_block(command):
            return await self._run_block(command)
        channel = self._channel()
        value = await channel.exchange(command, timeout=self._config.timeout)
        return ScalarCapture(value)

    async def _run_block(self, command: str) -> WaveformCapture:
        channel = self._channel()
        raw = await channel.query_block(command, timeout=self._config.waveform_timeout)
        capture = decode_capture(raw)
        logger.info(
            "%s: captured %d samples (vpp=%g, freq=%g)",
            self.name,
            len(capture.waveform),
            capture.vpp,
            capture.freq,
        )
        return capture

    def _expects_block(self, command: str) -> bool:
        if self._config.kind is not InstrumentKind.OSCILLOSCOPE:
            return False
        lines = [line for line in command.splitlines() if line.strip()]
        return bool(lines) and _BLOCK_QUERY.search(lines[-1]) is not None

    def _channel(self) -> Channel:
        if self._monitor is not None and self._monitor.is_active:
            return self._monitor.channel
        return Channel(
            self._link_factory(self._config),
            ChannelPolicy.EPHEMERAL,
            name=self.name,
        )

    # -- Connection test -----------------------------------------------------

    async def test_connection(self) -> OperationStatus:
        """Open and close a link to check the instrument is reachable.

        Returns:
            Success if the link opened, otherwise a failure with the reason.
        """
        if self.is_monitoring:
            return OperationStatus(True, "Monitor connection is open")
        channel = Channel(self._link_factory(self._config), ChannelPolicy.PERSISTENT, name=self.name)
        try:
            await channel.open()
        except BenchlabError as exc:
            logger.warning("%s: connection test failed: %s", self.name, exc)
            return OperationStatus(False, str(exc))
        await channel.close()
        logger.info("%s: connection test succeeded", self.name)
        return OperationStatus(True)

    # -- Monitor -------------------------------------------------------------

    async def start_monitor(
        self,
        on_data: LineListener,
        on_status: StatusListener | None = None,
    ) -> None:
        """Open a persistent channel and deliver unsolicited lines to *on_data*.

        A running monitor is stopped first. Concurrent starts and stops run
        one at a time, so at most one monitor session exists.

        Raises:
            TransportError: If the instrument cannot be reached.
            InstrumentTimeoutError: If connecting takes too long.
        """
        async with self._monitor_lock:
            await self._stop_session()
            session = MonitorSession(
                self._config, self._link_factory(self._config), on_data, on_status
            )
            await session.start()
            self._monitor = session

    async def stop_monitor(self) -> None:
        """Stop the monitor. Safe to call when not monitoring."""
        async with self._monitor_lock:
            await self._stop_session()

    async def _stop_session(self) -> None:
        session = self._monitor
        self._monitor = None
        if session is not None:
            await session.stop()
