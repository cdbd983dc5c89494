"""Command dispatcher: routes logical actions to instrument drivers.

The dispatcher is the entry point used by the application layer. It owns one
:class:`~benchlab_scpi.driver.InstrumentDriver` per configured instrument and
never raises for instrument failures: every error comes back as a
:class:`~benchlab_core.types.capture.CaptureFailure` or a failed
:class:`~benchlab_core.types.capture.OperationStatus`.

Example:
    >>> dispatcher = Dispatcher(load_instruments("bench.yaml"))
    >>> result = await dispatcher.execute("bench_dmm", "READ_DC")
    >>> result.to_dict()
    {'status': 'success', 'value': '1.2345E+00'}
"""

from __future__ import annotations

import logging
from typing import Iterable

from benchlab_core.errors import BenchlabError
from benchlab_core.types.capture import CaptureFailure, CaptureResult, OperationStatus
from benchlab_core.types.instrument import InstrumentConfig, InstrumentKind

from benchlab_scpi.channel import LineListener
from benchlab_scpi.driver import InstrumentDriver, LinkFactory
from benchlab_scpi.monitor import StatusListener
from benchlab_scpi.transport import create_link

logger = logging.getLogger(__name__)

UNKNOWN_INSTRUMENT = "UnknownInstrument"


class Dispatcher:
    """Routes actions to the drivers of a set of instruments.

    Args:
        instruments: Instrument configurations; names must be unique.
        link_factory: Builds links for every driver; replaced in tests.
    """

    def __init__(
        self,
        instruments: Iterable[InstrumentConfig] = (),
        *,
        link_factory: LinkFactory = create_link,
    ) -> None:
        self._link_factory = link_factory
        self._drivers: dict[str, InstrumentDriver] = {}
        for config in instruments:
            self.add(config)

    def add(self, config: InstrumentConfig) -> InstrumentDriver:
        """Register an instrument.

        Raises:
            ValueError: If an instrument with the same name is registered.
        """
        if config.name in self._drivers:
            raise ValueError(f"Duplicate instrument name: {config.name!r}")
        driver = InstrumentDriver(config, link_factory=self._link_factory)
        self._drivers[config.name] = driver
        logger.debug("Registered instrument %s (%s, %s)", config.name, config.kind.value, config.address)
        return driver

    def __contains__(self, name: object) -> bool:
        return name in self._drivers

    @property
    def configs(self) -> tuple[InstrumentConfig, ...]:
        return tuple(driver.config for driver in self._drivers.values())

    def driver(self, name: str) -> InstrumentDriver:
        """Return the driver for *name*.

        Raises:
            KeyError: If no such instrument is registered.
        """
        try:
            return self._drivers[name]
        except KeyError:
            raise KeyError(f"Unknown instrument: {name!r}") from None

    def find_kind(self, kind: InstrumentKind) -> InstrumentDriver | None:
        """Return the active instrument of *kind*, else the first one configured."""
        candidates = [d for d in self._drivers.values() if d.config.kind is kind]
        for driver in candidates:
            if driver.config.active:
                return driver
        return candidates[0] if candidates else None

    # -- Actions -------------------------------------------------------------

    async def execute(self, instrument: str | InstrumentConfig, action_key: str) -> CaptureResult:
        """Run an action on an instrument.

        Args:
            instrument: Registered instrument name, or a configuration. An
                unregistered configuration is registered on first use.
            action_key: Logical action key.

        Returns:
            The capture, or a :class:`CaptureFailure` describing the error.
        """
        driver = self._resolve(instrument)
        if driver is None:
            return self._unknown(instrument)
        try:
            return await driver.execute(action_key)
        except BenchlabError as exc:
            return self._failure(driver.name, action_key, exc)

    async def execute_kind(self, kind: InstrumentKind, action_key: str) -> CaptureResult:
        """Run an action on the active instrument of a kind."""
        driver = self.find_kind(kind)
        if driver is None:
            message = f"No {kind.value} instrument configured"
            logger.warning(message)
            return CaptureFailure(message, UNKNOWN_INSTRUMENT)
        try:
            return await driver.execute(action_key)
        except BenchlabError as exc:
            return self._failure(driver.name, action_key, exc)

    async def capture_waveform(self, instrument: str | InstrumentConfig) -> CaptureResult:
        """Run the standard waveform capture sequence on an oscilloscope."""
        driver = self._resolve(instrument)
        if driver is None:
            return self._unknown(instrument)
        try:
            return await driver.capture_waveform()
        except BenchlabError as exc:
            return self._failure(driver.name, "capture", exc)

    async def test_connection(self, instrument: str | InstrumentConfig) -> OperationStatus:
        """Check that an instrument is reachable."""
        driver = self._resolve(instrument)
        if driver is None:
            return OperationStatus(False, self._unknown(instrument).message)
        return await driver.test_connection()

    # -- Monitor -------------------------------------------------------------

    async def start_monitor(
        self,
        instrument: str | InstrumentConfig,
        on_data: LineListener,
        on_status: StatusListener | None = None,
    ) -> OperationStatus:
        """Start monitoring an instrument for unsolicited lines."""
        driver = self._resolve(instrument)
        if driver is None:
            return OperationStatus(False, self._unknown(instrument).message)
        try:
            await driver.start_monitor(on_data, on_status)
        except BenchlabError as exc:
            logger.error("%s: failed to start monitor: %s", driver.name, exc)
            return OperationStatus(False, str(exc))
        return OperationStatus(True)

    async def stop_monitor(self, instrument: str | InstrumentConfig) -> OperationStatus:
        """Stop monitoring an instrument. Succeeds when no monitor is running."""
        driver = self._resolve(instrument)
        if driver is None:
            return OperationStatus(False, self._unknown(instrument).message)
        await driver.stop_monitor()
        return OperationStatus(True)

    async def close(self) -> None:
        """Stop every running monitor."""
        for driver in self._drivers.values():
            await driver.stop_monitor()

    # -- Helpers -------------------------------------------------------------

    def _resolve(self, instrument: str | InstrumentConfig) -> InstrumentDriver | None:
        if isinstance(instrument, InstrumentConfig):
            driver = self._drivers.get(instrument.name)
            if driver is None:
                return self.add(instrument)
            if driver.config != instrument:
                logger.warning(
                    "Instrument %s already registered with a different configuration",
                    instrument.name,
                )
            return driver
        return self._drivers.get(instrument)

    @staticmethod
    def _unknown(instrument: str | InstrumentConfig) -> CaptureFailure:
        name = instrument.name if isinstance(instrument, InstrumentConfig) else instrument
        message = f"Unknown instrument: {name!r}"
        logger.warning(message)
        return CaptureFailure(message, UNKNOWN_INSTRUMENT)

    @staticmethod
    def _failure(name: str, action: str, exc: BenchlabError) -> CaptureFailure:
        logger.error("%s: %s failed (%s): %s", name, action, exc.kind, exc)
        return CaptureFailure(str(exc), exc.kind)
