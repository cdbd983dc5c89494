"""Monitor sessions: a persistent channel that listens for unsolicited data.

Some meters push readings on their own, for example when the front-panel
hold button is pressed. A :class:`MonitorSession` keeps a persistent
channel open and hands every unsolicited line to a callback. Queries issued
through the same channel still work: while a reply is pending, the next
line is routed to the query and the callback does not see it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from benchlab_core.errors import BenchlabError
from benchlab_core.types.instrument import InstrumentConfig

from benchlab_scpi.channel import Channel, ChannelPolicy, ChannelState, LineListener
from benchlab_scpi.transport import Link

logger = logging.getLogger(__name__)


class MonitorStatus(str, Enum):
    """Connection status reported to monitor status listeners."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


#: Receives status changes, with the causing error for ``ERROR``.
StatusListener = Callable[[MonitorStatus, Optional[BenchlabError]], None]


class MonitorSession:
    """Persistent channel plus the callbacks listening to it.

    A link failure stops the session: the channel is closed, callbacks are
    cleared and the status listener sees ``ERROR`` then ``DISCONNECTED``.

    Args:
        config: Instrument being monitored.
        link: Unopened link to the instrument.
        on_data: Called with every cleaned, non-empty unsolicited line.
        on_status: Called on connection status changes.
    """

    def __init__(
        self,
        config: InstrumentConfig,
        link: Link,
        on_data: LineListener,
        on_status: StatusListener | None = None,
    ) -> None:
        self._config = config
        self._on_data: LineListener | None = on_data
        self._on_status = on_status
        self._channel = Channel(
            link,
            ChannelPolicy.PERSISTENT,
            name=config.name,
            on_line=self._deliver,
            on_state=self._on_channel_state,
        )

    @property
    def channel(self) -> Channel:
        """The shared channel, for request/response calls."""
        return self._channel

    @property
    def is_active(self) -> bool:
        return self._channel.is_open

    async def start(self) -> None:
        """Open the channel.

        Raises:
            TransportError: If the instrument cannot be reached.
            InstrumentTimeoutError: If connecting takes too long.
        """
        logger.info("Starting monitor on %s (%s)", self._config.name, self._config.address)
        await self._channel.open()

    async def stop(self) -> None:
        """Close the channel and drop the callbacks. Safe to call repeatedly."""
        if self._channel.state is not ChannelState.CLOSED:
            logger.info("Stopping monitor on %s", self._config.name)
        await self._channel.close()
        self._on_data = None

    def _deliver(self, line: str) -> None:
        if self._on_data is not None:
            self._on_data(line)

    def _on_channel_state(
        self,
        previous: ChannelState,
        state: ChannelState,
        error: BenchlabError | None,
    ) -> None:
        if previous is ChannelState.CONNECTING and state is ChannelState.OPEN_IDLE:
            logger.info("Monitor connected to %s", self._config.name)
            self._report(MonitorStatus.CONNECTED)
        elif state is ChannelState.CLOSED and previous is not ChannelState.CONNECTING:
            if error is not None:
                logger.error("Monitor on %s stopped: %s", self._config.name, error)
                self._report(MonitorStatus.ERROR, error)
            self._report(MonitorStatus.DISCONNECTED)
            self._on_data = None

    def _report(self, status: MonitorStatus, error: BenchlabError | None = None) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(status, error)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Error in monitor status listener for %s", self._config.name)
