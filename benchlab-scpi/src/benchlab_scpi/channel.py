"""Channel: one link plus request/response bookkeeping.

A :class:`Channel` wraps a :class:`~benchlab_scpi.transport.Link` and turns
its raw byte stream into command/reply exchanges. It is an explicit state
machine::

    CLOSED --open--> CONNECTING --connected--> OPEN_IDLE
    OPEN_IDLE --query written--> OPEN_AWAITING_REPLY --reply/timeout--> OPEN_IDLE
    any open state --close/link error--> CLOSED

The lifecycle policy decides who opens and closes it:

- ``EPHEMERAL``: each exchange opens the link, performs one write (and one
  read for queries), then closes the link whatever the outcome.
- ``PERSISTENT``: the owner opens it once; it stays open across exchanges
  until closed explicitly or the link fails.

At most one reply may be pending. Exchanges are serialized by a FIFO lock,
so a second query waits for the first to settle instead of taking over its
reply slot. Incoming data goes to the pending reply if there is one;
otherwise complete lines are cleaned and handed to the line listener.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from benchlab_core.errors import (
    BenchlabError,
    ChannelStateError,
    InstrumentTimeoutError,
    MalformedBlockError,
    TransportError,
)

from benchlab_scpi.codec import TERMINATOR, clean, frame, is_query, split_lines
from benchlab_scpi.transport import Link
from benchlab_scpi.waveform import BlockAccumulator

logger = logging.getLogger(__name__)

#: Unrouted bytes kept while waiting for a line terminator.
MAX_LINE_BUFFER = 64 * 1024


class ChannelPolicy(Enum):
    """Lifecycle policy of a channel."""

    EPHEMERAL = "ephemeral"
    PERSISTENT = "persistent"


class ChannelState(Enum):
    """State of a channel."""

    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN_IDLE = "open_idle"
    OPEN_AWAITING_REPLY = "open_awaiting_reply"


class ReplyMode(Enum):
    """What an exchange waits for after writing."""

    NONE = "none"
    LINE = "line"
    BLOCK = "block"


#: Receives each cleaned, non-empty unsolicited line.
LineListener = Callable[[str], None]

#: Receives (previous state, new state, error that caused the change).
StateListener = Callable[[ChannelState, ChannelState, Optional[BenchlabError]], None]


@dataclass
class _PendingReply:
    mode: ReplyMode
    future: asyncio.Future[bytes]
    accumulator: BlockAccumulator = field(default_factory=BlockAccumulator)


class Channel:
    """Request/response channel over a single link.

    Args:
        link: The unopened link to drive.
        policy: Lifecycle policy.
        name: Instrument name, used in log and error messages.
        on_line: Listener for unsolicited lines.
        on_state: Listener for state transitions.

    Example:
        >>> channel = Channel(TcpLink(TcpAddress("10.0.0.5", 5025)), ChannelPolicy.EPHEMERAL)
        >>> await channel.send("CONF:VOLT:DC", timeout=2.0)
        >>> reading = await channel.query("MEAS:SHOW?", timeout=2.0)
    """

    def __init__(
        self,
        link: Link,
        policy: ChannelPolicy,
        *,
        name: str = "",
        on_line: LineListener | None = None,
        on_state: StateListener | None = None,
    ) -> None:
        self._link = link
        self._policy = policy
        self._name = name or link.description
        self._on_line = on_line
        self._on_state = on_state
        self._state = ChannelState.CLOSED
        self._buffer = bytearray()
        self._pending: _PendingReply | None = None
        self._lock = asyncio.Lock()

    # -- Properties ----------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def policy(self) -> ChannelPolicy:
        return self._policy

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        """Return True if the link is up (idle or awaiting a reply)."""
        return self._state in (ChannelState.OPEN_IDLE, ChannelState.OPEN_AWAITING_REPLY)

    @property
    def has_pending_reply(self) -> bool:
        return self._pending is not None

    def set_line_listener(self, listener: LineListener | None) -> None:
        """Replace the unsolicited line listener."""
        self._on_line = listener

    # -- Lifecycle -----------------------------------------------------------

    async def open(self) -> None:
        """Open the underlying link. No-op if already open.

        Raises:
            TransportError: If the link cannot be opened.
            InstrumentTimeoutError: If connecting takes too long.
        """
        if self._state is not ChannelState.CLOSED:
            return
        self._set_state(ChannelState.CONNECTING)
        try:
            await self._link.open(self._on_data, self._on_link_closed)
        except BenchlabError as exc:
            self._set_state(ChannelState.CLOSED, exc)
            raise
        self._set_state(ChannelState.OPEN_IDLE)

    async def close(self) -> None:
        """Close the channel. Safe to call multiple times.

        A reply still pending is settled with :class:`TransportError`.
        """
        if self._state is ChannelState.CLOSED:
            return
        self._fail_pending(TransportError(f"Channel {self._name} closed while awaiting a reply"))
        self._buffer.clear()
        self._set_state(ChannelState.CLOSED)
        await self._link.close()

    async def __aenter__(self) -> Channel:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # -- Exchanges -----------------------------------------------------------

    async def send(self, command: str, *, timeout: float) -> None:
        """Write a command without waiting for any reply.

        Completes as soon as the link has accepted the write.

        Args:
            command: Command text.
            timeout: Seconds allowed for the write.
        """
        await self._exchange(command, ReplyMode.NONE, timeout)

    async def query(self, command: str, *, timeout: float) -> str:
        """Write a query and wait for the next complete line.

        Args:
            command: Query text (normally containing ``?``).
            timeout: Seconds allowed between write completion and the reply.

        Returns:
            The reply with non-printable bytes and surrounding whitespace removed.
        """
        raw = await self._exchange(command, ReplyMode.LINE, timeout)
        return clean(raw)

    async def query_block(self, command: str, *, timeout: float) -> bytes:
        """Write a query and collect a reply ending in a binary block.

        Args:
            command: Query text whose reply ends with a ``#<N><len><bytes>`` block.
            timeout: Wall-clock bound for the whole transfer after the write.

        Returns:
            Every byte received up to the end of the block payload.

        Raises:
            MalformedBlockError: If the block header is invalid or the link
                closes before the block is complete.
        """
        return await self._exchange(command, ReplyMode.BLOCK, timeout)

    async def exchange(self, command: str, *, timeout: float) -> str | None:
        """Send *command*, waiting for a line reply only if it is a query."""
        if is_query(command):
            return await self.query(command, timeout=timeout)
        await self.send(command, timeout=timeout)
        return None

    async def _exchange(self, command: str, mode: ReplyMode, timeout: float) -> bytes:
        async with self._lock:
            if self._policy is ChannelPolicy.EPHEMERAL:
                await self.open()
            try:
                return await self._locked_exchange(command, mode, timeout)
            finally:
                if self._policy is ChannelPolicy.EPHEMERAL:
                    await self.close()

    async def _locked_exchange(self, command: str, mode: ReplyMode, timeout: float) -> bytes:
        if not self.is_open:
            raise ChannelStateError(f"Channel {self._name} is not open ({self._state.value})")
        data = frame(command)
        summary = command.replace("\n", "; ")

        if mode is ReplyMode.NONE:
            await self._write(data, summary, timeout)
            logger.debug("%s <- %r", self._name, summary)
            return b""

        if self._buffer:
            logger.debug("%s: discarding %d stale bytes", self._name, len(self._buffer))
            self._buffer.clear()
        pending = _PendingReply(mode, asyncio.get_running_loop().create_future())
        self._pending = pending
        self._set_state(ChannelState.OPEN_AWAITING_REPLY)
        try:
            await self._write(data, summary, timeout)
            logger.debug("%s <- %r", self._name, summary)
            try:
                reply = await asyncio.wait_for(pending.future, timeout=timeout)
            except asyncio.TimeoutError:
                raise InstrumentTimeoutError(
                    f"reply to {summary!r} from {self._name}", timeout
                ) from None
            logger.debug("%s -> %d bytes", self._name, len(reply))
            return reply
        finally:
            if self._pending is pending:
                self._pending = None
            if not pending.future.done():
                pending.future.cancel()
            elif not pending.future.cancelled():
                # Mark as retrieved when the write failed before it was awaited.
                pending.future.exception()
            if self._state is ChannelState.OPEN_AWAITING_REPLY:
                self._set_state(ChannelState.OPEN_IDLE)

    async def _write(self, data: bytes, summary: str, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._link.write(data), timeout=timeout)
        except asyncio.TimeoutError:
            raise InstrumentTimeoutError(f"write of {summary!r} to {self._name}", timeout) from None

    # -- Link callbacks ------------------------------------------------------

    def _on_data(self, chunk: bytes) -> None:
        pending = self._pending
        if pending is not None and pending.mode is ReplyMode.BLOCK and not pending.future.done():
            self._feed_block(pending, chunk)
            return
        self._buffer.extend(chunk)
        self._drain_lines()

    def _feed_block(self, pending: _PendingReply, chunk: bytes) -> None:
        accumulator = pending.accumulator
        try:
            complete = accumulator.feed(chunk)
        except MalformedBlockError as exc:
            pending.future.set_exception(exc)
            return
        if not complete:
            return
        received = accumulator.buffer
        end = accumulator.block_end
        rest = received[end:]
        if rest.startswith(TERMINATOR):
            rest = rest[len(TERMINATOR) :]
        pending.future.set_result(received[:end])
        # Anything after the block belongs to the line stream.
        self._buffer.extend(rest)
        self._drain_lines()

    def _drain_lines(self) -> None:
        lines, rest = split_lines(bytes(self._buffer))
        self._buffer = bytearray(rest)
        for line in lines:
            pending = self._pending
            if pending is not None and pending.mode is ReplyMode.LINE and not pending.future.done():
                pending.future.set_result(line)
            else:
                self._emit_line(line)
        if len(self._buffer) > MAX_LINE_BUFFER:
            logger.warning(
                "%s: dropping %d unterminated bytes", self._name, len(self._buffer)
            )
            self._buffer.clear()

    def _emit_line(self, raw: bytes) -> None:
        text = clean(raw)
        if not text:
            return
        if self._on_line is None:
            logger.debug("%s: unsolicited line ignored: %r", self._name, text)
            return
        try:
            self._on_line(text)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Error in line listener for %s", self._name)

    def _on_link_closed(self, error: Exception | None) -> None:
        failure = error if isinstance(error, BenchlabError) else None
        if error is not None and failure is None:
            failure = TransportError(str(error))

        pending = self._pending
        self._pending = None
        if pending is not None and not pending.future.done():
            if failure is not None:
                pending.future.set_exception(failure)
            elif pending.mode is ReplyMode.BLOCK:
                try:
                    pending.accumulator.finish()
                except MalformedBlockError as exc:
                    pending.future.set_exception(exc)
            elif self._buffer:
                pending.future.set_result(bytes(self._buffer))
            else:
                pending.future.set_exception(
                    TransportError(f"{self._name}: connection closed by instrument")
                )

        if failure is not None:
            logger.warning("%s: link failed: %s", self._name, failure)
        else:
            logger.info("%s: link closed by instrument", self._name)
        self._buffer.clear()
        self._set_state(ChannelState.CLOSED, failure)

    # -- Helpers -------------------------------------------------------------

    def _fail_pending(self, error: BenchlabError) -> None:
        pending = self._pending
        self._pending = None
        if pending is not None and not pending.future.done():
            pending.future.set_exception(error)

    def _set_state(self, state: ChannelState, error: BenchlabError | None = None) -> None:
        previous = self._state
        if previous is state:
            return
        self._state = state
        if self._on_state is None:
            return
        try:
            self._on_state(previous, state, error)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Error in state listener for %s", self._name)
