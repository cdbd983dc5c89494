"""Exception types for benchlab-core.

This module defines the exception hierarchy used by the instrument driver
layer. All benchlab exceptions inherit from BenchlabError, allowing consumers
to catch every driver failure with a single except clause.

Exception hierarchy:
    BenchlabError (base)
    +-- UnknownActionError: Action key missing from an instrument's command map
    +-- InstrumentTimeoutError: No reply within the configured window
    +-- TransportError: Socket or serial level failure
    +-- MalformedBlockError: Binary waveform block could not be parsed
    +-- SerialConfigMissingError: Serial selected without a usable path/baud
    +-- ChannelStateError: Operation issued in the wrong channel state

Each class carries a ``kind`` attribute naming its category. The dispatcher
copies it into error results so callers can branch without string matching.
"""


class BenchlabError(Exception):
    """Base exception for all benchlab errors."""

    kind = "Error"


class UnknownActionError(BenchlabError):
    """Raised when an action key has no entry in an instrument's command map.

    Attributes:
        instrument: Name of the instrument that was asked.
        action_key: The action key that could not be resolved.
    """

    kind = "UnknownAction"

    def __init__(self, instrument: str, action_key: str) -> None:
        self.instrument = instrument
        self.action_key = action_key
        super().__init__(
            f"Instrument {instrument!r} has no command configured for action {action_key!r}"
        )


class InstrumentTimeoutError(BenchlabError):
    """Raised when an instrument does not reply within the allowed window.

    The driver never retries on its own; callers may retry.

    Attributes:
        timeout: The window that expired, in seconds.
    """

    kind = "Timeout"

    def __init__(self, description: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Timeout waiting for {description} after {timeout:g} s")


class TransportError(BenchlabError):
    """Raised for socket or serial failures.

    Covers refused connections, busy ports, I/O errors and the remote end
    closing the link while a reply was still expected.
    """

    kind = "TransportError"


class MalformedBlockError(BenchlabError):
    """Raised when a binary waveform block or its metadata cannot be parsed."""

    kind = "MalformedBlock"


class SerialConfigMissingError(BenchlabError):
    """Raised when a serial instrument has no resolvable port path or baud rate."""

    kind = "SerialConfigMissing"


class ChannelStateError(BenchlabError):
    """Raised when a channel operation is not valid in the current state.

    Callers see it as a transport failure: the link they needed is not open.
    """

    kind = "TransportError"
