"""Exception hierarchy for the clamd SDK."""

from __future__ import annotations

from enum import Enum

from clamd_sdk.models import ErrorKind


class TransportStage(str, Enum):
    """Point of a clamd exchange at which a transport error happened."""

    DIAL = "dial"
    WRITE = "write"
    READ = "read"
    SOURCE = "source"


class ClamdError(Exception):
    """Base exception for all clamd SDK errors."""

    kind: ErrorKind = ErrorKind.INTERNAL


class ClamdTransportError(ClamdError):
    """Raised when a clamd exchange fails below the protocol level.

    Attributes:
        stage: The :class:`TransportStage` that failed.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, stage: TransportStage = TransportStage.READ) -> None:
        super().__init__(message)
        self.stage = stage


class ClamdConnectionError(ClamdTransportError):
    """Raised when the SDK cannot connect to the clamd daemon."""

    def __init__(self, message: str) -> None:
        super().__init__(message, TransportStage.DIAL)


class ClamdWriteError(ClamdTransportError):
    """Raised when sending a command or stream chunk fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, TransportStage.WRITE)


class ClamdReadError(ClamdTransportError):
    """Raised when reading the daemon's reply fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, TransportStage.READ)


class ClamdTimeoutError(ClamdTransportError):
    """Raised when dialing or the exchange deadline expires."""

    kind = ErrorKind.TIMEOUT


class ClamdProtocolError(ClamdError):
    """Raised when clamd replies in a shape the command does not allow.

    For example ``PING`` answered with anything but ``PONG``.
    """

    kind = ErrorKind.PROTOCOL


class ClamdInvalidTargetError(ClamdError, ValueError):
    """Raised for a target that cannot be sent as a single clamd command."""

    kind = ErrorKind.INVALID_TARGET
