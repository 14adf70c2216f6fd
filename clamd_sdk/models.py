"""Data models for clamd scan targets and outcomes."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Dict, Iterable, Optional, Union

StreamSource = Union[bytes, bytearray, memoryview, BinaryIO, Iterable[bytes]]


class OutcomeStatus(str, Enum):
    CLEAN = "clean"
    INFECTED = "infected"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Why a target ended in an error outcome."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_TARGET = "invalid_target"
    INTERNAL = "internal"


@dataclass(frozen=True, slots=True)
class ScanTarget:
    """A file path or byte stream submitted for scanning.

    Exactly one of *path* and *stream* is set. *identifier* is only the key
    under which the outcome is reported; it is never sent to the daemon.

    Attributes:
        identifier: Result key (the path, or a caller-supplied label).
        path: Path as seen by the clamd daemon.
        stream: Single-use byte source uploaded with ``INSTREAM``.
    """

    identifier: str
    path: Optional[str] = None
    stream: Optional[StreamSource] = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.stream is None):
            raise ValueError("ScanTarget needs exactly one of path or stream")

    @classmethod
    def for_path(cls, path: Union[str, os.PathLike]) -> ScanTarget:
        path_str = os.fspath(path)
        if isinstance(path_str, bytes):
            path_str = os.fsdecode(path_str)
        return cls(identifier=path_str, path=path_str)

    @classmethod
    def for_stream(cls, label: str, source: StreamSource) -> ScanTarget:
        return cls(identifier=label, stream=source)

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


@dataclass(frozen=True, slots=True)
class ScanOutcome:
    """Result of scanning one target.

    Attributes:
        status: ``clean``, ``infected`` or ``error``.
        threat_name: Signature name reported by clamd; empty unless infected.
        error_kind: :class:`ErrorKind` of an error outcome, else ``None``.
        message: Error description, or the raw reply for malformed responses.
    """

    status: OutcomeStatus
    threat_name: str = ""
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def clean(cls) -> ScanOutcome:
        return cls(status=OutcomeStatus.CLEAN)

    @classmethod
    def infected(cls, threat_name: str) -> ScanOutcome:
        return cls(status=OutcomeStatus.INFECTED, threat_name=threat_name)

    @classmethod
    def error(cls, kind: ErrorKind, message: str) -> ScanOutcome:
        return cls(status=OutcomeStatus.ERROR, error_kind=kind, message=message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> ScanOutcome:
        """Fold an exception raised during one exchange into an error outcome."""
        kind = getattr(exc, "kind", ErrorKind.INTERNAL)
        return cls.error(kind, str(exc) or type(exc).__name__)

    @property
    def is_clean(self) -> bool:
        return self.status is OutcomeStatus.CLEAN

    @property
    def is_infected(self) -> bool:
        return self.status is OutcomeStatus.INFECTED

    @property
    def is_error(self) -> bool:
        return self.status is OutcomeStatus.ERROR


BatchResult = Dict[str, ScanOutcome]
