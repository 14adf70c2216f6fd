"""Synchronous client for the clamd TCP protocol."""

from __future__ import annotations

import io
import logging
import os
import time
from typing import Iterable, Protocol, Union, runtime_checkable

from clamd_sdk import protocol
from clamd_sdk.batch import DEFAULT_MAX_WORKERS, BatchScanner, TargetLike
from clamd_sdk.exceptions import ClamdProtocolError
from clamd_sdk.models import BatchResult, ScanOutcome, StreamSource
from clamd_sdk.parser import parse_scan_response
from clamd_sdk.settings import ClamdSettings
from clamd_sdk.transport import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DIAL_TIMEOUT,
    DEFAULT_STREAM_TIMEOUT,
    Address,
    DaemonConnection,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Scanner(Protocol):
    """The operations callers need from a clamd daemon.

    :class:`ClamdClient` is the production implementation; tests can
    substitute any object with the same methods.
    """

    def scan_file(self, path: str) -> ScanOutcome: ...

    def scan_stream(self, source: StreamSource) -> ScanOutcome: ...

    def scan_all(self, targets: Iterable[TargetLike]) -> BatchResult: ...

    def ping(self) -> None: ...

    def version(self) -> str: ...

    def reload(self) -> None: ...

    def shutdown(self) -> None: ...


class ClamdClient:
    """Synchronous client for a clamd daemon listening on TCP.

    Every call opens a fresh connection, performs one exchange and closes it.
    The client holds only its configuration, so one instance can be shared
    between threads.

    Args:
        address: clamd address as ``"host:port"`` or ``(host, port)``.
        dial_timeout: Seconds to wait for the TCP connect.
        command_timeout: Deadline for line commands (``PING``, ``SCAN``, ...).
        stream_timeout: Deadline for a whole ``INSTREAM`` upload.
        chunk_size: Size of each ``INSTREAM`` chunk in bytes.
        max_concurrency: Default bound on concurrent exchanges in
            :meth:`scan_all`.

    Example::

        client = ClamdClient("127.0.0.1:3310")
        client.ping()
        outcome = client.scan_file("/srv/uploads/report.pdf")
        if outcome.is_infected:
            print(outcome.threat_name)
    """

    def __init__(
        self,
        address: Address = "127.0.0.1:3310",
        dial_timeout: float = DEFAULT_DIAL_TIMEOUT,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
        chunk_size: int = protocol.DEFAULT_CHUNK_SIZE,
        max_concurrency: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._address = address
        self._dial_timeout = dial_timeout
        self._command_timeout = command_timeout
        self._stream_timeout = stream_timeout
        self._chunk_size = chunk_size
        self._max_concurrency = max_concurrency

    @classmethod
    def from_settings(cls, settings: ClamdSettings) -> ClamdClient:
        return cls(
            address=(settings.host, settings.port),
            dial_timeout=settings.dial_timeout,
            command_timeout=settings.command_timeout,
            stream_timeout=settings.stream_timeout,
            chunk_size=settings.chunk_size,
            max_concurrency=settings.max_concurrency,
        )

    @property
    def address(self) -> Address:
        return self._address

    def ping(self) -> None:
        """Check that clamd is alive.

        Raises:
            ClamdTransportError: If the daemon is unreachable or stalls.
            ClamdProtocolError: If the reply is not ``PONG``.
        """
        reply = self._command(protocol.PING)
        if reply != protocol.PONG:
            raise ClamdProtocolError(f"unexpected response to PING: {reply!r}")

    def version(self) -> str:
        """Return the daemon's version string, e.g. ``"ClamAV 1.3.0/27000/..."``."""
        return self._command(protocol.VERSION)

    def reload(self) -> None:
        """Ask clamd to reload its signature database.

        Returns once the request is acknowledged; the reload itself finishes
        asynchronously inside the daemon.

        Raises:
            ClamdProtocolError: If the reply is not ``RELOADING``.
        """
        reply = self._command(protocol.RELOAD)
        if reply != protocol.RELOADING:
            raise ClamdProtocolError(f"unexpected response to RELOAD: {reply!r}")

    def shutdown(self) -> None:
        """Tell clamd to exit. No reply is read."""
        self._command(protocol.SHUTDOWN, expect_reply=False)

    def scan_file(self, path: Union[str, os.PathLike]) -> ScanOutcome:
        """Scan a file by path with the ``SCAN`` command.

        The path is resolved by the daemon, so it must exist on the daemon's
        filesystem.

        Args:
            path: Absolute path as seen by clamd.

        Returns:
            A clean or infected outcome, or a ``malformed_response`` error
            outcome if the reply cannot be parsed.

        Raises:
            ClamdInvalidTargetError: If the path contains a newline or NUL.
            ClamdTransportError: On connection, write or read failure.
            ClamdProtocolError: If the daemon closes without replying.
        """
        path_str = os.fsdecode(os.fspath(path))
        return parse_scan_response(self._command(protocol.scan_command(path_str)))

    def scan_stream(self, source: StreamSource) -> ScanOutcome:
        """Upload *source* with ``INSTREAM`` and scan it.

        *source* is consumed exactly once: raw bytes, a binary file-like
        object, or an iterable of byte chunks.

        Returns:
            A clean or infected outcome, or a ``malformed_response`` error
            outcome if the reply cannot be parsed.

        Raises:
            ClamdTransportError: On connection, write, read or source failure.
            ClamdProtocolError: If the daemon closes without replying.
        """
        start = time.monotonic()
        with DaemonConnection.open(self._address, self._dial_timeout, self._stream_timeout) as conn:
            reply = protocol.send_stream(conn, source, self._chunk_size)
        logger.debug("INSTREAM to %s answered in %.3fs: %s", self._address, time.monotonic() - start, reply)
        return parse_scan_response(reply)

    def scan_bytes(self, data: bytes) -> ScanOutcome:
        """Scan in-memory bytes via :meth:`scan_stream`."""
        return self.scan_stream(io.BytesIO(data))

    def scan_all(self, targets: Iterable[TargetLike], max_workers: int | None = None) -> BatchResult:
        """Scan many paths and streams concurrently.

        Args:
            targets: :class:`~clamd_sdk.models.ScanTarget` objects or paths.
            max_workers: Overrides the client's ``max_concurrency``.

        Returns:
            A mapping of target identifier to outcome with one entry per
            distinct identifier. Failures are reported as error outcomes.
        """
        batch = BatchScanner(self, self._max_concurrency if max_workers is None else max_workers)
        return batch.scan_all(targets)

    def _command(self, command: str, *, expect_reply: bool = True) -> str:
        protocol.encode_command(command)  # reject multi-line commands before dialing
        start = time.monotonic()
        with DaemonConnection.open(self._address, self._dial_timeout, self._command_timeout) as conn:
            reply = protocol.send_line_command(conn, command, expect_reply=expect_reply)
        logger.debug("%s to %s answered in %.3fs: %s", command, self._address, time.monotonic() - start, reply)
        return reply
