"""Single-use TCP connections to a clamd daemon."""

from __future__ import annotations

import logging
import socket
import time
from typing import Tuple, Union

from clamd_sdk.exceptions import (
    ClamdConnectionError,
    ClamdProtocolError,
    ClamdReadError,
    ClamdTimeoutError,
    ClamdWriteError,
    TransportStage,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3310
DEFAULT_DIAL_TIMEOUT = 10.0
DEFAULT_COMMAND_TIMEOUT = 10.0
DEFAULT_STREAM_TIMEOUT = 30.0
MAX_RESPONSE_BYTES = 64 * 1024

_RECV_SIZE = 4096

Address = Union[str, Tuple[str, int]]


def parse_address(address: Address) -> tuple[str, int]:
    """Normalise *address* into a ``(host, port)`` tuple.

    Accepts ``(host, port)``, ``"host:port"``, ``"[::1]:port"`` or a bare
    host, in which case the clamd default port is used.

    Raises:
        ValueError: If the port is not an integer in ``1..65535``.
    """
    if isinstance(address, tuple):
        host, port = address
    else:
        text = address.strip()
        if text.startswith("["):
            host, _, rest = text[1:].partition("]")
            port = rest[1:] if rest.startswith(":") else DEFAULT_PORT
        elif text.count(":") == 1:
            host, _, port = text.partition(":")
        else:
            # bare hostname, IPv4 or unbracketed IPv6
            host, port = text, DEFAULT_PORT
    try:
        port_num = int(port)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid clamd port in {address!r}") from exc
    if not 0 < port_num < 65536:
        raise ValueError(f"clamd port out of range in {address!r}")
    return host or "127.0.0.1", port_num


class DaemonConnection:
    """One TCP connection, used for exactly one clamd exchange.

    Every socket operation after the dial is bounded by a single absolute
    deadline, so a stalled daemon cannot hold the caller longer than
    *timeout* seconds in total. The connection is closed on every exit path
    when used as a context manager.

    Example::

        with DaemonConnection.open("127.0.0.1:3310") as conn:
            conn.sendall(b"PING\\n")
            reply = conn.read_until(b"\\n")
    """

    def __init__(self, sock: socket.socket, address: tuple[str, int], timeout: float) -> None:
        self._sock: socket.socket | None = sock
        self._address = address
        self._deadline = time.monotonic() + timeout
        self._buffer = bytearray()

    @classmethod
    def open(
        cls,
        address: Address,
        dial_timeout: float = DEFAULT_DIAL_TIMEOUT,
        timeout: float = DEFAULT_STREAM_TIMEOUT,
    ) -> DaemonConnection:
        """Dial clamd at *address*.

        Raises:
            ClamdTimeoutError: If the dial does not complete in *dial_timeout*.
            ClamdConnectionError: If the daemon cannot be reached.
        """
        host, port = parse_address(address)
        try:
            sock = socket.create_connection((host, port), timeout=dial_timeout)
        except socket.timeout as exc:
            raise ClamdTimeoutError(
                f"timed out connecting to clamd at {host}:{port}", TransportStage.DIAL
            ) from exc
        except OSError as exc:
            raise ClamdConnectionError(f"failed to connect to clamd at {host}:{port}: {exc}") from exc
        logger.debug("connected to clamd at %s:%d", host, port)
        return cls(sock, (host, port), timeout)

    @property
    def address(self) -> tuple[str, int]:
        return self._address

    @property
    def closed(self) -> bool:
        return self._sock is None

    def sendall(self, data: bytes) -> None:
        """Write all of *data*.

        Raises:
            ClamdTimeoutError: If the exchange deadline expires.
            ClamdWriteError: On any other socket error.
        """
        sock = self._arm(TransportStage.WRITE)
        try:
            sock.sendall(data)
        except socket.timeout as exc:
            raise ClamdTimeoutError("timed out writing to clamd", TransportStage.WRITE) from exc
        except OSError as exc:
            raise ClamdWriteError(f"failed to write to clamd: {exc}") from exc

    def read_until(self, delimiter: bytes, max_bytes: int = MAX_RESPONSE_BYTES) -> bytes:
        """Read up to and including *delimiter*, or until the daemon closes.

        Returns whatever arrived before the close when no delimiter was seen,
        which may be ``b""``.

        Raises:
            ClamdTimeoutError: If the exchange deadline expires.
            ClamdReadError: On any other socket error.
            ClamdProtocolError: If *max_bytes* arrive without a delimiter.
        """
        while True:
            idx = self._buffer.find(delimiter)
            if idx != -1:
                end = idx + len(delimiter)
                data = bytes(self._buffer[:end])
                del self._buffer[:end]
                return data
            if len(self._buffer) > max_bytes:
                raise ClamdProtocolError(f"clamd response exceeds {max_bytes} bytes")
            sock = self._arm(TransportStage.READ)
            try:
                chunk = sock.recv(min(_RECV_SIZE, max_bytes + 1 - len(self._buffer)))
            except socket.timeout as exc:
                raise ClamdTimeoutError("timed out reading from clamd", TransportStage.READ) from exc
            except OSError as exc:
                raise ClamdReadError(f"failed to read from clamd: {exc}") from exc
            if not chunk:
                data = bytes(self._buffer)
                self._buffer.clear()
                return data
            self._buffer.extend(chunk)

    def close(self) -> None:
        if self._sock is None:
            return
        sock, self._sock = self._sock, None
        try:
            sock.close()
        except OSError:
            logger.debug("error closing clamd socket", exc_info=True)

    def __enter__(self) -> DaemonConnection:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _arm(self, stage: TransportStage) -> socket.socket:
        """Apply the time left before the deadline to the socket."""
        if self._sock is None:
            if stage is TransportStage.READ:
                raise ClamdReadError("connection to clamd is closed")
            raise ClamdWriteError("connection to clamd is closed")
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise ClamdTimeoutError("clamd exchange deadline expired", stage)
        self._sock.settimeout(remaining)
        return self._sock
