"""Shared test fixtures, including an in-process fake clamd daemon."""

from __future__ import annotations

import socket
import struct
import threading
from typing import Callable, Iterator

import pytest

EICAR = b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*"
SIGNATURE = "Eicar-Test-Signature"
VERSION = "ClamAV 1.3.0/27000/Tue Oct 15 08:00:00 2024"


def _recv_exact(conn: socket.socket, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = conn.recv(n - len(buf))
        if not chunk:
            raise EOFError("connection closed")
        buf.extend(chunk)
    return bytes(buf)


def _recv_until(conn: socket.socket, delims: tuple[bytes, ...]) -> bytes:
    buf = bytearray()
    while True:
        b = conn.recv(1)
        if not b:
            return bytes(buf)
        buf.extend(b)
        if bytes(b) in delims:
            return bytes(buf)


class FakeClamd:
    """Threaded TCP server speaking the clamd line and INSTREAM protocols.

    Path scans report ``FOUND`` when the path contains ``eicar``, stream
    scans when the payload contains ``EICAR``. ``replies`` overrides the
    reply to an exact command (without newline). With ``silent=True`` every
    connection is accepted and never answered.
    """

    def __init__(
        self,
        *,
        silent: bool = False,
        replies: dict[str, bytes] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.silent = silent
        self.replies = replies or {}
        self.delay = delay
        self.commands: list[str] = []
        self.streams: list[bytes] = []
        self.chunk_lengths: list[list[int]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server.bind(("127.0.0.1", 0))
        self._server.listen(128)
        self._server.settimeout(0.1)
        self.host, self.port = self._server.getsockname()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def start(self) -> FakeClamd:
        t = threading.Thread(target=self._serve, daemon=True)
        t.start()
        self._threads.append(t)
        return self

    def stop(self) -> None:
        self._stop.set()
        for t in list(self._threads):
            t.join(timeout=2)
        self._server.close()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            t = threading.Thread(target=self._handle, args=(conn,), daemon=True)
            t.start()
            self._threads.append(t)

    def _handle(self, conn: socket.socket) -> None:
        with conn:
            if self.silent:
                self._stop.wait()
                return
            try:
                conn.settimeout(5)
                raw = _recv_until(conn, (b"\n", b"\0"))
                command = raw.rstrip(b"\n\0").decode("utf-8", "surrogateescape")
                self.commands.append(command)
                # an exchange counts as active from its command until just before its reply
                with self._lock:
                    self.active += 1
                    self.max_active = max(self.max_active, self.active)
                try:
                    if command == "zINSTREAM":
                        reply = self._instream(conn)
                    else:
                        reply = self._reply(command)
                    if self.delay:
                        self._stop.wait(self.delay)
                finally:
                    with self._lock:
                        self.active -= 1
                if reply is not None:
                    conn.sendall(reply)
            except (EOFError, OSError):
                pass

    def _instream(self, conn: socket.socket) -> bytes:
        data = bytearray()
        lengths: list[int] = []
        while True:
            (n,) = struct.unpack("!I", _recv_exact(conn, 4))
            lengths.append(n)
            if n == 0:
                break
            data.extend(_recv_exact(conn, n))
        self.streams.append(bytes(data))
        self.chunk_lengths.append(lengths)
        if "zINSTREAM" in self.replies:
            return self.replies["zINSTREAM"]
        if b"EICAR" in data:
            return f"stream: {SIGNATURE} FOUND\0".encode()
        return b"stream: OK\0"

    def _reply(self, command: str) -> bytes | None:
        if command in self.replies:
            return self.replies[command]
        if command == "PING":
            return b"PONG\n"
        if command == "VERSION":
            return f"{VERSION}\n".encode()
        if command == "RELOAD":
            return b"RELOADING\n"
        if command == "SHUTDOWN":
            return None
        if command.startswith("SCAN "):
            path = command[len("SCAN ") :]
            if "eicar" in path.lower():
                return f"{path}: {SIGNATURE} FOUND\n".encode("utf-8", "surrogateescape")
            return f"{path}: OK\n".encode("utf-8", "surrogateescape")
        return b"UNKNOWN COMMAND\n"


@pytest.fixture()
def sample_bytes() -> bytes:
    return b"Hello, clamd!"


@pytest.fixture()
def eicar_bytes() -> bytes:
    """EICAR anti-malware test string (safe; every AV recognises it)."""
    return EICAR


@pytest.fixture()
def make_fake_clamd() -> Iterator[Callable[..., FakeClamd]]:
    servers: list[FakeClamd] = []

    def factory(**kwargs: object) -> FakeClamd:
        server = FakeClamd(**kwargs).start()  # type: ignore[arg-type]
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()


@pytest.fixture()
def fake_clamd(make_fake_clamd: Callable[..., FakeClamd]) -> FakeClamd:
    return make_fake_clamd()


@pytest.fixture()
def closed_address() -> str:
    """An address on which nothing is listening."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"127.0.0.1:{port}"
