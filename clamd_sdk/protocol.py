"""Encoding of clamd line commands and the ``INSTREAM`` chunked upload."""

from __future__ import annotations

import struct
from typing import Iterator

from clamd_sdk.exceptions import (
    ClamdInvalidTargetError,
    ClamdProtocolError,
    ClamdTransportError,
    TransportStage,
)
from clamd_sdk.models import StreamSource
from clamd_sdk.transport import DaemonConnection

PING = "PING"
VERSION = "VERSION"
RELOAD = "RELOAD"
SHUTDOWN = "SHUTDOWN"
SCAN = "SCAN"

PONG = "PONG"
RELOADING = "RELOADING"

INSTREAM_COMMAND = b"zINSTREAM\0"
END_OF_STREAM = struct.pack("!I", 0)
DEFAULT_CHUNK_SIZE = 8192

_LENGTH = struct.Struct("!I")


def encode_command(command: str) -> bytes:
    """Return the newline-terminated wire form of *command*.

    Raises:
        ClamdInvalidTargetError: If *command* contains a newline or NUL.
    """
    if "\n" in command or "\0" in command:
        raise ClamdInvalidTargetError(f"clamd command must be a single line: {command!r}")
    return (command + "\n").encode("utf-8", "surrogateescape")


def scan_command(path: str) -> str:
    return f"{SCAN} {path}"


def decode_response(raw: bytes) -> str:
    return raw.decode("utf-8", "replace").rstrip("\0 \t\r\n")


def send_line_command(conn: DaemonConnection, command: str, *, expect_reply: bool = True) -> str:
    """Send *command* and return the single reply line.

    A final line cut off by the daemon closing the connection is accepted.

    Args:
        conn: Open connection, used for this exchange only.
        command: Command text without the trailing newline.
        expect_reply: When false nothing is read and ``""`` is returned.

    Raises:
        ClamdProtocolError: If the daemon closes without replying.
    """
    conn.sendall(encode_command(command))
    if not expect_reply:
        return ""
    line = decode_response(conn.read_until(b"\n"))
    if not line:
        raise ClamdProtocolError(f"empty response from clamd to {command.split(' ', 1)[0]}")
    return line


def iter_source_chunks(source: StreamSource, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the non-empty chunks of *source*, consuming it once.

    Raises:
        ClamdTransportError: If reading from *source* fails.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    try:
        if isinstance(source, (bytes, bytearray, memoryview)):
            view = memoryview(source).cast("B")
            for offset in range(0, len(view), chunk_size):
                yield bytes(view[offset : offset + chunk_size])
        elif hasattr(source, "read"):
            while True:
                chunk = source.read(chunk_size)  # type: ignore[union-attr]
                if not chunk:
                    break
                yield bytes(chunk)
        else:
            for chunk in source:
                if chunk:
                    yield bytes(chunk)
    except (OSError, ValueError) as exc:
        raise ClamdTransportError(f"failed to read scan source: {exc}", TransportStage.SOURCE) from exc


def frame_chunk(chunk: bytes) -> bytes:
    return _LENGTH.pack(len(chunk)) + chunk


def iter_frames(source: StreamSource, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield length-prefixed frames for *source* followed by one terminator."""
    for chunk in iter_source_chunks(source, chunk_size):
        yield frame_chunk(chunk)
    yield END_OF_STREAM


def send_stream(
    conn: DaemonConnection,
    source: StreamSource,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> str:
    """Upload *source* with ``zINSTREAM`` and return the daemon's reply.

    The zero-length terminator is always written, even for an empty source;
    clamd waits for it before scanning.

    Raises:
        ClamdTransportError: On socket or source read failures.
        ClamdProtocolError: If the daemon closes without replying.
    """
    conn.sendall(INSTREAM_COMMAND)
    for frame in iter_frames(source, chunk_size):
        conn.sendall(frame)
    reply = decode_response(conn.read_until(b"\0"))
    if not reply:
        raise ClamdProtocolError("empty response from clamd to INSTREAM")
    return reply
