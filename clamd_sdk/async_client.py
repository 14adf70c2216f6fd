"""Asynchronous client for the clamd TCP protocol (``asyncio`` streams)."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterable, AsyncIterator
from typing import Awaitable, Callable, Iterable, Union

from clamd_sdk import protocol
from clamd_sdk.batch import DEFAULT_MAX_WORKERS, TargetLike, as_target
from clamd_sdk.exceptions import (
    ClamdConnectionError,
    ClamdError,
    ClamdProtocolError,
    ClamdReadError,
    ClamdTimeoutError,
    ClamdTransportError,
    ClamdWriteError,
    TransportStage,
)
from clamd_sdk.models import BatchResult, ErrorKind, ScanOutcome, ScanTarget, StreamSource
from clamd_sdk.parser import parse_scan_response
from clamd_sdk.settings import ClamdSettings
from clamd_sdk.transport import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DIAL_TIMEOUT,
    DEFAULT_STREAM_TIMEOUT,
    MAX_RESPONSE_BYTES,
    Address,
    parse_address,
)

logger = logging.getLogger(__name__)

AsyncStreamSource = Union[StreamSource, AsyncIterable[bytes]]


class _Exchange:
    """Reader/writer pair for one exchange, tracking the current stage."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.reader = reader
        self.writer = writer
        self.stage = TransportStage.WRITE

    async def write(self, data: bytes) -> None:
        self.stage = TransportStage.WRITE
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as exc:
            raise ClamdWriteError(f"failed to write to clamd: {exc}") from exc

    async def read_until(self, delimiter: bytes) -> bytes:
        self.stage = TransportStage.READ
        try:
            return await self.reader.readuntil(delimiter)
        except asyncio.IncompleteReadError as exc:
            return exc.partial
        except asyncio.LimitOverrunError as exc:
            raise ClamdProtocolError(f"clamd response exceeds {MAX_RESPONSE_BYTES} bytes") from exc
        except OSError as exc:
            raise ClamdReadError(f"failed to read from clamd: {exc}") from exc

    async def close(self, abort: bool = False) -> None:
        # abort drops unsent data; a plain close waits for the peer to take it
        if abort:
            self.writer.transport.abort()
        else:
            self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError:
            logger.debug("error closing clamd connection", exc_info=True)


class AsyncClamdClient:
    """Asynchronous client for a clamd daemon listening on TCP.

    Same operations and semantics as :class:`~clamd_sdk.client.ClamdClient`,
    as coroutines. Each call opens its own connection; the whole exchange
    after the dial is bounded by one deadline.

    Example::

        client = AsyncClamdClient("127.0.0.1:3310")
        await client.ping()
        results = await client.scan_all(["/srv/a.pdf", "/srv/b.zip"])
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
        self._host, self._port = parse_address(address)
        self._dial_timeout = dial_timeout
        self._command_timeout = command_timeout
        self._stream_timeout = stream_timeout
        self._chunk_size = chunk_size
        self._max_concurrency = max_concurrency

    @classmethod
    def from_settings(cls, settings: ClamdSettings) -> AsyncClamdClient:
        return cls(
            address=(settings.host, settings.port),
            dial_timeout=settings.dial_timeout,
            command_timeout=settings.command_timeout,
            stream_timeout=settings.stream_timeout,
            chunk_size=settings.chunk_size,
            max_concurrency=settings.max_concurrency,
        )

    async def ping(self) -> None:
        """Check that clamd is alive; raises ``ClamdProtocolError`` unless ``PONG``."""
        reply = await self._command(protocol.PING)
        if reply != protocol.PONG:
            raise ClamdProtocolError(f"unexpected response to PING: {reply!r}")

    async def version(self) -> str:
        return await self._command(protocol.VERSION)

    async def reload(self) -> None:
        """Request a signature reload; returns on acknowledgement."""
        reply = await self._command(protocol.RELOAD)
        if reply != protocol.RELOADING:
            raise ClamdProtocolError(f"unexpected response to RELOAD: {reply!r}")

    async def shutdown(self) -> None:
        await self._command(protocol.SHUTDOWN, expect_reply=False)

    async def scan_file(self, path: Union[str, os.PathLike]) -> ScanOutcome:
        """Scan a file on the daemon's filesystem with ``SCAN``."""
        command = protocol.scan_command(os.fsdecode(os.fspath(path)))
        return parse_scan_response(await self._command(command))

    async def scan_stream(self, source: AsyncStreamSource) -> ScanOutcome:
        """Upload *source* with ``INSTREAM`` and scan it.

        Accepts everything :meth:`ClamdClient.scan_stream` does plus async
        iterables of bytes. Synchronous file objects and iterables are read
        in a worker thread so a slow source never stalls the event loop.
        """

        async def upload(exchange: _Exchange) -> str:
            await exchange.write(protocol.INSTREAM_COMMAND)
            if isinstance(source, AsyncIterable):
                async for frame in _aiter_frames(source):
                    await exchange.write(frame)
            elif isinstance(source, (bytes, bytearray, memoryview)):
                for frame in protocol.iter_frames(source, self._chunk_size):
                    await exchange.write(frame)
            else:
                async for frame in _threaded_frames(source, self._chunk_size):
                    await exchange.write(frame)
            reply = protocol.decode_response(await exchange.read_until(b"\0"))
            if not reply:
                raise ClamdProtocolError("empty response from clamd to INSTREAM")
            return reply

        return parse_scan_response(await self._exchange(upload, self._stream_timeout))

    async def scan_bytes(self, data: bytes) -> ScanOutcome:
        return await self.scan_stream(data)

    async def scan_all(self, targets: Iterable[TargetLike], max_workers: int | None = None) -> BatchResult:
        """Scan many targets concurrently, bounded by a semaphore.

        Each failure becomes that target's error outcome. Returns after every
        target has an outcome.
        """
        limit = self._max_concurrency if max_workers is None else max_workers
        if limit < 1:
            raise ValueError("max_workers must be at least 1")
        pending = [as_target(t) for t in targets]
        if not pending:
            return {}
        semaphore = asyncio.Semaphore(limit)

        async def run(target: ScanTarget) -> ScanOutcome:
            async with semaphore:
                try:
                    if target.stream is not None:
                        return await self.scan_stream(target.stream)
                    return await self.scan_file(target.path or "")
                except ClamdError as exc:
                    logger.warning("scan of %s failed: %s", target.identifier, exc)
                    return ScanOutcome.from_exception(exc)
                except Exception as exc:
                    logger.exception("unexpected error scanning %s", target.identifier)
                    return ScanOutcome.error(ErrorKind.INTERNAL, f"{type(exc).__name__}: {exc}")

        outcomes = await asyncio.gather(*(run(t) for t in pending))
        return {target.identifier: outcome for target, outcome in zip(pending, outcomes)}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _command(self, command: str, *, expect_reply: bool = True) -> str:
        payload = protocol.encode_command(command)

        async def send(exchange: _Exchange) -> str:
            await exchange.write(payload)
            if not expect_reply:
                return ""
            line = protocol.decode_response(await exchange.read_until(b"\n"))
            if not line:
                raise ClamdProtocolError(f"empty response from clamd to {command.split(' ', 1)[0]}")
            return line

        return await self._exchange(send, self._command_timeout)

    async def _exchange(self, body: Callable[[_Exchange], Awaitable[str]], timeout: float) -> str:
        exchange = await self._open()
        completed = False
        try:
            reply = await asyncio.wait_for(body(exchange), timeout)
            completed = True
            return reply
        except asyncio.TimeoutError as exc:
            raise ClamdTimeoutError(f"clamd exchange exceeded {timeout}s", exchange.stage) from exc
        finally:
            await exchange.close(abort=not completed)

    async def _open(self) -> _Exchange:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port, limit=MAX_RESPONSE_BYTES),
                self._dial_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ClamdTimeoutError(
                f"timed out connecting to clamd at {self._host}:{self._port}", TransportStage.DIAL
            ) from exc
        except OSError as exc:
            raise ClamdConnectionError(
                f"failed to connect to clamd at {self._host}:{self._port}: {exc}"
            ) from exc
        return _Exchange(reader, writer)


async def _aiter_frames(source: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    try:
        async for chunk in source:
            if chunk:
                yield protocol.frame_chunk(bytes(chunk))
    except (OSError, ValueError) as exc:
        raise ClamdTransportError(f"failed to read scan source: {exc}", TransportStage.SOURCE) from exc
    yield protocol.END_OF_STREAM


async def _threaded_frames(source: StreamSource, chunk_size: int) -> AsyncIterator[bytes]:
    frames = protocol.iter_frames(source, chunk_size)
    while True:
        frame = await asyncio.to_thread(next, frames, None)
        if frame is None:
            return
        yield frame
