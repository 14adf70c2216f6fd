"""Concurrent scanning of many targets with per-target failure isolation."""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Iterable, Protocol, Union

from clamd_sdk.exceptions import ClamdError
from clamd_sdk.models import BatchResult, ErrorKind, ScanOutcome, ScanTarget, StreamSource

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 16

TargetLike = Union[ScanTarget, str, os.PathLike]


class SingleTargetScanner(Protocol):
    def scan_file(self, path: str) -> ScanOutcome: ...

    def scan_stream(self, source: StreamSource) -> ScanOutcome: ...


def as_target(target: TargetLike) -> ScanTarget:
    if isinstance(target, ScanTarget):
        return target
    return ScanTarget.for_path(target)


class BatchScanner:
    """Scan many targets at once, one clamd exchange per target.

    Exchanges run on a thread pool bounded by *max_workers*. A failure in one
    exchange becomes that target's error outcome and never touches the others.
    Outcomes are written to the result map by the calling thread only.

    Args:
        scanner: Anything with ``scan_file`` and ``scan_stream``, normally a
            :class:`~clamd_sdk.client.ClamdClient`.
        max_workers: Maximum number of exchanges in flight.

    Example::

        batch = BatchScanner(ClamdClient("127.0.0.1:3310"), max_workers=8)
        results = batch.scan_all(["/srv/a.pdf", "/srv/b.zip"])
    """

    def __init__(self, scanner: SingleTargetScanner, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._scanner = scanner
        self._max_workers = max_workers

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def scan_all(self, targets: Iterable[TargetLike]) -> BatchResult:
        """Scan every target and return one outcome per identifier.

        Blocks until all exchanges have finished. A duplicate identifier
        keeps whichever outcome completes last.
        """
        pending = [as_target(t) for t in targets]
        results: BatchResult = {}
        if not pending:
            return results

        workers = min(self._max_workers, len(pending))
        logger.debug("scanning %d targets with %d workers", len(pending), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="clamd-scan") as pool:
            futures: dict[Future[ScanOutcome], ScanTarget] = {
                pool.submit(self._scan_one, target): target for target in pending
            }
            for future in as_completed(futures):
                results[futures[future].identifier] = future.result()
        return results

    def _scan_one(self, target: ScanTarget) -> ScanOutcome:
        try:
            if target.stream is not None:
                return self._scanner.scan_stream(target.stream)
            return self._scanner.scan_file(target.path or "")
        except ClamdError as exc:
            logger.warning("scan of %s failed: %s", target.identifier, exc)
            return ScanOutcome.from_exception(exc)
        except Exception as exc:
            logger.exception("unexpected error scanning %s", target.identifier)
            return ScanOutcome.error(ErrorKind.INTERNAL, f"{type(exc).__name__}: {exc}")
