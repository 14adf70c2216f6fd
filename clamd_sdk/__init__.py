"""clamd SDK — Python client for the clamd TCP protocol with batch scanning."""

from clamd_sdk.batch import BatchScanner
from clamd_sdk.client import ClamdClient, Scanner
from clamd_sdk.exceptions import (
    ClamdConnectionError,
    ClamdError,
    ClamdInvalidTargetError,
    ClamdProtocolError,
    ClamdReadError,
    ClamdTimeoutError,
    ClamdTransportError,
    ClamdWriteError,
    TransportStage,
)
from clamd_sdk.models import BatchResult, ErrorKind, OutcomeStatus, ScanOutcome, ScanTarget
from clamd_sdk.parser import parse_scan_response
from clamd_sdk.settings import ClamdSettings

__all__ = [
    "ClamdClient",
    "AsyncClamdClient",
    "BatchScanner",
    "Scanner",
    "ClamdSettings",
    "ScanTarget",
    "ScanOutcome",
    "OutcomeStatus",
    "ErrorKind",
    "BatchResult",
    "parse_scan_response",
    "ClamdError",
    "ClamdTransportError",
    "ClamdConnectionError",
    "ClamdWriteError",
    "ClamdReadError",
    "ClamdTimeoutError",
    "ClamdProtocolError",
    "ClamdInvalidTargetError",
    "TransportStage",
]


def __getattr__(name: str) -> object:
    """Lazy-import the asyncio client so importing the package stays cheap."""
    if name == "AsyncClamdClient":
        from clamd_sdk.async_client import AsyncClamdClient

        return AsyncClamdClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
