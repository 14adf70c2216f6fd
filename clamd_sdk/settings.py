"""clamd connection settings loaded from the environment via Pydantic Settings.

The SDK never reads these on its own. Callers build a client explicitly::

    from clamd_sdk import ClamdClient, ClamdSettings

    client = ClamdClient.from_settings(ClamdSettings())

Every field maps to a ``CLAMD_``-prefixed environment variable
(``CLAMD_HOST``, ``CLAMD_STREAM_TIMEOUT``, ...). A ``.env`` file in the
working directory is read when present.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from clamd_sdk.protocol import DEFAULT_CHUNK_SIZE
from clamd_sdk.transport import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DIAL_TIMEOUT,
    DEFAULT_PORT,
    DEFAULT_STREAM_TIMEOUT,
)


class ClamdSettings(BaseSettings):
    """Where clamd listens and how long to wait for it."""

    model_config = SettingsConfigDict(
        env_prefix="CLAMD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="127.0.0.1", min_length=1, description="clamd host name or IP")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="clamd TCP port")

    dial_timeout: float = Field(default=DEFAULT_DIAL_TIMEOUT, gt=0, description="Seconds to wait for the TCP connect")
    command_timeout: float = Field(
        default=DEFAULT_COMMAND_TIMEOUT,
        gt=0,
        description="Deadline in seconds for a line command exchange (PING, SCAN, ...)",
    )
    stream_timeout: float = Field(
        default=DEFAULT_STREAM_TIMEOUT,
        gt=0,
        description="Deadline in seconds for a whole INSTREAM upload",
    )

    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0, description="INSTREAM chunk size in bytes")
    max_concurrency: int = Field(default=16, ge=1, description="Upper bound on concurrent batch exchanges")

    @property
    def address(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"
