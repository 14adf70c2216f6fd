"""Tests for clamd_sdk.settings."""

import os

import pytest
from pydantic import ValidationError

from clamd_sdk.settings import ClamdSettings


class TestDefaults:
    def test_defaults(self, monkeypatch):
        for name in [k for k in os.environ if k.upper().startswith("CLAMD_")]:
            monkeypatch.delenv(name)
        settings = ClamdSettings(_env_file=None)
        assert settings.host == "127.0.0.1"
        assert settings.port == 3310
        assert settings.dial_timeout == 10
        assert settings.stream_timeout == 30
        assert settings.chunk_size == 8192
        assert settings.max_concurrency == 16
        assert settings.address == "127.0.0.1:3310"


class TestEnvironment:
    def test_reads_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("CLAMD_HOST", "clamav")
        monkeypatch.setenv("CLAMD_PORT", "3311")
        monkeypatch.setenv("CLAMD_STREAM_TIMEOUT", "5.5")
        monkeypatch.setenv("CLAMD_MAX_CONCURRENCY", "4")
        settings = ClamdSettings(_env_file=None)
        assert settings.address == "clamav:3311"
        assert settings.stream_timeout == 5.5
        assert settings.max_concurrency == 4

    def test_ipv6_address(self):
        assert ClamdSettings(host="::1", _env_file=None).address == "[::1]:3310"


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [{"port": 0}, {"port": 70000}, {"dial_timeout": 0}, {"chunk_size": 0}, {"max_concurrency": 0}],
    )
    def test_rejects(self, kwargs):
        with pytest.raises(ValidationError):
            ClamdSettings(_env_file=None, **kwargs)
