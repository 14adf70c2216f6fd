"""Tests for clamd_sdk.models."""

import io
from pathlib import Path

import pytest

from clamd_sdk.exceptions import (
    ClamdConnectionError,
    ClamdProtocolError,
    ClamdTimeoutError,
    TransportStage,
)
from clamd_sdk.models import ErrorKind, OutcomeStatus, ScanOutcome, ScanTarget


class TestScanTarget:
    def test_for_path(self):
        t = ScanTarget.for_path("/srv/a.txt")
        assert t.identifier == "/srv/a.txt"
        assert t.path == "/srv/a.txt"
        assert t.is_stream is False

    def test_for_path_accepts_pathlike(self):
        t = ScanTarget.for_path(Path("/srv/b.txt"))
        assert t.identifier == "/srv/b.txt"

    def test_for_stream(self):
        source = io.BytesIO(b"data")
        t = ScanTarget.for_stream("upload-1", source)
        assert t.identifier == "upload-1"
        assert t.stream is source
        assert t.path is None
        assert t.is_stream is True

    def test_frozen_and_slotted(self):
        t = ScanTarget.for_path("/srv/a.txt")
        assert not hasattr(t, "__dict__")
        with pytest.raises(AttributeError):
            t.path = "/srv/b.txt"  # type: ignore[misc]

    def test_requires_exactly_one_form(self):
        with pytest.raises(ValueError):
            ScanTarget(identifier="x")
        with pytest.raises(ValueError):
            ScanTarget(identifier="x", path="/a", stream=b"a")


class TestScanOutcome:
    def test_clean(self):
        o = ScanOutcome.clean()
        assert o.status is OutcomeStatus.CLEAN
        assert o.is_clean and not o.is_infected and not o.is_error
        assert o.threat_name == ""
        assert o.error_kind is None

    def test_infected(self):
        o = ScanOutcome.infected("Eicar-Test-Signature")
        assert o.is_infected
        assert o.threat_name == "Eicar-Test-Signature"

    def test_error(self):
        o = ScanOutcome.error(ErrorKind.PROTOCOL, "bad reply")
        assert o.is_error
        assert not o.is_clean
        assert o.error_kind is ErrorKind.PROTOCOL
        assert o.message == "bad reply"

    def test_frozen(self):
        o = ScanOutcome.clean()
        with pytest.raises(AttributeError):
            o.status = OutcomeStatus.INFECTED  # type: ignore[misc]

    def test_equality(self):
        assert ScanOutcome.infected("X") == ScanOutcome.infected("X")
        assert ScanOutcome.clean() != ScanOutcome.error(ErrorKind.TRANSPORT, "")


class TestFromException:
    def test_transport(self):
        o = ScanOutcome.from_exception(ClamdConnectionError("refused"))
        assert o.error_kind is ErrorKind.TRANSPORT
        assert o.message == "refused"

    def test_timeout(self):
        o = ScanOutcome.from_exception(ClamdTimeoutError("slow", TransportStage.READ))
        assert o.error_kind is ErrorKind.TIMEOUT

    def test_protocol(self):
        o = ScanOutcome.from_exception(ClamdProtocolError("unexpected response to PING: 'PANG'"))
        assert o.error_kind is ErrorKind.PROTOCOL
        assert "PANG" in o.message

    def test_foreign_exception_is_internal(self):
        o = ScanOutcome.from_exception(RuntimeError("boom"))
        assert o.error_kind is ErrorKind.INTERNAL
        assert o.message == "boom"

    def test_empty_message_uses_type_name(self):
        o = ScanOutcome.from_exception(KeyError())
        assert o.message == "KeyError"
