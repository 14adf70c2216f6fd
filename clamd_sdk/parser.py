"""Parser for clamd scan replies (``<subject>: OK`` / ``<subject>: <name> FOUND``)."""

from __future__ import annotations

from clamd_sdk.models import ErrorKind, ScanOutcome

OK_VERDICT = "OK"
FOUND_SUFFIX = "FOUND"


def parse_scan_response(raw: str) -> ScanOutcome:
    """Turn one clamd scan reply into a :class:`ScanOutcome`.

    The subject is split off at the last colon so that paths containing
    colons still parse. Any reply that is not exactly ``OK`` or
    ``<threat-name> FOUND`` becomes a ``malformed_response`` error; this
    function never raises and never reports an unrecognised reply as clean.

    Args:
        raw: Reply line as returned by the daemon.

    Returns:
        A clean, infected or ``malformed_response`` error outcome.
    """
    line = raw.rstrip("\0").strip()
    _subject, sep, verdict = line.rpartition(":")
    if not sep:
        return ScanOutcome.error(ErrorKind.MALFORMED_RESPONSE, raw)

    verdict = verdict.strip()
    if verdict == OK_VERDICT:
        return ScanOutcome.clean()

    tokens = verdict.rsplit(None, 1)
    if len(tokens) == 2 and tokens[1] == FOUND_SUFFIX:
        return ScanOutcome.infected(tokens[0].strip())
    return ScanOutcome.error(ErrorKind.MALFORMED_RESPONSE, raw)
