"""JSONL audit log for committed protocol transitions.

Storage
-------
One file per match::

    data/audit/<match_id>.jsonl

Each line is a self-contained envelope:

.. code-block:: json

    {
      "event_id":       "a3f91c9e2d4b5e6f...",
      "timestamp":      "2026-02-27T14:23:01.452345+00:00",
      "match_id":       "m-1f2e...",
      "event_type":     "letter.sent",
      "schema_version": "1.0",
      "data":           {"step_number": 3, "sender_id": "alice"},
      "_checksum":      "sha256:b94f3e..."
    }

``_checksum`` covers every other field serialized with ``sort_keys=True``.

The SQLite database is the source of truth; the audit log is a record of
what happened and in which order. Lines are only appended after the
transaction that produced them has committed.

Concurrency
-----------
``fcntl.flock(LOCK_EX)`` is held around every append, which serialises
writers across threads and processes on one host. ``fcntl`` is POSIX-only.

Failure isolation
-----------------
:exc:`AuditWriteError` is raised on filesystem failure. Callers log a
warning and continue; a lost audit line never undoes a committed transition.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from penpal_server.config import PROJECT_ROOT

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = "1.0"

# Tests monkeypatch this to redirect writes into a temporary directory.
_AUDIT_ROOT: Path = PROJECT_ROOT / "data" / "audit"

# Upper bound on one envelope; only the tail is read when verifying.
_TAIL_CHUNK_BYTES = 16_384


class AuditWriteError(Exception):
    """Raised when an audit append fails due to a filesystem or encoding error."""


@dataclass(frozen=True)
class AuditVerifyResult:
    """Outcome of :func:`verify_audit_log`.

    Attributes:
        status: ``"ok"`` (last line parses and its checksum matches),
            ``"empty"`` (no file or no lines) or ``"corrupt"``.
        last_event_id: ``event_id`` of the last line when status is ``"ok"``.
        error_detail: Reason for a ``"corrupt"`` status.
    """

    status: Literal["ok", "empty", "corrupt"]
    last_event_id: str | None
    error_detail: str | None


def append_event(
    match_id: str,
    event_type: str,
    data: dict[str, Any],
    *,
    timestamp: datetime | None = None,
) -> str:
    """Append one event to the match's audit log.

    Args:
        match_id: Match the event belongs to; also the file stem.
        event_type: Dot-namespaced type, e.g. ``"letter.auto_verified"``.
        data: JSON-serialisable payload.
        timestamp: Instant of the transition; defaults to now.

    Returns:
        The 32-character hex ``event_id``.

    Raises:
        ValueError: ``match_id`` or ``event_type`` is blank.
        AuditWriteError: The write failed.
    """
    if not match_id or not match_id.strip():
        raise ValueError("append_event: match_id must be a non-empty string.")
    if not event_type or not event_type.strip():
        raise ValueError("append_event: event_type must be a non-empty string.")

    event_id = uuid.uuid4().hex
    body: dict[str, Any] = {
        "event_id": event_id,
        "timestamp": (timestamp or datetime.now(UTC)).isoformat(),
        "match_id": match_id,
        "event_type": event_type,
        "schema_version": _SCHEMA_VERSION,
        "data": data,
    }
    envelope = {**body, "_checksum": f"sha256:{_compute_checksum(body)}"}

    path = _audit_path(match_id)
    try:
        line = json.dumps(envelope, ensure_ascii=False, sort_keys=True, default=str)
        _append_line_locked(path, line)
    except (OSError, TypeError, ValueError) as exc:
        raise AuditWriteError(
            f"Failed to write audit event {event_id!r} for match {match_id!r} at {path}: {exc}"
        ) from exc

    logger.debug("audit: appended %r event %s to %s", event_type, event_id, path.name)
    return event_id


def verify_audit_log(match_id: str) -> AuditVerifyResult:
    """Check the last line of a match's audit log."""
    path = _audit_path(match_id)
    if not path.exists():
        return AuditVerifyResult(status="empty", last_event_id=None, error_detail=None)

    last_line = _read_last_nonempty_line(path)
    if last_line is None:
        return AuditVerifyResult(status="empty", last_event_id=None, error_detail=None)

    try:
        envelope = json.loads(last_line)
    except json.JSONDecodeError as exc:
        return AuditVerifyResult(
            status="corrupt", last_event_id=None,
            error_detail=f"Last line is not valid JSON: {exc}",
        )
    if not isinstance(envelope, dict):
        return AuditVerifyResult(
            status="corrupt", last_event_id=None,
            error_detail="Last line deserialised to a non-dict type.",
        )

    recorded = envelope.get("_checksum")
    if not isinstance(recorded, str):
        return AuditVerifyResult(
            status="corrupt", last_event_id=None,
            error_detail="Last line is missing or has a non-string '_checksum' field.",
        )
    body = {k: v for k, v in envelope.items() if k != "_checksum"}
    expected = f"sha256:{_compute_checksum(body)}"
    if recorded != expected:
        return AuditVerifyResult(
            status="corrupt",
            last_event_id=envelope.get("event_id"),
            error_detail=f"Checksum mismatch on last event. Recorded: {recorded!r}. "
            f"Expected: {expected!r}.",
        )

    event_id = envelope.get("event_id")
    if not isinstance(event_id, str) or not event_id:
        return AuditVerifyResult(
            status="corrupt", last_event_id=None,
            error_detail="Last line is missing a valid 'event_id' string.",
        )
    return AuditVerifyResult(status="ok", last_event_id=event_id, error_detail=None)


def _audit_path(match_id: str) -> Path:
    return _AUDIT_ROOT / f"{match_id}.jsonl"


def _compute_checksum(payload: dict) -> str:
    canonical = json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _append_line_locked(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fcntl.flock(fh, fcntl.LOCK_EX)
        try:
            fh.write(line + "\n")
            fh.flush()
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


def _read_last_nonempty_line(path: Path) -> str | None:
    """Return the last non-blank line, reading at most ``_TAIL_CHUNK_BYTES``."""
    try:
        with path.open("rb") as fh:
            fh.seek(0, 2)
            size = fh.tell()
            if size == 0:
                return None
            fh.seek(max(0, size - _TAIL_CHUNK_BYTES))
            chunk = fh.read()
    except OSError:
        return None

    for line in reversed(chunk.decode("utf-8", errors="replace").splitlines()):
        stripped = line.strip()
        if stripped:
            return stripped
    return None
