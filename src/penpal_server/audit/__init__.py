"""Append-only JSONL audit log, one file per match.

Public surface
--------------
- :func:`append_event`     append one committed transition.
- :func:`verify_audit_log` check the last line of a match's log.
- :exc:`AuditWriteError`   raised when a filesystem write fails.
- :class:`AuditVerifyResult`
"""

from penpal_server.audit.writer import (
    AuditVerifyResult,
    AuditWriteError,
    append_event,
    verify_audit_log,
)

__all__ = [
    "AuditVerifyResult",
    "AuditWriteError",
    "append_event",
    "verify_audit_log",
]
