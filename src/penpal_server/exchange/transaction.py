"""Unit-of-work object handed to every exchange component.

An :class:`ExchangeTransaction` wraps the cursor of one open SQLite write
transaction together with the instant the operation is evaluated at. Side
effects that must not happen unless the transaction commits (notifications,
audit lines) are queued on it and flushed by the service afterwards.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class Notification:
    user_id: str
    type: str
    payload: dict[str, Any]


@dataclass(frozen=True, slots=True)
class AuditEvent:
    match_id: str
    event_type: str
    data: dict[str, Any]


@dataclass(slots=True)
class ExchangeTransaction:
    cursor: sqlite3.Cursor
    now: datetime
    notifications: list[Notification] = field(default_factory=list)
    audit_events: list[AuditEvent] = field(default_factory=list)

    def notify(self, user_id: str, type: str, **payload: Any) -> None:
        self.notifications.append(Notification(user_id=user_id, type=type, payload=payload))

    def record(self, match_id: str, event_type: str, **data: Any) -> None:
        self.audit_events.append(AuditEvent(match_id=match_id, event_type=event_type, data=data))
