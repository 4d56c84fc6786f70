"""Cancellation request repository operations."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from penpal_server.db.timestamps import from_db, to_db
from penpal_server.db.types import CancelRequest


def _row_to_request(row: sqlite3.Row) -> CancelRequest:
    return CancelRequest(
        id=int(row["id"]),
        match_id=row["match_id"],
        requester_id=row["requester_id"],
        counterpart_id=row["counterpart_id"],
        reason=row["reason"],
        status=row["status"],
        created_at=from_db(row["created_at"]),
        decided_at=from_db(row["decided_at"]),
        decided_by=row["decided_by"],
    )


def insert_request(
    cursor: sqlite3.Cursor,
    *,
    match_id: str,
    requester_id: str,
    counterpart_id: str,
    reason: str,
    now: datetime,
) -> CancelRequest:
    """Insert a pending request.

    Raises:
        sqlite3.IntegrityError: The match already has a pending request.
    """
    cursor.execute(
        """
        INSERT INTO cancel_requests (
            match_id, requester_id, counterpart_id, reason, status, created_at
        )
        VALUES (?, ?, ?, ?, 'pending', ?)
        """,
        (match_id, requester_id, counterpart_id, reason, to_db(now)),
    )
    request_id = cursor.lastrowid
    if request_id is None:
        raise ValueError("Failed to create cancel request.")
    return CancelRequest(
        id=int(request_id),
        match_id=match_id,
        requester_id=requester_id,
        counterpart_id=counterpart_id,
        reason=reason,
        status="pending",
        created_at=now,
    )


def get_request(cursor: sqlite3.Cursor, request_id: int) -> CancelRequest | None:
    cursor.execute("SELECT * FROM cancel_requests WHERE id = ?", (request_id,))
    row = cursor.fetchone()
    return _row_to_request(row) if row else None


def get_pending_for_match(cursor: sqlite3.Cursor, match_id: str) -> CancelRequest | None:
    cursor.execute(
        "SELECT * FROM cancel_requests WHERE match_id = ? AND status = 'pending'",
        (match_id,),
    )
    row = cursor.fetchone()
    return _row_to_request(row) if row else None


def list_pending(cursor: sqlite3.Cursor) -> list[CancelRequest]:
    cursor.execute(
        "SELECT * FROM cancel_requests WHERE status = 'pending' ORDER BY created_at ASC, id ASC"
    )
    return [_row_to_request(row) for row in cursor.fetchall()]


def decide_request(
    cursor: sqlite3.Cursor,
    request_id: int,
    *,
    status: str,
    decided_by: str,
    now: datetime,
) -> None:
    """Close a pending request; a no-op for rows that are no longer pending."""
    cursor.execute(
        """
        UPDATE cancel_requests
        SET status = ?, decided_at = ?, decided_by = ?
        WHERE id = ? AND status = 'pending'
        """,
        (status, to_db(now), decided_by, request_id),
    )
