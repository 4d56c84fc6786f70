"""Administrator review items and administrator identities."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from penpal_server.db.timestamps import from_db, to_db
from penpal_server.db.types import AdminFlag


def _row_to_flag(row: sqlite3.Row) -> AdminFlag:
    step = row["step_number"]
    return AdminFlag(
        id=int(row["id"]),
        kind=row["kind"],
        match_id=row["match_id"],
        step_number=int(step) if step is not None else None,
        user_id=row["user_id"],
        priority=row["priority"],
        status=row["status"],
        message=row["message"],
        created_at=from_db(row["created_at"]),
        resolved_at=from_db(row["resolved_at"]),
        resolved_by=row["resolved_by"],
    )


def insert_flag(
    cursor: sqlite3.Cursor,
    *,
    kind: str,
    match_id: str,
    user_id: str,
    priority: str,
    message: str,
    now: datetime,
    step_number: int | None = None,
) -> AdminFlag:
    cursor.execute(
        """
        INSERT INTO admin_flags (
            kind, match_id, step_number, user_id, priority, status, message, created_at
        )
        VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)
        """,
        (kind, match_id, step_number, user_id, priority, message, to_db(now)),
    )
    flag_id = cursor.lastrowid
    if flag_id is None:
        raise ValueError("Failed to create admin flag.")
    return AdminFlag(
        id=int(flag_id),
        kind=kind,
        match_id=match_id,
        step_number=step_number,
        user_id=user_id,
        priority=priority,
        status="pending",
        message=message,
        created_at=now,
    )


def resolve_flags(
    cursor: sqlite3.Cursor,
    *,
    match_id: str,
    kinds: tuple[str, ...],
    resolved_by: str,
    now: datetime,
    step_number: int | None = None,
) -> int:
    """Resolve pending flags of ``kinds`` on a match (optionally one step).

    Returns:
        Number of flags resolved.
    """
    placeholders = ", ".join("?" for _ in kinds)
    query = (
        "UPDATE admin_flags SET status = 'resolved', resolved_at = ?, resolved_by = ? "
        f"WHERE match_id = ? AND status = 'pending' AND kind IN ({placeholders})"  # nosec B608
    )
    params: list[object] = [to_db(now), resolved_by, match_id, *kinds]
    if step_number is not None:
        query += " AND step_number = ?"
        params.append(step_number)
    cursor.execute(query, params)
    return int(cursor.rowcount or 0)


def list_flags(cursor: sqlite3.Cursor, status: str | None = None) -> list[AdminFlag]:
    if status is None:
        cursor.execute("SELECT * FROM admin_flags ORDER BY created_at ASC, id ASC")
    else:
        cursor.execute(
            "SELECT * FROM admin_flags WHERE status = ? ORDER BY created_at ASC, id ASC",
            (status,),
        )
    return [_row_to_flag(row) for row in cursor.fetchall()]


def is_administrator(cursor: sqlite3.Cursor, admin_id: str) -> bool:
    cursor.execute("SELECT 1 FROM administrators WHERE admin_id = ?", (admin_id,))
    return cursor.fetchone() is not None


def add_administrator(cursor: sqlite3.Cursor, admin_id: str, *, now: datetime) -> bool:
    """Register ``admin_id``; returns False if it was already present."""
    cursor.execute(
        "INSERT OR IGNORE INTO administrators (admin_id, created_at) VALUES (?, ?)",
        (admin_id, to_db(now)),
    )
    return int(cursor.rowcount or 0) == 1
