"""Match and mission repository operations.

Every function takes an open cursor so the exchange layer can compose several
repository calls inside one write transaction. Mission writes are guarded by
the row's ``version`` column.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime

from penpal_server.db.errors import DatabaseOperationContext, TransactionConflictError
from penpal_server.db.timestamps import from_db, to_db
from penpal_server.db.types import Match, Mission


def _row_to_match(row: sqlite3.Row) -> Match:
    return Match(
        id=row["id"],
        party_a_id=row["party_a_id"],
        party_a_name=row["party_a_name"],
        party_b_id=row["party_b_id"],
        party_b_name=row["party_b_name"],
        status=row["status"],
        created_at=from_db(row["created_at"]),
        updated_at=from_db(row["updated_at"]),
        activated_at=from_db(row["activated_at"]),
        completed_at=from_db(row["completed_at"]),
        cancelled_at=from_db(row["cancelled_at"]),
        deleted_at=from_db(row["deleted_at"]),
    )


def _row_to_mission(row: sqlite3.Row) -> Mission:
    return Mission(
        match_id=row["match_id"],
        total_steps=int(row["total_steps"]),
        current_step=int(row["current_step"]),
        completed_steps=[bool(flag) for flag in json.loads(row["completed_steps_json"])],
        is_completed=bool(row["is_completed"]),
        is_cancelled=bool(row["is_cancelled"]),
        version=int(row["version"]),
        created_at=from_db(row["created_at"]),
        updated_at=from_db(row["updated_at"]),
        completed_at=from_db(row["completed_at"]),
    )


def insert_match(cursor: sqlite3.Cursor, match: Match) -> None:
    cursor.execute(
        """
        INSERT INTO matches (
            id, party_a_id, party_a_name, party_b_id, party_b_name,
            status, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            match.id,
            match.party_a_id,
            match.party_a_name,
            match.party_b_id,
            match.party_b_name,
            match.status,
            to_db(match.created_at),
            to_db(match.updated_at),
        ),
    )


def insert_mission(cursor: sqlite3.Cursor, mission: Mission) -> None:
    cursor.execute(
        """
        INSERT INTO missions (
            match_id, total_steps, current_step, completed_steps_json,
            is_completed, is_cancelled, version, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            mission.match_id,
            mission.total_steps,
            mission.current_step,
            json.dumps(mission.completed_steps),
            int(mission.is_completed),
            int(mission.is_cancelled),
            mission.version,
            to_db(mission.created_at),
            to_db(mission.updated_at),
        ),
    )


def get_match(cursor: sqlite3.Cursor, match_id: str) -> Match | None:
    cursor.execute("SELECT * FROM matches WHERE id = ?", (match_id,))
    row = cursor.fetchone()
    return _row_to_match(row) if row else None


def get_mission(cursor: sqlite3.Cursor, match_id: str) -> Mission | None:
    cursor.execute("SELECT * FROM missions WHERE match_id = ?", (match_id,))
    row = cursor.fetchone()
    return _row_to_mission(row) if row else None


def update_match_status(
    cursor: sqlite3.Cursor,
    match_id: str,
    *,
    status: str,
    now: datetime,
    soft_delete: bool = False,
) -> None:
    """Move a match to ``status`` and stamp the matching lifecycle column."""
    stamp_column = {
        "active": "activated_at",
        "completed": "completed_at",
        "cancelled": "cancelled_at",
    }.get(status)
    assignments = ["status = ?", "updated_at = ?"]
    params: list[object] = [status, to_db(now)]
    if stamp_column:
        assignments.append(f"{stamp_column} = ?")
        params.append(to_db(now))
    if soft_delete:
        assignments.append("deleted_at = ?")
        params.append(to_db(now))
    params.append(match_id)
    cursor.execute(
        f"UPDATE matches SET {', '.join(assignments)} WHERE id = ?",  # nosec B608
        params,
    )


def save_mission(cursor: sqlite3.Cursor, mission: Mission, *, now: datetime) -> Mission:
    """Persist ``mission`` if nobody else wrote it since it was read.

    Raises:
        TransactionConflictError: The stored ``version`` no longer matches.
    """
    cursor.execute(
        """
        UPDATE missions
        SET current_step = ?,
            completed_steps_json = ?,
            is_completed = ?,
            is_cancelled = ?,
            completed_at = ?,
            updated_at = ?,
            version = version + 1
        WHERE match_id = ? AND version = ?
        """,
        (
            mission.current_step,
            json.dumps(mission.completed_steps),
            int(mission.is_completed),
            int(mission.is_cancelled),
            to_db(mission.completed_at),
            to_db(now),
            mission.match_id,
            mission.version,
        ),
    )
    if int(cursor.rowcount or 0) != 1:
        raise TransactionConflictError(
            context=DatabaseOperationContext(
                operation="missions.save_mission",
                details=f"match_id={mission.match_id!r} stale version={mission.version}",
            )
        )
    mission.version += 1
    mission.updated_at = now
    return mission
