"""Reputation record and penalty repository operations.

Counters are only ever changed with additive SQL (``x = x + 1``) and
penalties are only ever inserted, so concurrent outcomes from unrelated
matches for the same user commute. The score itself is never stored; it is
derived from ``SUM(points_deducted)`` at read time.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from penpal_server.db.timestamps import from_db, to_db
from penpal_server.db.types import PenaltyEntry, ReputationRecord

MAX_SCORE = 100
MIN_SCORE = 0

# Counter columns callers may bump through increment_counters().
_COUNTER_COLUMNS = frozenset(
    {
        "total_matches",
        "completed_matches",
        "self_cancelled_count",
        "partner_cancelled_count",
    }
)


def compute_score(total_points_deducted: int) -> int:
    """Clamp ``100 - total_points_deducted`` into ``[0, 100]``."""
    return max(MIN_SCORE, min(MAX_SCORE, MAX_SCORE - total_points_deducted))


def _row_to_penalty(row: sqlite3.Row) -> PenaltyEntry:
    return PenaltyEntry(
        id=int(row["id"]),
        user_id=row["user_id"],
        kind=row["kind"],
        severity=row["severity"],
        points_deducted=int(row["points_deducted"]),
        reason=row["reason"],
        related_match_id=row["related_match_id"],
        created_at=from_db(row["created_at"]),
    )


def ensure_record(cursor: sqlite3.Cursor, user_id: str, *, now: datetime) -> None:
    """Create the user's zeroed record if it does not exist yet."""
    cursor.execute(
        """
        INSERT OR IGNORE INTO reputation_records (user_id, created_at, updated_at)
        VALUES (?, ?, ?)
        """,
        (user_id, to_db(now), to_db(now)),
    )


def increment_counters(
    cursor: sqlite3.Cursor, user_id: str, *, now: datetime, **increments: int
) -> None:
    """Add ``increments`` to the named counters of one user's record."""
    unknown = set(increments) - _COUNTER_COLUMNS
    if unknown:
        raise ValueError(f"Unknown reputation counters: {sorted(unknown)}")
    if not increments:
        return
    ensure_record(cursor, user_id, now=now)
    assignments = ", ".join(f"{column} = {column} + ?" for column in increments)
    params: list[object] = list(increments.values())
    params.extend([to_db(now), user_id])
    cursor.execute(
        f"UPDATE reputation_records SET {assignments}, updated_at = ? WHERE user_id = ?",  # nosec B608
        params,
    )


def append_penalty(
    cursor: sqlite3.Cursor,
    *,
    user_id: str,
    kind: str,
    severity: str,
    points_deducted: int,
    reason: str,
    related_match_id: str | None,
    now: datetime,
) -> PenaltyEntry:
    ensure_record(cursor, user_id, now=now)
    cursor.execute(
        """
        INSERT INTO penalty_entries (
            user_id, kind, severity, points_deducted, reason, related_match_id, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (user_id, kind, severity, points_deducted, reason, related_match_id, to_db(now)),
    )
    penalty_id = cursor.lastrowid
    if penalty_id is None:
        raise ValueError("Failed to create penalty entry.")
    return PenaltyEntry(
        id=int(penalty_id),
        user_id=user_id,
        kind=kind,
        severity=severity,
        points_deducted=points_deducted,
        reason=reason,
        related_match_id=related_match_id,
        created_at=now,
    )


def total_points_deducted(cursor: sqlite3.Cursor, user_id: str) -> int:
    cursor.execute(
        "SELECT COALESCE(SUM(points_deducted), 0) FROM penalty_entries WHERE user_id = ?",
        (user_id,),
    )
    row = cursor.fetchone()
    return int(row[0]) if row else 0


def list_penalties(cursor: sqlite3.Cursor, user_id: str) -> list[PenaltyEntry]:
    cursor.execute(
        "SELECT * FROM penalty_entries WHERE user_id = ? ORDER BY created_at ASC, id ASC",
        (user_id,),
    )
    return [_row_to_penalty(row) for row in cursor.fetchall()]


def get_record(cursor: sqlite3.Cursor, user_id: str) -> ReputationRecord:
    """Return the user's record, or a fresh score-100 record if none exists."""
    cursor.execute("SELECT * FROM reputation_records WHERE user_id = ?", (user_id,))
    row = cursor.fetchone()
    penalties = list_penalties(cursor, user_id)
    score = compute_score(sum(penalty.points_deducted for penalty in penalties))
    if row is None:
        return ReputationRecord(user_id=user_id, score=score, penalties=penalties)
    return ReputationRecord(
        user_id=user_id,
        total_matches=int(row["total_matches"]),
        completed_matches=int(row["completed_matches"]),
        self_cancelled_count=int(row["self_cancelled_count"]),
        partner_cancelled_count=int(row["partner_cancelled_count"]),
        score=score,
        penalties=penalties,
    )
