"""Completion reward repository operations.

Claims are insert-only; ``UNIQUE(match_id, user_id)`` makes a second claim
for the same mission fail inside the claiming transaction.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from penpal_server.db.timestamps import from_db, to_db
from penpal_server.db.types import RewardClaim


def _row_to_claim(row: sqlite3.Row) -> RewardClaim:
    return RewardClaim(
        id=int(row["id"]),
        match_id=row["match_id"],
        user_id=row["user_id"],
        points=int(row["points"]),
        reason=row["reason"],
        claimed_at=from_db(row["claimed_at"]),
    )


def insert_claim(
    cursor: sqlite3.Cursor,
    *,
    match_id: str,
    user_id: str,
    points: int,
    reason: str,
    now: datetime,
) -> RewardClaim:
    """Record a claim.

    Raises:
        sqlite3.IntegrityError: ``user_id`` already claimed this mission.
    """
    cursor.execute(
        """
        INSERT INTO reward_claims (match_id, user_id, points, reason, claimed_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (match_id, user_id, points, reason, to_db(now)),
    )
    claim_id = cursor.lastrowid
    if claim_id is None:
        raise ValueError("Failed to record reward claim.")
    return RewardClaim(
        id=int(claim_id),
        match_id=match_id,
        user_id=user_id,
        points=points,
        reason=reason,
        claimed_at=now,
    )


def get_claim(cursor: sqlite3.Cursor, match_id: str, user_id: str) -> RewardClaim | None:
    cursor.execute(
        "SELECT * FROM reward_claims WHERE match_id = ? AND user_id = ?",
        (match_id, user_id),
    )
    row = cursor.fetchone()
    return _row_to_claim(row) if row else None


def list_claims_for_user(cursor: sqlite3.Cursor, user_id: str) -> list[RewardClaim]:
    cursor.execute(
        "SELECT * FROM reward_claims WHERE user_id = ? ORDER BY claimed_at ASC, id ASC",
        (user_id,),
    )
    return [_row_to_claim(row) for row in cursor.fetchall()]
