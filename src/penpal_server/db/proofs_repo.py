"""Proof entry repository operations (the per-step evidence ledger).

Rows are only ever inserted or moved forward; the schema triggers reject
deletes and backwards status changes.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from penpal_server.db.timestamps import from_db, to_db
from penpal_server.db.types import ProofEntry

# Columns a caller may stamp through update_proof().
_UPDATABLE_COLUMNS = frozenset(
    {
        "status",
        "receiver_evidence_ref",
        "received_at",
        "dispute_reason",
        "disputed_at",
        "reminder_sent_at",
        "escalated_at",
        "resolved_at",
        "resolved_by",
        "resolution",
    }
)


def _row_to_proof(row: sqlite3.Row) -> ProofEntry:
    return ProofEntry(
        id=int(row["id"]),
        match_id=row["match_id"],
        step_number=int(row["step_number"]),
        sender_id=row["sender_id"],
        receiver_id=row["receiver_id"],
        sender_evidence_ref=row["sender_evidence_ref"],
        sent_at=from_db(row["sent_at"]),
        status=row["status"],
        receiver_evidence_ref=row["receiver_evidence_ref"],
        received_at=from_db(row["received_at"]),
        dispute_reason=row["dispute_reason"],
        disputed_at=from_db(row["disputed_at"]),
        reminder_sent_at=from_db(row["reminder_sent_at"]),
        escalated_at=from_db(row["escalated_at"]),
        resolved_at=from_db(row["resolved_at"]),
        resolved_by=row["resolved_by"],
        resolution=row["resolution"],
    )


def insert_proof(
    cursor: sqlite3.Cursor,
    *,
    match_id: str,
    step_number: int,
    sender_id: str,
    receiver_id: str,
    evidence_ref: str,
    sent_at: datetime,
) -> ProofEntry:
    """Insert a ``sent`` proof.

    Raises:
        sqlite3.IntegrityError: The step already has a proof.
    """
    cursor.execute(
        """
        INSERT INTO proof_entries (
            match_id, step_number, sender_id, receiver_id,
            sender_evidence_ref, sent_at, status
        )
        VALUES (?, ?, ?, ?, ?, ?, 'sent')
        """,
        (match_id, step_number, sender_id, receiver_id, evidence_ref, to_db(sent_at)),
    )
    proof_id = cursor.lastrowid
    if proof_id is None:
        raise ValueError("Failed to create proof entry.")
    return ProofEntry(
        id=int(proof_id),
        match_id=match_id,
        step_number=step_number,
        sender_id=sender_id,
        receiver_id=receiver_id,
        sender_evidence_ref=evidence_ref,
        sent_at=sent_at,
        status="sent",
    )


def get_proof(cursor: sqlite3.Cursor, match_id: str, step_number: int) -> ProofEntry | None:
    cursor.execute(
        "SELECT * FROM proof_entries WHERE match_id = ? AND step_number = ?",
        (match_id, step_number),
    )
    row = cursor.fetchone()
    return _row_to_proof(row) if row else None


def get_proof_by_id(cursor: sqlite3.Cursor, proof_id: int) -> ProofEntry | None:
    cursor.execute("SELECT * FROM proof_entries WHERE id = ?", (proof_id,))
    row = cursor.fetchone()
    return _row_to_proof(row) if row else None


def list_proofs_for_match(cursor: sqlite3.Cursor, match_id: str) -> list[ProofEntry]:
    cursor.execute(
        "SELECT * FROM proof_entries WHERE match_id = ? ORDER BY step_number ASC",
        (match_id,),
    )
    return [_row_to_proof(row) for row in cursor.fetchall()]


def list_sent_proof_ids(cursor: sqlite3.Cursor) -> list[int]:
    """Ids of ``sent`` proofs on active matches, oldest send first."""
    cursor.execute(
        """
        SELECT p.id
        FROM proof_entries p
        JOIN matches m ON m.id = p.match_id
        WHERE p.status = 'sent' AND m.status = 'active'
        ORDER BY p.sent_at ASC, p.id ASC
        """
    )
    return [int(row[0]) for row in cursor.fetchall()]


def list_disputed_proofs(cursor: sqlite3.Cursor) -> list[ProofEntry]:
    cursor.execute(
        "SELECT * FROM proof_entries WHERE status = 'disputed' ORDER BY disputed_at ASC, id ASC"
    )
    return [_row_to_proof(row) for row in cursor.fetchall()]


def update_proof(cursor: sqlite3.Cursor, proof_id: int, **fields: object) -> None:
    """Stamp the given columns on one proof row.

    Datetime values are serialized; unknown column names raise ``ValueError``.
    """
    unknown = set(fields) - _UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Unknown proof columns: {sorted(unknown)}")
    if not fields:
        return
    assignments = ", ".join(f"{column} = ?" for column in fields)
    params = [to_db(v) if isinstance(v, datetime) else v for v in fields.values()]
    params.append(proof_id)
    cursor.execute(
        f"UPDATE proof_entries SET {assignments} WHERE id = ?",  # nosec B608
        params,
    )

