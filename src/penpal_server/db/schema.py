"""Schema creation and invariant trigger wiring for the SQLite backend.

The schema layer is intentionally isolated from protocol/query code so schema
changes are reviewable without wading through unrelated repository logic.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime

from penpal_server.db.connection import get_connection

logger = logging.getLogger(__name__)

# Hot-path index rationale:
# 1. the timeout sweep scans open proofs ordered by sent_at.
# 2. the admin review queue lists disputed proofs and pending flags.
# 3. reputation reads sum penalties per user; points reads list claims per user.
# 4. at most one pending cancellation request may exist per match.
HOT_PATH_INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_proof_entries_status_sent_at ON proof_entries(status, sent_at)",
    "CREATE INDEX IF NOT EXISTS idx_penalty_entries_user_id ON penalty_entries(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_reward_claims_user_id ON reward_claims(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_admin_flags_status ON admin_flags(status, created_at)",
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_cancel_requests_one_pending "
        "ON cancel_requests(match_id) WHERE status = 'pending'"
    ),
)


def create_proof_invariant_triggers(conn: sqlite3.Connection) -> None:
    """Create triggers that keep proof entries, penalties and reward claims append-only.

    Invariant model:
    - A proof entry is never deleted.
    - ``received`` and ``auto_verified`` are terminal.
    - Nothing ever moves back to ``sent``.
    - Sender/receiver/step of an existing proof never change.
    - Penalty rows are immutable once written.
    - Reward claims are immutable once written.

    These triggers protect integrity for both Python helper paths and direct
    SQL writes.
    """
    cursor = conn.cursor()
    for trigger in (
        "forbid_proof_delete",
        "enforce_proof_forward_only",
        "enforce_proof_identity",
        "forbid_penalty_update",
        "forbid_penalty_delete",
        "forbid_reward_claim_update",
        "forbid_reward_claim_delete",
    ):
        cursor.execute(f"DROP TRIGGER IF EXISTS {trigger}")

    cursor.execute("""
        CREATE TRIGGER forbid_proof_delete
        BEFORE DELETE ON proof_entries
        BEGIN
            SELECT RAISE(ABORT, 'proof invariant violated: proof entries are never deleted');
        END;
    """)

    cursor.execute("""
        CREATE TRIGGER enforce_proof_forward_only
        BEFORE UPDATE OF status ON proof_entries
        BEGIN
            SELECT
                CASE
                    WHEN OLD.status IN ('received', 'auto_verified') AND NEW.status != OLD.status
                    THEN RAISE(ABORT, 'proof invariant violated: terminal status cannot change')
                END;

            SELECT
                CASE
                    WHEN NEW.status = 'sent' AND OLD.status != 'sent'
                    THEN RAISE(ABORT, 'proof invariant violated: status cannot return to sent')
                END;
        END;
    """)

    cursor.execute("""
        CREATE TRIGGER enforce_proof_identity
        BEFORE UPDATE OF match_id, step_number, sender_id, receiver_id ON proof_entries
        BEGIN
            SELECT RAISE(ABORT, 'proof invariant violated: step identity is immutable');
        END;
    """)

    cursor.execute("""
        CREATE TRIGGER forbid_penalty_update
        BEFORE UPDATE ON penalty_entries
        BEGIN
            SELECT RAISE(ABORT, 'penalty invariant violated: penalties are immutable');
        END;
    """)

    cursor.execute("""
        CREATE TRIGGER forbid_penalty_delete
        BEFORE DELETE ON penalty_entries
        BEGIN
            SELECT RAISE(ABORT, 'penalty invariant violated: penalties are append-only');
        END;
    """)

    cursor.execute("""
        CREATE TRIGGER forbid_reward_claim_update
        BEFORE UPDATE ON reward_claims
        BEGIN
            SELECT RAISE(ABORT, 'reward invariant violated: claims are immutable');
        END;
    """)

    cursor.execute("""
        CREATE TRIGGER forbid_reward_claim_delete
        BEFORE DELETE ON reward_claims
        BEGIN
            SELECT RAISE(ABORT, 'reward invariant violated: claims are append-only');
        END;
    """)


def seed_administrators(cursor: sqlite3.Cursor, admin_ids: Iterable[str]) -> int:
    """Insert configured administrator identities, returning rows added."""
    added = 0
    now = datetime.now(UTC).isoformat()
    for admin_id in admin_ids:
        cursor.execute(
            "INSERT OR IGNORE INTO administrators (admin_id, created_at) VALUES (?, ?)",
            (admin_id, now),
        )
        added += int(cursor.rowcount or 0)
    return added


def init_database() -> None:
    """Initialize the SQLite database schema and baseline triggers.

    Behavior:
    - Switches the database to WAL so readers never block the single writer.
    - Creates required tables and indexes if missing.
    - Installs proof, penalty and reward claim invariant triggers.
    - Seeds administrators listed in ``config.security.admin_ids``.
    """
    from penpal_server.config import config

    conn = get_connection()
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS matches (
                id TEXT PRIMARY KEY,
                party_a_id TEXT NOT NULL,
                party_a_name TEXT NOT NULL,
                party_b_id TEXT NOT NULL,
                party_b_name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending_setup'
                    CHECK (status IN ('pending_setup', 'active', 'completed', 'cancelled')),
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                activated_at TIMESTAMP,
                completed_at TIMESTAMP,
                cancelled_at TIMESTAMP,
                deleted_at TIMESTAMP,
                CHECK (party_a_id != party_b_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS missions (
                match_id TEXT PRIMARY KEY REFERENCES matches(id),
                total_steps INTEGER NOT NULL CHECK (total_steps > 0),
                current_step INTEGER NOT NULL DEFAULT 0
                    CHECK (current_step >= 0 AND current_step <= total_steps),
                completed_steps_json TEXT NOT NULL,
                is_completed INTEGER NOT NULL DEFAULT 0 CHECK (is_completed IN (0, 1)),
                is_cancelled INTEGER NOT NULL DEFAULT 0 CHECK (is_cancelled IN (0, 1)),
                version INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                completed_at TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS proof_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                match_id TEXT NOT NULL REFERENCES matches(id),
                step_number INTEGER NOT NULL CHECK (step_number >= 1),
                sender_id TEXT NOT NULL,
                receiver_id TEXT NOT NULL,
                sender_evidence_ref TEXT NOT NULL,
                sent_at TIMESTAMP NOT NULL,
                receiver_evidence_ref TEXT,
                received_at TIMESTAMP,
                status TEXT NOT NULL DEFAULT 'sent'
                    CHECK (status IN ('sent', 'received', 'auto_verified', 'disputed')),
                dispute_reason TEXT,
                disputed_at TIMESTAMP,
                reminder_sent_at TIMESTAMP,
                escalated_at TIMESTAMP,
                resolved_at TIMESTAMP,
                resolved_by TEXT,
                resolution TEXT,
                UNIQUE(match_id, step_number),
                CHECK (sender_id != receiver_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reputation_records (
                user_id TEXT PRIMARY KEY,
                total_matches INTEGER NOT NULL DEFAULT 0,
                completed_matches INTEGER NOT NULL DEFAULT 0,
                self_cancelled_count INTEGER NOT NULL DEFAULT 0,
                partner_cancelled_count INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS penalty_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                severity TEXT NOT NULL CHECK (severity IN ('low', 'medium', 'high')),
                points_deducted INTEGER NOT NULL CHECK (points_deducted >= 0),
                reason TEXT NOT NULL,
                related_match_id TEXT,
                created_at TIMESTAMP NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS cancel_requests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                match_id TEXT NOT NULL REFERENCES matches(id),
                requester_id TEXT NOT NULL,
                counterpart_id TEXT NOT NULL,
                reason TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'approved', 'rejected')),
                created_at TIMESTAMP NOT NULL,
                decided_at TIMESTAMP,
                decided_by TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS admin_flags (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL
                    CHECK (kind IN ('verification_delay', 'letter_dispute', 'cancel_request')),
                match_id TEXT NOT NULL REFERENCES matches(id),
                step_number INTEGER,
                user_id TEXT NOT NULL,
                priority TEXT NOT NULL CHECK (priority IN ('low', 'medium', 'high')),
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'resolved')),
                message TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                resolved_at TIMESTAMP,
                resolved_by TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reward_claims (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                match_id TEXT NOT NULL REFERENCES matches(id),
                user_id TEXT NOT NULL,
                points INTEGER NOT NULL CHECK (points >= 0),
                reason TEXT NOT NULL,
                claimed_at TIMESTAMP NOT NULL,
                UNIQUE(match_id, user_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS administrators (
                admin_id TEXT PRIMARY KEY,
                created_at TIMESTAMP NOT NULL
            )
        """)

        for statement in HOT_PATH_INDEX_STATEMENTS:
            cursor.execute(statement)

        create_proof_invariant_triggers(conn)
        seeded = seed_administrators(cursor, config.security.admin_ids)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database schema ready at %s (%d administrators seeded)",
                config.database.absolute_path, seeded)
