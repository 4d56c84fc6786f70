"""Reputation engine: trust counters and the append-only penalty history.

Completion never raises a score; only cancellations and rejected disputes
move it, and only downwards. The score is recomputed from the penalty rows
on every read (see :func:`penpal_server.db.reputation_repo.compute_score`).
"""

from __future__ import annotations

import logging
import sqlite3

from penpal_server.config import ExchangeSettings
from penpal_server.db import reputation_repo
from penpal_server.db.types import Match, PenaltyEntry, ReputationRecord
from penpal_server.exchange.transaction import ExchangeTransaction

logger = logging.getLogger(__name__)

PENALTY_CANCEL_REQUEST = "cancel_request"
PENALTY_UNVERIFIED_SEND = "unverified_send"


class ReputationEngine:
    def __init__(self, settings: ExchangeSettings) -> None:
        self.settings = settings

    def on_mission_completed(self, tx: ExchangeTransaction, match: Match) -> None:
        for user_id in (match.party_a_id, match.party_b_id):
            reputation_repo.increment_counters(
                tx.cursor, user_id, now=tx.now, total_matches=1, completed_matches=1
            )
        tx.record(match.id, "reputation.mission_completed",
                  users=[match.party_a_id, match.party_b_id])
        logger.info("Reputation: match %s completed for %s and %s",
                    match.id, match.party_a_id, match.party_b_id)

    def on_cancellation(
        self,
        tx: ExchangeTransaction,
        match_id: str,
        requester_id: str,
        counterpart_id: str,
    ) -> PenaltyEntry:
        """Count an approved cancellation against the requester.

        Both parties' ``total_matches`` grow because the match has concluded.
        """
        reputation_repo.increment_counters(
            tx.cursor, requester_id, now=tx.now, total_matches=1, self_cancelled_count=1
        )
        reputation_repo.increment_counters(
            tx.cursor, counterpart_id, now=tx.now, total_matches=1, partner_cancelled_count=1
        )
        penalty = reputation_repo.append_penalty(
            tx.cursor,
            user_id=requester_id,
            kind=PENALTY_CANCEL_REQUEST,
            severity="medium",
            points_deducted=self.settings.cancel_penalty_points,
            reason="Requested early cancellation of a pen-pal mission.",
            related_match_id=match_id,
            now=tx.now,
        )
        tx.record(match_id, "reputation.penalty", user_id=requester_id,
                  kind=penalty.kind, points=penalty.points_deducted)
        logger.info("Reputation: %s penalised %d points for cancelling %s",
                    requester_id, penalty.points_deducted, match_id)
        return penalty

    def on_dispute_rejected(
        self, tx: ExchangeTransaction, match_id: str, at_fault_user_id: str
    ) -> PenaltyEntry:
        penalty = reputation_repo.append_penalty(
            tx.cursor,
            user_id=at_fault_user_id,
            kind=PENALTY_UNVERIFIED_SEND,
            severity="high",
            points_deducted=self.settings.unverified_send_penalty_points,
            reason="Claimed a letter was sent but the receiver's dispute was upheld.",
            related_match_id=match_id,
            now=tx.now,
        )
        tx.record(match_id, "reputation.penalty", user_id=at_fault_user_id,
                  kind=penalty.kind, points=penalty.points_deducted)
        logger.info("Reputation: %s penalised %d points for unverified send on %s",
                    at_fault_user_id, penalty.points_deducted, match_id)
        return penalty

    @staticmethod
    def get_score(cursor: sqlite3.Cursor, user_id: str) -> int:
        return reputation_repo.compute_score(
            reputation_repo.total_points_deducted(cursor, user_id)
        )

    @staticmethod
    def get_reputation(cursor: sqlite3.Cursor, user_id: str) -> ReputationRecord:
        return reputation_repo.get_record(cursor, user_id)
