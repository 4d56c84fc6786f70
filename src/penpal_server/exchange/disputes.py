"""Receiver disputes ("the letter never arrived") and their adjudication."""

from __future__ import annotations

import logging
from datetime import timedelta

from penpal_server.config import ExchangeSettings
from penpal_server.db import flags_repo, proofs_repo
from penpal_server.db.types import (
    FLAG_LETTER_DISPUTE,
    FLAG_VERIFICATION_DELAY,
    PROOF_AUTO_VERIFIED,
    PROOF_DISPUTED,
    PROOF_RECEIVED,
    PROOF_SENT,
    ProofEntry,
)
from penpal_server.exchange.errors import (
    AlreadyResolved,
    DisputeWindowClosed,
    InvalidDecision,
    NotAdministrator,
    NotYourProof,
)
from penpal_server.exchange.ledger import MissionTracker, ProofLedger
from penpal_server.exchange.reputation import ReputationEngine
from penpal_server.exchange.transaction import ExchangeTransaction

logger = logging.getLogger(__name__)

OUTCOME_CONFIRMED = "confirmed"
OUTCOME_REJECTED = "rejected"
DISPUTE_OUTCOMES = (OUTCOME_CONFIRMED, OUTCOME_REJECTED)


class DisputeResolver:
    def __init__(
        self,
        ledger: ProofLedger,
        tracker: MissionTracker,
        reputation: ReputationEngine,
        settings: ExchangeSettings,
    ) -> None:
        self.ledger = ledger
        self.tracker = tracker
        self.reputation = reputation
        self.settings = settings

    def raise_dispute(
        self,
        tx: ExchangeTransaction,
        match_id: str,
        step_number: int,
        receiver_id: str,
        reason: str,
    ) -> ProofEntry:
        """Suspend auto-verification of a letter and ask an administrator.

        Only a ``sent`` letter can be disputed, and only before the
        auto-verification window would have closed it. If the sweep already
        promoted the letter the call fails with :class:`AlreadyResolved`.
        """
        match, mission = self.tracker.load(tx, match_id)
        proof = self.ledger.get_entry(tx, match_id, step_number)
        if proof.receiver_id != receiver_id:
            raise NotYourProof()
        if proof.status == PROOF_DISPUTED:
            raise AlreadyResolved(f"Letter {step_number} is already under review.")
        if proof.status != PROOF_SENT:
            raise AlreadyResolved(f"Letter {step_number} is already {proof.status}.")
        self.tracker.require_active(match, mission)

        closes_at = proof.sent_at + timedelta(days=self.settings.auto_verify_days)
        if tx.now >= closes_at:
            raise DisputeWindowClosed(
                f"Letters can only be disputed within {self.settings.auto_verify_days} days."
            )

        proofs_repo.update_proof(
            tx.cursor, proof.id, status=PROOF_DISPUTED, dispute_reason=reason, disputed_at=tx.now
        )
        proof.status = PROOF_DISPUTED
        proof.dispute_reason = reason
        proof.disputed_at = tx.now

        flags_repo.insert_flag(
            tx.cursor,
            kind=FLAG_LETTER_DISPUTE,
            match_id=match_id,
            step_number=step_number,
            user_id=receiver_id,
            priority="high",
            message=(
                f"{match.name_of(receiver_id)} reports that letter {step_number} from "
                f"{match.name_of(proof.sender_id)} never arrived: {reason}"
            ),
            now=tx.now,
        )
        tx.notify(proof.sender_id, "letter_not_arrived", match_id=match_id,
                  step_number=step_number, receiver_name=match.name_of(receiver_id),
                  reason=reason)
        tx.record(match_id, "letter.disputed", step_number=step_number, reason=reason)
        logger.info("Match %s: %s disputed letter %d", match_id, receiver_id, step_number)
        return proof

    def resolve_dispute(
        self,
        tx: ExchangeTransaction,
        match_id: str,
        step_number: int,
        outcome: str,
        admin_id: str,
    ) -> ProofEntry:
        """Force a disputed letter into a terminal state.

        ``confirmed`` records the letter as received. ``rejected`` still
        auto-verifies it so the mission can move on, but penalises the
        sender for an unverified send.
        """
        if outcome not in DISPUTE_OUTCOMES:
            raise InvalidDecision(f"Outcome must be one of {', '.join(DISPUTE_OUTCOMES)}.")
        if not flags_repo.is_administrator(tx.cursor, admin_id):
            raise NotAdministrator()

        match, mission = self.tracker.load(tx, match_id)
        proof = self.ledger.get_entry(tx, match_id, step_number)
        if proof.status != PROOF_DISPUTED:
            raise AlreadyResolved(f"Letter {step_number} is not under dispute.")

        status = PROOF_RECEIVED if outcome == OUTCOME_CONFIRMED else PROOF_AUTO_VERIFIED
        proof = self.ledger.finalize(
            tx,
            match,
            mission,
            proof,
            status,
            received_at=tx.now,
            resolved_at=tx.now,
            resolved_by=admin_id,
            resolution=outcome,
        )
        if outcome == OUTCOME_REJECTED:
            self.reputation.on_dispute_rejected(tx, match_id, proof.sender_id)

        flags_repo.resolve_flags(
            tx.cursor,
            match_id=match_id,
            kinds=(FLAG_LETTER_DISPUTE, FLAG_VERIFICATION_DELAY),
            step_number=step_number,
            resolved_by=admin_id,
            now=tx.now,
        )
        for user_id in (match.party_a_id, match.party_b_id):
            tx.notify(user_id, "dispute_resolved", match_id=match_id,
                      step_number=step_number, outcome=outcome)
        logger.info("Match %s: dispute on letter %d resolved as %s by %s",
                    match_id, step_number, outcome, admin_id)
        return proof
