"""Proof ledger and mission progress tracking.

The ledger records one :class:`~penpal_server.db.types.ProofEntry` per letter.
The mission tracker owns ``current_step``/``completed_steps`` and only ever
moves them forward over a contiguous run of terminal proofs, so a confirmation
that lost a race simply finds its precondition false.

Both classes operate inside an :class:`ExchangeTransaction`; they never open
connections or commit.
"""

from __future__ import annotations

import logging
import sqlite3

from penpal_server.db import cancellations_repo, flags_repo, matches_repo, proofs_repo
from penpal_server.db.types import (
    CANCEL_REJECTED,
    FLAG_CANCEL_REQUEST,
    FLAG_LETTER_DISPUTE,
    FLAG_VERIFICATION_DELAY,
    MATCH_ACTIVE,
    MATCH_COMPLETED,
    OPEN_PROOF_STATUSES,
    PROOF_RECEIVED,
    PROOF_SENT,
    Match,
    Mission,
    ProofEntry,
)
from penpal_server.exchange.errors import (
    AlreadyResolved,
    DuplicateStep,
    MatchNotFound,
    MissionNotActive,
    NotMatchParticipant,
    NotYourProof,
    NotYourTurn,
    OutOfOrderConfirmation,
    ProofNotFound,
)
from penpal_server.exchange.reputation import ReputationEngine
from penpal_server.exchange.transaction import ExchangeTransaction
from penpal_server.exchange.turns import receiver_for_step, sender_for_step

logger = logging.getLogger(__name__)

COMPLETION_ACTOR = "system:mission_completed"


class MissionTracker:
    """Owns mission progress for one match at a time."""

    def __init__(self, reputation: ReputationEngine) -> None:
        self.reputation = reputation

    @staticmethod
    def load(tx: ExchangeTransaction, match_id: str) -> tuple[Match, Mission]:
        match = matches_repo.get_match(tx.cursor, match_id)
        mission = matches_repo.get_mission(tx.cursor, match_id) if match else None
        if match is None or mission is None:
            raise MatchNotFound(f"Match {match_id!r} does not exist.")
        return match, mission

    @staticmethod
    def require_active(match: Match, mission: Mission) -> None:
        if match.status != MATCH_ACTIVE or mission.is_completed or mission.is_cancelled:
            raise MissionNotActive(f"This mission is {match.status}; no more letters can be exchanged.")

    def advance(self, tx: ExchangeTransaction, match: Match, mission: Mission) -> bool:
        """Advance ``current_step`` across every contiguous terminal proof.

        A terminal proof that is not directly after ``current_step`` leaves
        progress untouched; it is picked up once the gap before it closes.

        Returns:
            True if this call completed the mission.
        """
        if match.status != MATCH_ACTIVE or mission.is_completed or mission.is_cancelled:
            return False

        by_step = {p.step_number: p for p in proofs_repo.list_proofs_for_match(tx.cursor, match.id)}
        start = mission.current_step
        while mission.current_step < mission.total_steps:
            proof = by_step.get(mission.next_step)
            if proof is None or not proof.is_terminal:
                break
            mission.completed_steps[mission.current_step] = True
            mission.current_step += 1

        if mission.current_step == start:
            return False

        completed = mission.current_step == mission.total_steps
        if completed:
            mission.is_completed = True
            mission.completed_at = tx.now
        matches_repo.save_mission(tx.cursor, mission, now=tx.now)
        tx.record(match.id, "mission.progress", from_step=start, to_step=mission.current_step)
        logger.info("Match %s progressed from step %d to %d of %d",
                    match.id, start, mission.current_step, mission.total_steps)

        if completed:
            matches_repo.update_match_status(tx.cursor, match.id, status=MATCH_COMPLETED, now=tx.now)
            match.status = MATCH_COMPLETED
            self.reputation.on_mission_completed(tx, match)
            for user_id in (match.party_a_id, match.party_b_id):
                tx.notify(user_id, "mission_completed", match_id=match.id,
                          partner_name=match.name_of(match.counterpart_of(user_id)),
                          total_steps=mission.total_steps)
            tx.record(match.id, "mission.completed", total_steps=mission.total_steps)
            logger.info("Match %s completed all %d steps", match.id, mission.total_steps)
            self._close_pending_cancellation(tx, match)
        return completed

    @staticmethod
    def _close_pending_cancellation(tx: ExchangeTransaction, match: Match) -> None:
        """A finished mission has nothing left to cancel; reject what is still open."""
        request = cancellations_repo.get_pending_for_match(tx.cursor, match.id)
        if request is None:
            return
        cancellations_repo.decide_request(
            tx.cursor, request.id, status=CANCEL_REJECTED, decided_by=COMPLETION_ACTOR, now=tx.now
        )
        flags_repo.resolve_flags(
            tx.cursor,
            match_id=match.id,
            kinds=(FLAG_CANCEL_REQUEST,),
            resolved_by=COMPLETION_ACTOR,
            now=tx.now,
        )
        tx.notify(request.requester_id, "cancel_rejected", match_id=match.id,
                  request_id=request.id, reason="mission_completed")
        tx.record(match.id, "cancel.rejected", request_id=request.id,
                  decided_by=COMPLETION_ACTOR)
        logger.info("Match %s: cancellation request %d closed by mission completion",
                    match.id, request.id)


class ProofLedger:
    """Per-step evidence records and the send/confirm protocol."""

    def __init__(self, tracker: MissionTracker) -> None:
        self.tracker = tracker

    @staticmethod
    def get_entry(tx: ExchangeTransaction, match_id: str, step_number: int) -> ProofEntry:
        proof = proofs_repo.get_proof(tx.cursor, match_id, step_number)
        if proof is None:
            raise ProofNotFound(f"No letter has been recorded for step {step_number}.")
        return proof

    def submit_send(
        self, tx: ExchangeTransaction, match_id: str, sender_id: str, evidence_ref: str
    ) -> ProofEntry:
        """Record that ``sender_id`` posted the letter for the next step.

        Progress does not move; it advances when the receiver confirms.
        """
        match, mission = self.tracker.load(tx, match_id)
        if not match.has_participant(sender_id):
            raise NotMatchParticipant()
        self.tracker.require_active(match, mission)

        step = mission.next_step
        if step > mission.total_steps:
            raise MissionNotActive("Every letter of this mission has already been exchanged.")

        existing = proofs_repo.get_proof(tx.cursor, match_id, step)
        if existing is not None:
            if existing.status in OPEN_PROOF_STATUSES:
                raise NotYourTurn(
                    f"Step {step} is waiting for {match.name_of(existing.receiver_id)} "
                    "to confirm the letter."
                )
            raise DuplicateStep(f"Step {step} already has a letter on record.")

        expected_sender = sender_for_step(match, step)
        if sender_id != expected_sender:
            raise NotYourTurn(
                f"It's {match.name_of(expected_sender)}'s turn to send letter {step}."
            )

        receiver_id = receiver_for_step(match, step)
        try:
            proof = proofs_repo.insert_proof(
                tx.cursor,
                match_id=match_id,
                step_number=step,
                sender_id=sender_id,
                receiver_id=receiver_id,
                evidence_ref=evidence_ref,
                sent_at=tx.now,
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateStep(f"Step {step} already has a letter on record.") from exc

        tx.notify(receiver_id, "letter_sent", match_id=match_id, step_number=step,
                  sender_name=match.name_of(sender_id))
        tx.record(match_id, "letter.sent", step_number=step, sender_id=sender_id,
                  evidence_ref=evidence_ref)
        logger.info("Match %s: %s sent letter %d", match_id, sender_id, step)
        return proof

    def confirm_receive(
        self,
        tx: ExchangeTransaction,
        match_id: str,
        step_number: int,
        receiver_id: str,
        evidence_ref: str,
    ) -> ProofEntry:
        match, mission = self.tracker.load(tx, match_id)
        proof = self.get_entry(tx, match_id, step_number)
        if proof.receiver_id != receiver_id:
            raise NotYourProof()
        if proof.status not in OPEN_PROOF_STATUSES:
            raise AlreadyResolved(f"Letter {step_number} is already {proof.status}.")
        self.tracker.require_active(match, mission)
        if step_number != mission.next_step:
            raise OutOfOrderConfirmation(
                f"Letter {mission.next_step} must be confirmed before letter {step_number}."
            )

        was_disputed = proof.status != PROOF_SENT
        proof = self.finalize(
            tx,
            match,
            mission,
            proof,
            PROOF_RECEIVED,
            receiver_evidence_ref=evidence_ref,
            received_at=tx.now,
            **({"resolved_at": tx.now, "resolved_by": receiver_id, "resolution": "confirmed"}
               if was_disputed else {}),
        )
        flags_repo.resolve_flags(
            tx.cursor,
            match_id=match_id,
            kinds=(FLAG_VERIFICATION_DELAY, FLAG_LETTER_DISPUTE),
            step_number=step_number,
            resolved_by=receiver_id,
            now=tx.now,
        )
        tx.notify(proof.sender_id, "letter_received", match_id=match_id,
                  step_number=step_number, receiver_name=match.name_of(receiver_id))
        return proof

    def finalize(
        self,
        tx: ExchangeTransaction,
        match: Match,
        mission: Mission,
        proof: ProofEntry,
        status: str,
        **fields: object,
    ) -> ProofEntry:
        """Move ``proof`` to a terminal ``status`` and advance progress."""
        proofs_repo.update_proof(tx.cursor, proof.id, status=status, **fields)
        previous = proof.status
        proof.status = status
        for name, value in fields.items():
            setattr(proof, name, value)
        tx.record(match.id, f"letter.{status}", step_number=proof.step_number,
                  previous_status=previous,
                  **{k: v for k, v in fields.items() if isinstance(v, str)})
        logger.info("Match %s: letter %d %s -> %s", match.id, proof.step_number, previous, status)
        self.tracker.advance(tx, match, mission)
        return proof
