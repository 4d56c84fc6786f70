"""Timeout sweep over unconfirmed letters.

The sweep is stateless: every decision is made from timestamps persisted on
the proof row, so restarting the process never resets a window. Each entry is
processed in its own transaction and each transition is guarded by the field
it sets, which makes a second sweep over the same data a no-op.

Windows (measured from ``sent_at``):

    reminder_days     remind the receiver once
    escalation_days   tell the receiver again and raise an admin flag once
    auto_verify_days  treat the letter as delivered
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import TypeVar

from penpal_server.config import ExchangeSettings
from penpal_server.db import flags_repo, matches_repo, proofs_repo
from penpal_server.db.connection import read_cursor
from penpal_server.db.types import (
    FLAG_VERIFICATION_DELAY,
    MATCH_ACTIVE,
    PROOF_AUTO_VERIFIED,
    PROOF_SENT,
)
from penpal_server.exchange.ledger import MissionTracker, ProofLedger
from penpal_server.exchange.transaction import ExchangeTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (operation, work, now) -> result of work, run inside one committed transaction.
TransactionRunner = Callable[[str, Callable[[ExchangeTransaction], T], datetime | None], T]

SYSTEM_ACTOR = "system:timeout_sweep"


@dataclass
class EntryOutcome:
    reminded: bool = False
    escalated: bool = False
    auto_verified: bool = False


@dataclass
class SweepReport:
    inspected: int = 0
    reminders: int = 0
    escalations: int = 0
    auto_verified: int = 0
    failures: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class TimeoutScheduler:
    def __init__(
        self,
        ledger: ProofLedger,
        tracker: MissionTracker,
        settings: ExchangeSettings,
        runner: TransactionRunner,
    ) -> None:
        self.ledger = ledger
        self.tracker = tracker
        self.settings = settings
        self._run = runner

    def run_sweep(self, now: datetime | None = None) -> SweepReport:
        """Inspect every ``sent`` letter on an active match, oldest first.

        A failure on one entry is logged and counted; the sweep carries on
        with the next entry.
        """
        with read_cursor("sweep.list_sent_proofs") as cursor:
            proof_ids = proofs_repo.list_sent_proof_ids(cursor)

        report = SweepReport()
        for proof_id in proof_ids:
            report.inspected += 1
            try:
                outcome = self._run(
                    "sweep.process_entry",
                    lambda tx, pid=proof_id: self.process_entry(tx, pid),
                    now,
                )
            except Exception:
                report.failures += 1
                logger.exception("Timeout sweep failed for proof %s; continuing", proof_id)
                continue
            report.reminders += int(outcome.reminded)
            report.escalations += int(outcome.escalated)
            report.auto_verified += int(outcome.auto_verified)

        logger.info("Timeout sweep finished: %s", report.as_dict())
        return report

    def process_entry(self, tx: ExchangeTransaction, proof_id: int) -> EntryOutcome:
        outcome = EntryOutcome()
        proof = proofs_repo.get_proof_by_id(tx.cursor, proof_id)
        # Re-read under the write lock: a confirmation or dispute may have won.
        if proof is None or proof.status != PROOF_SENT:
            return outcome
        match = matches_repo.get_match(tx.cursor, proof.match_id)
        if match is None or match.status != MATCH_ACTIVE:
            return outcome

        age = tx.now - proof.sent_at
        # A letter past the auto-verify window goes straight to verification.
        verify_due = age >= timedelta(days=self.settings.auto_verify_days)
        receiver_name = match.name_of(proof.receiver_id)
        sender_name = match.name_of(proof.sender_id)

        if (
            not verify_due
            and age >= timedelta(days=self.settings.reminder_days)
            and proof.reminder_sent_at is None
        ):
            proofs_repo.update_proof(tx.cursor, proof.id, reminder_sent_at=tx.now)
            tx.notify(proof.receiver_id, "verification_reminder", match_id=match.id,
                      step_number=proof.step_number, sender_name=sender_name)
            tx.record(match.id, "letter.reminder_sent", step_number=proof.step_number)
            logger.info("Match %s: reminder sent for letter %d", match.id, proof.step_number)
            outcome.reminded = True

        if (
            not verify_due
            and age >= timedelta(days=self.settings.escalation_days)
            and proof.escalated_at is None
        ):
            proofs_repo.update_proof(tx.cursor, proof.id, escalated_at=tx.now)
            flags_repo.insert_flag(
                tx.cursor,
                kind=FLAG_VERIFICATION_DELAY,
                match_id=match.id,
                step_number=proof.step_number,
                user_id=proof.receiver_id,
                priority="medium",
                message=(
                    f"{receiver_name} has not confirmed {sender_name}'s letter "
                    f"(step {proof.step_number}) for {self.settings.escalation_days} days."
                ),
                now=tx.now,
            )
            tx.notify(proof.receiver_id, "verification_escalated", match_id=match.id,
                      step_number=proof.step_number, sender_name=sender_name)
            tx.record(match.id, "letter.escalated", step_number=proof.step_number)
            logger.info("Match %s: letter %d escalated to administrators",
                        match.id, proof.step_number)
            outcome.escalated = True

        if verify_due:
            _, mission = self.tracker.load(tx, match.id)
            self.ledger.finalize(
                tx,
                match,
                mission,
                proof,
                PROOF_AUTO_VERIFIED,
                received_at=tx.now,
                resolved_at=tx.now,
                resolved_by=SYSTEM_ACTOR,
                resolution="timeout",
            )
            flags_repo.resolve_flags(
                tx.cursor,
                match_id=match.id,
                kinds=(FLAG_VERIFICATION_DELAY,),
                step_number=proof.step_number,
                resolved_by=SYSTEM_ACTOR,
                now=tx.now,
            )
            for user_id in (match.party_a_id, match.party_b_id):
                tx.notify(user_id, "letter_auto_verified", match_id=match.id,
                          step_number=proof.step_number,
                          days=self.settings.auto_verify_days)
            outcome.auto_verified = True

        return outcome


class SweepWorker:
    """Background thread that runs the sweep every ``interval_seconds``.

    Usage:
        worker = SweepWorker(service.run_sweep, interval_seconds=3 * 3600)
        worker.start()
        ...
        worker.stop()
    """

    def __init__(self, sweep: Callable[[], SweepReport], interval_seconds: float) -> None:
        self._sweep = sweep
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="penpal-sweep", daemon=True)
        self._thread.start()
        logger.info("Sweep worker started (every %.0f s)", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Sweep worker stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self._sweep()
            except Exception:
                logger.exception("Timeout sweep crashed; retrying next interval")
            if self._stop.wait(self.interval_seconds):
                break
