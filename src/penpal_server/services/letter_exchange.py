"""Letter exchange service boundary.

Every mutating operation of the protocol goes through
:class:`LetterExchangeService`. It owns the transaction: one
``BEGIN IMMEDIATE`` write transaction per operation, retried with
exponential backoff on :class:`TransactionConflictError`. Notifications and
audit lines queued during the transaction are flushed only after it commits,
so a rolled-back attempt never reaches a participant.

Components under :mod:`penpal_server.exchange` hold the protocol rules; this
module only wires them to storage, the clock and the collaborators.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import BinaryIO, TypeVar

from penpal_server.audit import AuditWriteError, append_event
from penpal_server.config import ExchangeSettings
from penpal_server.db import cancellations_repo, flags_repo, matches_repo, proofs_repo
from penpal_server.db.connection import read_cursor, write_transaction
from penpal_server.db.errors import TransactionConflictError
from penpal_server.db.types import (
    MATCH_ACTIVE,
    MATCH_PENDING_SETUP,
    AdminFlag,
    CancelRequest,
    Match,
    Mission,
    PointsAccount,
    ProofEntry,
    ReputationRecord,
    RewardClaim,
)
from penpal_server.exchange.cancellations import CancellationRegistry
from penpal_server.exchange.disputes import DisputeResolver
from penpal_server.exchange.errors import (
    EvidenceUploadFailed,
    InvalidMatchSetup,
    MatchNotFound,
    MissionNotActive,
)
from penpal_server.exchange.evidence import BlobStore, build_blob_store
from penpal_server.exchange.ledger import MissionTracker, ProofLedger
from penpal_server.exchange.notifications import Notifier, build_notifier, deliver
from penpal_server.exchange.reputation import ReputationEngine
from penpal_server.exchange.rewards import RewardLedger
from penpal_server.exchange.scheduler import SweepReport, TimeoutScheduler
from penpal_server.exchange.transaction import ExchangeTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(UTC)


class LetterExchangeService:
    """Single entry point for the letter exchange protocol.

    Args:
        settings: Protocol parameters; defaults to ``config.exchange``.
        notifier: Notification transport; defaults to the configured one.
        blob_store: Evidence store used by the ``*_with_upload`` helpers.
        clock: Returns the current aware UTC datetime.
        max_attempts: Attempts per operation on transaction conflicts.
        backoff_seconds: Base delay, doubled after every conflict.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        *,
        settings: ExchangeSettings | None = None,
        notifier: Notifier | None = None,
        blob_store: BlobStore | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        from penpal_server.config import config

        self.settings = settings or config.exchange
        self.notifier = notifier or build_notifier(
            config.notifications.webhook_url, config.notifications.timeout_seconds
        )
        self.blob_store = blob_store or build_blob_store(
            config.evidence.upload_url, config.evidence.timeout_seconds
        )
        self.clock = clock
        self.max_attempts = max(1, max_attempts or config.transactions.max_attempts)
        self.backoff_seconds = (
            config.transactions.backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._sleep = sleep

        self.reputation = ReputationEngine(self.settings)
        self.tracker = MissionTracker(self.reputation)
        self.ledger = ProofLedger(self.tracker)
        self.disputes = DisputeResolver(self.ledger, self.tracker, self.reputation, self.settings)
        self.cancellations = CancellationRegistry(self.tracker, self.reputation)
        self.rewards = RewardLedger(self.tracker, self.settings)
        self.scheduler = TimeoutScheduler(self.ledger, self.tracker, self.settings, self._execute)

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        work: Callable[[ExchangeTransaction], T],
        now: datetime | None = None,
    ) -> T:
        """Run ``work`` in a write transaction, retrying storage conflicts."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                with write_transaction(operation) as cursor:
                    tx = ExchangeTransaction(cursor=cursor, now=now or self.clock())
                    result = work(tx)
            except TransactionConflictError:
                if attempt == self.max_attempts:
                    logger.warning("%s: giving up after %d conflicting attempts",
                                   operation, attempt)
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.info("%s: transaction conflict (attempt %d/%d), retrying in %.3fs",
                            operation, attempt, self.max_attempts, delay)
                self._sleep(delay)
                continue
            self._after_commit(tx)
            return result
        raise AssertionError("unreachable")  # pragma: no cover

    def _after_commit(self, tx: ExchangeTransaction) -> None:
        for event in tx.audit_events:
            try:
                append_event(event.match_id, event.event_type, event.data, timestamp=tx.now)
            except AuditWriteError:
                logger.warning("Audit write failed; the transition stands", exc_info=True)
        deliver(self.notifier, tx.notifications)

    # ------------------------------------------------------------------
    # Match lifecycle
    # ------------------------------------------------------------------

    def create_match(
        self,
        party_a_id: str,
        party_a_name: str,
        party_b_id: str,
        party_b_name: str,
        total_steps: int | None = None,
    ) -> Match:
        """Create a ``pending_setup`` match; ``party_a`` sends the odd steps."""
        steps = self.settings.total_steps if total_steps is None else total_steps
        if steps <= 0 or steps % 2:
            raise InvalidMatchSetup(f"total_steps must be a positive even number, got {steps}.")
        if party_a_id == party_b_id:
            raise InvalidMatchSetup("A match needs two different participants.")

        def work(tx: ExchangeTransaction) -> Match:
            match = Match(
                id=uuid.uuid4().hex,
                party_a_id=party_a_id,
                party_a_name=party_a_name,
                party_b_id=party_b_id,
                party_b_name=party_b_name,
                status=MATCH_PENDING_SETUP,
                created_at=tx.now,
                updated_at=tx.now,
            )
            matches_repo.insert_match(tx.cursor, match)
            matches_repo.insert_mission(
                tx.cursor,
                Mission(
                    match_id=match.id,
                    total_steps=steps,
                    current_step=0,
                    completed_steps=[False] * steps,
                    is_completed=False,
                    is_cancelled=False,
                    version=0,
                    created_at=tx.now,
                    updated_at=tx.now,
                ),
            )
            tx.record(match.id, "match.created", party_a_id=party_a_id,
                      party_b_id=party_b_id, total_steps=steps)
            logger.info("Match %s created for %s and %s (%d steps)",
                        match.id, party_a_id, party_b_id, steps)
            return match

        return self._execute("exchange.create_match", work)

    def activate_match(self, match_id: str) -> Match:
        def work(tx: ExchangeTransaction) -> Match:
            match, _ = self.tracker.load(tx, match_id)
            if match.status != MATCH_PENDING_SETUP:
                raise MissionNotActive(f"Only a pending match can be activated (it is {match.status}).")
            matches_repo.update_match_status(tx.cursor, match_id, status=MATCH_ACTIVE, now=tx.now)
            match.status = MATCH_ACTIVE
            match.activated_at = tx.now
            match.updated_at = tx.now
            tx.record(match_id, "match.activated")
            logger.info("Match %s activated", match_id)
            return match

        return self._execute("exchange.activate_match", work)

    # ------------------------------------------------------------------
    # Protocol operations
    # ------------------------------------------------------------------

    def submit_send(self, match_id: str, sender_id: str, evidence_ref: str) -> ProofEntry:
        return self._execute(
            "exchange.submit_send",
            lambda tx: self.ledger.submit_send(tx, match_id, sender_id, evidence_ref),
        )

    def confirm_receive(
        self, match_id: str, step_number: int, receiver_id: str, evidence_ref: str
    ) -> ProofEntry:
        return self._execute(
            "exchange.confirm_receive",
            lambda tx: self.ledger.confirm_receive(
                tx, match_id, step_number, receiver_id, evidence_ref
            ),
        )

    def submit_send_with_upload(
        self,
        match_id: str,
        sender_id: str,
        file: BinaryIO | bytes,
        *,
        filename: str,
        content_type: str = "image/jpeg",
    ) -> ProofEntry:
        url = self._upload(file, filename=filename, content_type=content_type)
        return self.submit_send(match_id, sender_id, url)

    def confirm_receive_with_upload(
        self,
        match_id: str,
        step_number: int,
        receiver_id: str,
        file: BinaryIO | bytes,
        *,
        filename: str,
        content_type: str = "image/jpeg",
    ) -> ProofEntry:
        url = self._upload(file, filename=filename, content_type=content_type)
        return self.confirm_receive(match_id, step_number, receiver_id, url)

    def _upload(self, file: BinaryIO | bytes, *, filename: str, content_type: str) -> str:
        if self.blob_store is None:
            raise EvidenceUploadFailed("Evidence uploads are not configured.")
        return self.blob_store.upload_evidence(file, filename=filename, content_type=content_type)

    def raise_dispute(
        self, match_id: str, step_number: int, receiver_id: str, reason: str
    ) -> ProofEntry:
        return self._execute(
            "exchange.raise_dispute",
            lambda tx: self.disputes.raise_dispute(tx, match_id, step_number, receiver_id, reason),
        )

    def resolve_dispute(
        self, match_id: str, step_number: int, outcome: str, admin_id: str
    ) -> ProofEntry:
        return self._execute(
            "exchange.resolve_dispute",
            lambda tx: self.disputes.resolve_dispute(tx, match_id, step_number, outcome, admin_id),
        )

    def request_cancellation(self, match_id: str, requester_id: str, reason: str) -> CancelRequest:
        return self._execute(
            "exchange.request_cancellation",
            lambda tx: self.cancellations.request_cancellation(tx, match_id, requester_id, reason),
        )

    def adjudicate_cancellation(
        self, request_id: int, decision: str, adjudicator_id: str
    ) -> CancelRequest:
        return self._execute(
            "exchange.adjudicate_cancellation",
            lambda tx: self.cancellations.adjudicate(tx, request_id, decision, adjudicator_id),
        )

    def run_sweep(self, now: datetime | None = None) -> SweepReport:
        return self.scheduler.run_sweep(now)

    def claim_completion_reward(self, match_id: str, user_id: str) -> RewardClaim:
        """Credit ``user_id`` once for a completed mission."""
        return self._execute(
            "exchange.claim_completion_reward",
            lambda tx: self.rewards.claim_completion_reward(tx, match_id, user_id),
        )

    def add_administrator(self, admin_id: str) -> bool:
        def work(tx: ExchangeTransaction) -> bool:
            added = flags_repo.add_administrator(tx.cursor, admin_id, now=tx.now)
            if added:
                logger.info("Administrator %s registered", admin_id)
            return added

        return self._execute("exchange.add_administrator", work)

    # ------------------------------------------------------------------
    # Read APIs
    # ------------------------------------------------------------------

    def get_match(self, match_id: str) -> Match:
        with read_cursor("exchange.get_match") as cursor:
            match = matches_repo.get_match(cursor, match_id)
        if match is None:
            raise MatchNotFound(f"Match {match_id!r} does not exist.")
        return match

    def get_mission_state(self, match_id: str) -> Mission:
        with read_cursor("exchange.get_mission_state") as cursor:
            mission = matches_repo.get_mission(cursor, match_id)
        if mission is None:
            raise MatchNotFound(f"Match {match_id!r} does not exist.")
        return mission

    def list_proof_entries(self, match_id: str) -> list[ProofEntry]:
        with read_cursor("exchange.list_proof_entries") as cursor:
            if matches_repo.get_match(cursor, match_id) is None:
                raise MatchNotFound(f"Match {match_id!r} does not exist.")
            return proofs_repo.list_proofs_for_match(cursor, match_id)

    def get_score(self, user_id: str) -> int:
        with read_cursor("reputation.get_score") as cursor:
            return self.reputation.get_score(cursor, user_id)

    def get_reputation(self, user_id: str) -> ReputationRecord:
        with read_cursor("reputation.get_reputation") as cursor:
            return self.reputation.get_reputation(cursor, user_id)

    def get_points(self, user_id: str) -> PointsAccount:
        with read_cursor("rewards.get_points") as cursor:
            return self.rewards.get_points(cursor, user_id)

    def list_disputed_entries(self) -> list[ProofEntry]:
        with read_cursor("exchange.list_disputed_entries") as cursor:
            return proofs_repo.list_disputed_proofs(cursor)

    def list_pending_cancellations(self) -> list[CancelRequest]:
        with read_cursor("exchange.list_pending_cancellations") as cursor:
            return cancellations_repo.list_pending(cursor)

    def list_admin_flags(self, status: str | None = None) -> list[AdminFlag]:
        with read_cursor("exchange.list_admin_flags") as cursor:
            return flags_repo.list_flags(cursor, status)

    def is_administrator(self, admin_id: str) -> bool:
        with read_cursor("exchange.is_administrator") as cursor:
            return flags_repo.is_administrator(cursor, admin_id)
