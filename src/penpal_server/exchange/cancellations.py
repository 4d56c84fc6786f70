"""Early termination requests and their adjudication.

A request never cancels anything by itself. The counterpart or an
administrator decides; only an approval touches the match, the mission and
the requester's reputation.
"""

from __future__ import annotations

import logging
import sqlite3

from penpal_server.db import cancellations_repo, flags_repo, matches_repo
from penpal_server.db.types import (
    CANCEL_APPROVED,
    CANCEL_PENDING,
    CANCEL_REJECTED,
    FLAG_CANCEL_REQUEST,
    MATCH_ACTIVE,
    MATCH_CANCELLED,
    MATCH_PENDING_SETUP,
    CancelRequest,
)
from penpal_server.exchange.errors import (
    AlreadyResolved,
    CancelRequestNotFound,
    DuplicateRequest,
    InvalidDecision,
    MissionNotActive,
    NotAdministrator,
    NotMatchParticipant,
)
from penpal_server.exchange.ledger import MissionTracker
from penpal_server.exchange.reputation import ReputationEngine
from penpal_server.exchange.transaction import ExchangeTransaction

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = frozenset({MATCH_PENDING_SETUP, MATCH_ACTIVE})
DECISIONS = (CANCEL_APPROVED, CANCEL_REJECTED)


class CancellationRegistry:
    def __init__(self, tracker: MissionTracker, reputation: ReputationEngine) -> None:
        self.tracker = tracker
        self.reputation = reputation

    def request_cancellation(
        self, tx: ExchangeTransaction, match_id: str, requester_id: str, reason: str
    ) -> CancelRequest:
        match, _ = self.tracker.load(tx, match_id)
        if not match.has_participant(requester_id):
            raise NotMatchParticipant()
        if match.status not in CANCELLABLE_STATUSES:
            raise MissionNotActive(f"A {match.status} match cannot be cancelled.")
        if cancellations_repo.get_pending_for_match(tx.cursor, match_id) is not None:
            raise DuplicateRequest()

        counterpart_id = match.counterpart_of(requester_id)
        try:
            request = cancellations_repo.insert_request(
                tx.cursor,
                match_id=match_id,
                requester_id=requester_id,
                counterpart_id=counterpart_id,
                reason=reason,
                now=tx.now,
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateRequest() from exc

        flags_repo.insert_flag(
            tx.cursor,
            kind=FLAG_CANCEL_REQUEST,
            match_id=match_id,
            user_id=requester_id,
            priority="medium",
            message=f"{match.name_of(requester_id)} asked to end the match: {reason}",
            now=tx.now,
        )
        tx.notify(counterpart_id, "cancel_requested", match_id=match_id,
                  request_id=request.id, requester_name=match.name_of(requester_id),
                  reason=reason)
        tx.record(match_id, "cancel.requested", request_id=request.id,
                  requester_id=requester_id, reason=reason)
        logger.info("Match %s: %s requested cancellation (request %d)",
                    match_id, requester_id, request.id)
        return request

    def adjudicate(
        self, tx: ExchangeTransaction, request_id: int, decision: str, adjudicator_id: str
    ) -> CancelRequest:
        """Approve or reject a pending request.

        Allowed for administrators and for the counterpart of the requester.
        """
        if decision not in DECISIONS:
            raise InvalidDecision(f"Decision must be one of {', '.join(DECISIONS)}.")
        request = cancellations_repo.get_request(tx.cursor, request_id)
        if request is None:
            raise CancelRequestNotFound()
        if request.status != CANCEL_PENDING:
            raise AlreadyResolved(f"This request was already {request.status}.")
        if adjudicator_id != request.counterpart_id and not flags_repo.is_administrator(
            tx.cursor, adjudicator_id
        ):
            raise NotAdministrator(
                "Only the other pen pal or an administrator can decide this request."
            )

        match, mission = self.tracker.load(tx, request.match_id)
        if decision == CANCEL_APPROVED:
            if match.status not in CANCELLABLE_STATUSES:
                raise MissionNotActive(f"A {match.status} match cannot be cancelled.")
            matches_repo.update_match_status(
                tx.cursor, match.id, status=MATCH_CANCELLED, now=tx.now, soft_delete=True
            )
            mission.is_cancelled = True
            matches_repo.save_mission(tx.cursor, mission, now=tx.now)
            self.reputation.on_cancellation(
                tx, match.id, request.requester_id, request.counterpart_id
            )
            for user_id in (match.party_a_id, match.party_b_id):
                tx.notify(user_id, "penpal_cancelled", match_id=match.id,
                          request_id=request.id)
        else:
            tx.notify(request.requester_id, "cancel_rejected", match_id=match.id,
                      request_id=request.id)

        cancellations_repo.decide_request(
            tx.cursor, request.id, status=decision, decided_by=adjudicator_id, now=tx.now
        )
        flags_repo.resolve_flags(
            tx.cursor,
            match_id=match.id,
            kinds=(FLAG_CANCEL_REQUEST,),
            resolved_by=adjudicator_id,
            now=tx.now,
        )
        request.status = decision
        request.decided_at = tx.now
        request.decided_by = adjudicator_id
        tx.record(match.id, f"cancel.{decision}", request_id=request.id,
                  decided_by=adjudicator_id)
        logger.info("Match %s: cancellation request %d %s by %s",
                    match.id, request.id, decision, adjudicator_id)
        return request
