"""One-time completion rewards.

Each participant of a completed mission may claim the configured number of
points exactly once. Claims form the user's points history; the balance is
their sum.
"""

from __future__ import annotations

import logging
import sqlite3

from penpal_server.config import ExchangeSettings
from penpal_server.db import rewards_repo
from penpal_server.db.types import PointsAccount, RewardClaim
from penpal_server.exchange.errors import (
    MissionNotCompleted,
    NotMatchParticipant,
    RewardAlreadyClaimed,
)
from penpal_server.exchange.ledger import MissionTracker
from penpal_server.exchange.transaction import ExchangeTransaction

logger = logging.getLogger(__name__)


class RewardLedger:
    def __init__(self, tracker: MissionTracker, settings: ExchangeSettings) -> None:
        self.tracker = tracker
        self.settings = settings

    def claim_completion_reward(
        self, tx: ExchangeTransaction, match_id: str, user_id: str
    ) -> RewardClaim:
        match, mission = self.tracker.load(tx, match_id)
        if not match.has_participant(user_id):
            raise NotMatchParticipant()
        if not mission.is_completed:
            raise MissionNotCompleted()
        if rewards_repo.get_claim(tx.cursor, match_id, user_id) is not None:
            raise RewardAlreadyClaimed()

        try:
            claim = rewards_repo.insert_claim(
                tx.cursor,
                match_id=match_id,
                user_id=user_id,
                points=self.settings.completion_reward_points,
                reason=f"Completed all {mission.total_steps} letters",
                now=tx.now,
            )
        except sqlite3.IntegrityError as exc:
            raise RewardAlreadyClaimed() from exc

        tx.record(match_id, "reward.claimed", user_id=user_id, points=claim.points)
        logger.info("Match %s: %s claimed %d completion points", match_id, user_id, claim.points)
        return claim

    @staticmethod
    def get_points(cursor: sqlite3.Cursor, user_id: str) -> PointsAccount:
        history = rewards_repo.list_claims_for_user(cursor, user_id)
        return PointsAccount(
            user_id=user_id,
            total_points=sum(claim.points for claim in history),
            history=history,
        )
