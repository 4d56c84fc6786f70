"""Tests for reputation counters, penalties and the derived score."""

import pytest

from penpal_server.db import reputation_repo
from penpal_server.db.connection import read_cursor
from penpal_server.db.errors import DatabaseWriteError
from tests.constants import ADMIN, ALICE, BOB, SENT_PHOTO
from tests.helpers import arranged_state


@pytest.mark.unit
@pytest.mark.parametrize(
    ("deducted", "score"),
    [(0, 100), (10, 90), (100, 0), (250, 0), (-5, 100)],
)
def test_compute_score_is_clamped(deducted, score):
    assert reputation_repo.compute_score(deducted) == score


@pytest.mark.db
class TestReputationReads:
    def test_unknown_user_has_perfect_default(self, service):
        record = service.get_reputation("nobody")

        assert record.score == 100
        assert record.total_matches == 0
        assert record.penalties == []
        assert service.get_score("nobody") == 100

    def test_score_never_goes_below_zero(self, service, make_match):
        """Six rejected disputes cost 120 points; the score stops at zero."""
        for _ in range(6):
            match = make_match(2)
            service.submit_send(match.id, ALICE, SENT_PHOTO)
            service.raise_dispute(match.id, 1, BOB, "Nothing arrived")
            service.resolve_dispute(match.id, 1, "rejected", ADMIN)

        record = service.get_reputation(ALICE)
        assert sum(p.points_deducted for p in record.penalties) == 120
        assert record.score == 0
        assert service.get_score(ALICE) == 0

    def test_score_equals_100_minus_penalties(self, service, make_match):
        first = make_match(2)
        request = service.request_cancellation(first.id, ALICE, "Busy")
        service.adjudicate_cancellation(request.id, "approved", BOB)
        second = make_match(2)
        service.submit_send(second.id, ALICE, SENT_PHOTO)
        service.raise_dispute(second.id, 1, BOB, "Nothing arrived")
        service.resolve_dispute(second.id, 1, "rejected", ADMIN)

        assert service.get_score(ALICE) == 100 - 10 - 20
        assert [p.kind for p in service.get_reputation(ALICE).penalties] == [
            "cancel_request",
            "unverified_send",
        ]

    def test_penalty_amounts_follow_settings(self, service, make_match, exchange_settings):
        exchange_settings.cancel_penalty_points = 25
        match = make_match(2)
        request = service.request_cancellation(match.id, ALICE, "Busy")
        service.adjudicate_cancellation(request.id, "approved", ADMIN)

        assert service.get_score(ALICE) == 75


@pytest.mark.db
class TestPenaltyHistory:
    def test_penalties_are_immutable(self, service, make_match):
        match = make_match(2)
        request = service.request_cancellation(match.id, ALICE, "Busy")
        service.adjudicate_cancellation(request.id, "approved", ADMIN)

        with pytest.raises(DatabaseWriteError, match="penalty invariant violated"):
            with arranged_state(service) as tx:
                tx.cursor.execute("UPDATE penalty_entries SET points_deducted = 0")
        with pytest.raises(DatabaseWriteError, match="penalty invariant violated"):
            with arranged_state(service) as tx:
                tx.cursor.execute("DELETE FROM penalty_entries")

        assert service.get_score(ALICE) == 90

    def test_increment_rejects_unknown_counter(self, service):
        with pytest.raises(ValueError, match="Unknown reputation counters"):
            with arranged_state(service) as tx:
                reputation_repo.increment_counters(tx.cursor, ALICE, now=tx.now, score=5)

    def test_counters_accumulate_across_matches(self, service, make_match):
        for _ in range(3):
            match = make_match(2)
            request = service.request_cancellation(match.id, BOB, "Busy")
            service.adjudicate_cancellation(request.id, "approved", ALICE)

        with read_cursor("tests.reputation") as cursor:
            bob = reputation_repo.get_record(cursor, BOB)
            alice = reputation_repo.get_record(cursor, ALICE)
        assert (bob.total_matches, bob.self_cancelled_count, bob.score) == (3, 3, 70)
        assert (alice.total_matches, alice.partner_cancelled_count, alice.score) == (3, 3, 100)
