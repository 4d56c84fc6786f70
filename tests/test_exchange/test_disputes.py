"""Tests for raising and resolving "letter never arrived" disputes."""

import pytest

from penpal_server.exchange.errors import (
    AlreadyResolved,
    DisputeWindowClosed,
    InvalidDecision,
    MissionNotActive,
    NotAdministrator,
    NotYourProof,
    ProofNotFound,
)
from tests.constants import ADMIN, ALICE, BOB, CAROL, RECEIVED_PHOTO, SENT_PHOTO
from tests.helpers import exchange_step


def _proof(service, match_id, step):
    return next(p for p in service.list_proof_entries(match_id) if p.step_number == step)


@pytest.mark.db
class TestRaiseDispute:
    def test_dispute_moves_entry_to_review(self, service, active_match, clock, notifier):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        clock.advance(days=5)

        proof = service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

        assert proof.status == "disputed"
        assert proof.dispute_reason == "Nothing arrived"
        assert proof.disputed_at == clock.now
        assert "letter_not_arrived" in notifier.types_for(ALICE)
        flags = service.list_admin_flags("pending")
        assert [(f.kind, f.priority, f.user_id) for f in flags] == [("letter_dispute", "high", BOB)]
        assert [p.step_number for p in service.list_disputed_entries()] == [1]

    def test_dispute_does_not_move_progress(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

        assert service.get_mission_state(active_match.id).current_step == 0

    def test_only_receiver_can_dispute(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)

        with pytest.raises(NotYourProof):
            service.raise_dispute(active_match.id, 1, ALICE, "Lost?")
        with pytest.raises(NotYourProof):
            service.raise_dispute(active_match.id, 1, CAROL, "Lost?")

    def test_dispute_twice(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

        with pytest.raises(AlreadyResolved):
            service.raise_dispute(active_match.id, 1, BOB, "Still nothing")

    def test_confirmed_letter_cannot_be_disputed(self, service, active_match):
        exchange_step(service, active_match.id, 1)

        with pytest.raises(AlreadyResolved):
            service.raise_dispute(active_match.id, 1, BOB, "Changed my mind")

    def test_unknown_step(self, service, active_match):
        with pytest.raises(ProofNotFound):
            service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

    def test_window_closes_at_auto_verify_deadline(self, service, active_match, clock):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        clock.advance(days=10)

        with pytest.raises(DisputeWindowClosed):
            service.raise_dispute(active_match.id, 1, BOB, "Too late")

    def test_dispute_after_sweep_won_is_already_resolved(self, service, active_match, clock):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        clock.advance(days=11)
        service.run_sweep()

        with pytest.raises(AlreadyResolved):
            service.raise_dispute(active_match.id, 1, BOB, "Too late")

    def test_receiver_can_still_confirm_a_disputed_letter(self, service, active_match):
        """The letter turned up after all."""
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

        proof = service.confirm_receive(active_match.id, 1, BOB, RECEIVED_PHOTO)

        assert proof.status == "received"
        assert proof.resolution == "confirmed"
        assert service.get_mission_state(active_match.id).current_step == 1
        assert service.list_admin_flags("pending") == []


@pytest.mark.integration
class TestResolveDispute:
    def test_rejected_dispute_auto_verifies_and_penalises_sender(
        self, service, active_match, clock, notifier
    ):
        """Dispute rejected: the entry still counts, the sender loses 20 points."""
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        clock.advance(days=5)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")
        clock.advance(hours=2)

        proof = service.resolve_dispute(active_match.id, 1, "rejected", ADMIN)

        assert proof.status == "auto_verified"
        assert proof.resolved_by == ADMIN
        assert proof.resolution == "rejected"
        assert proof.received_at == clock.now
        mission = service.get_mission_state(active_match.id)
        assert mission.current_step == 1
        assert mission.completed_steps[0] is True
        assert service.get_score(ALICE) == 80
        assert service.get_score(BOB) == 100
        penalty = service.get_reputation(ALICE).penalties[0]
        assert (penalty.kind, penalty.severity, penalty.points_deducted) == (
            "unverified_send",
            "high",
            20,
        )
        assert len(notifier.of_type("dispute_resolved")) == 2
        assert service.list_admin_flags("pending") == []
        assert service.list_disputed_entries() == []

    def test_confirmed_dispute_records_receipt_without_penalty(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

        proof = service.resolve_dispute(active_match.id, 1, "confirmed", ADMIN)

        assert proof.status == "received"
        assert service.get_score(ALICE) == 100
        assert service.get_mission_state(active_match.id).current_step == 1

    def test_non_admin_cannot_resolve(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

        with pytest.raises(NotAdministrator):
            service.resolve_dispute(active_match.id, 1, "confirmed", BOB)

    def test_unknown_outcome(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")

        with pytest.raises(InvalidDecision):
            service.resolve_dispute(active_match.id, 1, "maybe", ADMIN)

    def test_entry_not_under_dispute(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)

        with pytest.raises(AlreadyResolved):
            service.resolve_dispute(active_match.id, 1, "confirmed", ADMIN)

    def test_resolving_final_step_completes_mission(self, service, make_match):
        match = make_match(2)
        exchange_step(service, match.id, 1)
        service.submit_send(match.id, BOB, SENT_PHOTO)
        service.raise_dispute(match.id, 2, ALICE, "Nothing arrived")

        service.resolve_dispute(match.id, 2, "confirmed", ADMIN)

        assert service.get_mission_state(match.id).is_completed is True
        assert service.get_match(match.id).status == "completed"

    def test_dispute_on_cancelled_match_is_terminalised_without_progress(
        self, service, active_match
    ):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")
        request = service.request_cancellation(active_match.id, ALICE, "Moving")
        service.adjudicate_cancellation(request.id, "approved", ADMIN)

        proof = service.resolve_dispute(active_match.id, 1, "confirmed", ADMIN)

        assert proof.status == "received"
        mission = service.get_mission_state(active_match.id)
        assert mission.current_step == 0
        assert mission.is_cancelled is True

    def test_disputes_on_inactive_match_are_refused(self, service, active_match):
        service.submit_send(active_match.id, ALICE, SENT_PHOTO)
        request = service.request_cancellation(active_match.id, ALICE, "Moving")
        service.adjudicate_cancellation(request.id, "approved", ADMIN)

        with pytest.raises(MissionNotActive):
            service.raise_dispute(active_match.id, 1, BOB, "Nothing arrived")
