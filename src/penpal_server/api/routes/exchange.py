"""Participant endpoints: matches, letters, disputes, cancellation requests and rewards."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from penpal_server.api.auth import require_admin, require_user
from penpal_server.api.models import (
    AdjudicateRequest,
    CancelRequestCreate,
    CancelRequestResponse,
    ConfirmReceiveRequest,
    CreateMatchRequest,
    MatchResponse,
    MissionResponse,
    ProofEntryResponse,
    RaiseDisputeRequest,
    RewardClaimResponse,
    SendLetterRequest,
)
from penpal_server.db.types import MATCH_ACTIVE
from penpal_server.exchange.errors import NotAdministrator
from penpal_server.exchange.turns import whose_turn
from penpal_server.services.letter_exchange import LetterExchangeService

UserId = Annotated[str, Depends(require_user)]
AdminId = Annotated[str, Depends(require_admin)]


def router(service: LetterExchangeService) -> APIRouter:
    """Build the participant router around ``service``."""
    api = APIRouter()

    # Match lifecycle (called by the matchmaking collaborator under an admin identity)

    @api.post("/matches", response_model=MatchResponse, status_code=status.HTTP_201_CREATED)
    def create_match(request: CreateMatchRequest, admin_id: AdminId):
        if not service.is_administrator(admin_id):
            raise NotAdministrator()
        match = service.create_match(
            request.party_a_id,
            request.party_a_name,
            request.party_b_id,
            request.party_b_name,
            request.total_steps,
        )
        return MatchResponse.model_validate(match)

    @api.post("/matches/{match_id}/activate", response_model=MatchResponse)
    def activate_match(match_id: str, admin_id: AdminId):
        if not service.is_administrator(admin_id):
            raise NotAdministrator()
        return MatchResponse.model_validate(service.activate_match(match_id))

    @api.get("/matches/{match_id}", response_model=MatchResponse)
    def get_match(match_id: str):
        return MatchResponse.model_validate(service.get_match(match_id))

    @api.get("/matches/{match_id}/mission", response_model=MissionResponse)
    def get_mission(match_id: str):
        match = service.get_match(match_id)
        mission = service.get_mission_state(match_id)
        next_sender = whose_turn(match, mission) if match.status == MATCH_ACTIVE else None
        return MissionResponse.model_validate(mission).model_copy(
            update={"next_sender_id": next_sender}
        )

    @api.get("/matches/{match_id}/proofs", response_model=list[ProofEntryResponse])
    def list_proofs(match_id: str):
        return [ProofEntryResponse.model_validate(p) for p in service.list_proof_entries(match_id)]

    # Letters

    @api.post(
        "/matches/{match_id}/letters",
        response_model=ProofEntryResponse,
        status_code=status.HTTP_201_CREATED,
    )
    def send_letter(match_id: str, request: SendLetterRequest, user_id: UserId):
        """Record that the caller posted the next letter."""
        proof = service.submit_send(match_id, user_id, request.evidence_ref)
        return ProofEntryResponse.model_validate(proof)

    @api.post("/matches/{match_id}/letters/{step_number}/receive", response_model=ProofEntryResponse)
    def confirm_receive(
        match_id: str, step_number: int, request: ConfirmReceiveRequest, user_id: UserId
    ):
        """Confirm a letter arrived."""
        proof = service.confirm_receive(match_id, step_number, user_id, request.evidence_ref)
        return ProofEntryResponse.model_validate(proof)

    @api.post("/matches/{match_id}/letters/{step_number}/dispute", response_model=ProofEntryResponse)
    def raise_dispute(
        match_id: str, step_number: int, request: RaiseDisputeRequest, user_id: UserId
    ):
        """Report that a letter never arrived."""
        proof = service.raise_dispute(match_id, step_number, user_id, request.reason)
        return ProofEntryResponse.model_validate(proof)

    # Cancellation

    @api.post(
        "/matches/{match_id}/cancel-requests",
        response_model=CancelRequestResponse,
        status_code=status.HTTP_201_CREATED,
    )
    def request_cancellation(match_id: str, request: CancelRequestCreate, user_id: UserId):
        cancel_request = service.request_cancellation(match_id, user_id, request.reason)
        return CancelRequestResponse.model_validate(cancel_request)

    @api.post("/cancel-requests/{request_id}/respond", response_model=CancelRequestResponse)
    def respond_to_cancellation(request_id: int, request: AdjudicateRequest, user_id: UserId):
        """Counterpart's answer to a cancellation request."""
        decided = service.adjudicate_cancellation(request_id, request.decision, user_id)
        return CancelRequestResponse.model_validate(decided)

    # Rewards

    @api.post(
        "/matches/{match_id}/reward",
        response_model=RewardClaimResponse,
        status_code=status.HTTP_201_CREATED,
    )
    def claim_reward(match_id: str, user_id: UserId):
        """Claim the caller's one-time points for a completed mission."""
        claim = service.claim_completion_reward(match_id, user_id)
        return RewardClaimResponse.model_validate(claim)

    return api
