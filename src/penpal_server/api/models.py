"""
Pydantic models for API requests and responses.

Request models validate what participants and administrators send; response
models are built from the DB-layer dataclasses with ``from_attributes`` so the
route handlers stay thin.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class CreateMatchRequest(BaseModel):
    """
    Pairing handed over by the matchmaking collaborator.

    Attributes:
        party_a_id: Participant who registered first (sends odd steps)
        party_b_id: Counterpart (sends even steps)
        total_steps: Optional override of the configured mission length
    """

    party_a_id: str = Field(min_length=1)
    party_a_name: str = Field(min_length=1)
    party_b_id: str = Field(min_length=1)
    party_b_name: str = Field(min_length=1)
    total_steps: int | None = Field(default=None, gt=0)


class SendLetterRequest(BaseModel):
    """Photo URL of the posted letter, as returned by the blob store."""

    evidence_ref: str = Field(min_length=1)


class ConfirmReceiveRequest(BaseModel):
    """Photo URL of the received letter."""

    evidence_ref: str = Field(min_length=1)


class RaiseDisputeRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class ResolveDisputeRequest(BaseModel):
    outcome: Literal["confirmed", "rejected"]


class CancelRequestCreate(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class AdjudicateRequest(BaseModel):
    decision: Literal["approved", "rejected"]


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class MatchResponse(_FromAttributes):
    id: str
    party_a_id: str
    party_a_name: str
    party_b_id: str
    party_b_name: str
    status: str
    created_at: datetime
    updated_at: datetime
    activated_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    deleted_at: datetime | None = None


class MissionResponse(_FromAttributes):
    """
    Mission progress snapshot.

    Attributes:
        current_step: Highest contiguous confirmed step (0 before any)
        completed_steps: One flag per step, index 0 is step 1
        next_sender_id: Who is expected to send next (None when finished)
    """

    match_id: str
    total_steps: int
    current_step: int
    completed_steps: list[bool]
    is_completed: bool
    is_cancelled: bool
    version: int
    updated_at: datetime
    completed_at: datetime | None = None
    next_sender_id: str | None = None


class ProofEntryResponse(_FromAttributes):
    id: int
    match_id: str
    step_number: int
    sender_id: str
    receiver_id: str
    sender_evidence_ref: str
    sent_at: datetime
    status: str
    receiver_evidence_ref: str | None = None
    received_at: datetime | None = None
    dispute_reason: str | None = None
    disputed_at: datetime | None = None
    reminder_sent_at: datetime | None = None
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution: str | None = None


class PenaltyResponse(_FromAttributes):
    id: int
    kind: str
    severity: str
    points_deducted: int
    reason: str
    related_match_id: str | None
    created_at: datetime


class ReputationResponse(_FromAttributes):
    user_id: str
    total_matches: int
    completed_matches: int
    self_cancelled_count: int
    partner_cancelled_count: int
    score: int
    penalties: list[PenaltyResponse]


class ScoreResponse(BaseModel):
    user_id: str
    score: int


class RewardClaimResponse(_FromAttributes):
    id: int
    match_id: str
    user_id: str
    points: int
    reason: str
    claimed_at: datetime


class PointsResponse(_FromAttributes):
    user_id: str
    total_points: int
    history: list[RewardClaimResponse]


class CancelRequestResponse(_FromAttributes):
    id: int
    match_id: str
    requester_id: str
    counterpart_id: str
    reason: str
    status: str
    created_at: datetime
    decided_at: datetime | None = None
    decided_by: str | None = None


class AdminFlagResponse(_FromAttributes):
    id: int
    kind: str
    match_id: str
    step_number: int | None
    user_id: str
    priority: str
    status: str
    message: str
    created_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None


class SweepReportResponse(BaseModel):
    inspected: int
    reminders: int
    escalations: int
    auto_verified: int
    failures: int


class ErrorDetail(BaseModel):
    code: str
    message: str
