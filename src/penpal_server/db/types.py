"""Shared DB-layer dataclasses for repository contracts.

Timestamps are timezone-aware UTC ``datetime`` values in memory and ISO-8601
strings in SQLite. Conversion happens only in the repository modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# Match lifecycle
MATCH_PENDING_SETUP = "pending_setup"
MATCH_ACTIVE = "active"
MATCH_COMPLETED = "completed"
MATCH_CANCELLED = "cancelled"

# Proof entry status
PROOF_SENT = "sent"
PROOF_RECEIVED = "received"
PROOF_AUTO_VERIFIED = "auto_verified"
PROOF_DISPUTED = "disputed"

TERMINAL_PROOF_STATUSES = frozenset({PROOF_RECEIVED, PROOF_AUTO_VERIFIED})
OPEN_PROOF_STATUSES = frozenset({PROOF_SENT, PROOF_DISPUTED})

# Cancellation request status
CANCEL_PENDING = "pending"
CANCEL_APPROVED = "approved"
CANCEL_REJECTED = "rejected"

# Admin review items
FLAG_VERIFICATION_DELAY = "verification_delay"
FLAG_LETTER_DISPUTE = "letter_dispute"
FLAG_CANCEL_REQUEST = "cancel_request"
FLAG_PENDING = "pending"
FLAG_RESOLVED = "resolved"


@dataclass(slots=True)
class Match:
    """Pairing of two participants.

    ``party_a`` registered first and sends every odd-numbered step.
    """

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

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.party_a_id, self.party_b_id)

    def counterpart_of(self, user_id: str) -> str:
        return self.party_b_id if user_id == self.party_a_id else self.party_a_id

    def name_of(self, user_id: str) -> str:
        return self.party_a_name if user_id == self.party_a_id else self.party_b_name


@dataclass(slots=True)
class Mission:
    """Progress of one match.

    Attributes:
        completed_steps: One flag per step, index ``k`` is step ``k + 1``.
        version: Optimistic concurrency counter, bumped on every write.
    """

    match_id: str
    total_steps: int
    current_step: int
    completed_steps: list[bool]
    is_completed: bool
    is_cancelled: bool
    version: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @property
    def next_step(self) -> int:
        return self.current_step + 1


@dataclass(slots=True)
class ProofEntry:
    """Evidence record for one exchange step."""

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

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROOF_STATUSES


@dataclass(frozen=True, slots=True)
class PenaltyEntry:
    """Immutable reputation deduction."""

    id: int
    user_id: str
    kind: str
    severity: str
    points_deducted: int
    reason: str
    related_match_id: str | None
    created_at: datetime


@dataclass(slots=True)
class ReputationRecord:
    """Per-user trust counters plus the penalty history the score derives from."""

    user_id: str
    total_matches: int = 0
    completed_matches: int = 0
    self_cancelled_count: int = 0
    partner_cancelled_count: int = 0
    score: int = 100
    penalties: list[PenaltyEntry] = field(default_factory=list)


@dataclass(slots=True)
class CancelRequest:
    """Early-termination request awaiting adjudication."""

    id: int
    match_id: str
    requester_id: str
    counterpart_id: str
    reason: str
    status: str
    created_at: datetime
    decided_at: datetime | None = None
    decided_by: str | None = None


@dataclass(slots=True)
class AdminFlag:
    """Administrator-visible review item."""

    id: int
    kind: str
    match_id: str
    user_id: str
    priority: str
    status: str
    message: str
    created_at: datetime
    step_number: int | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None


@dataclass(frozen=True, slots=True)
class RewardClaim:
    """Points earned by one participant for finishing a mission."""

    id: int
    match_id: str
    user_id: str
    points: int
    reason: str
    claimed_at: datetime


@dataclass(slots=True)
class PointsAccount:
    user_id: str
    total_points: int = 0
    history: list[RewardClaim] = field(default_factory=list)
