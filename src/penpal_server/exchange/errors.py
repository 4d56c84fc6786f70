"""Domain errors for the letter exchange protocol.

Every rejected action carries a stable ``code`` and a message a participant
can act on ("it's not your turn yet"), because users who do not understand
why an action failed simply retry it. ``status_code`` is the HTTP status the
API layer answers with.
"""

from __future__ import annotations


class ExchangeError(Exception):
    """Base class for precondition violations. Never retried."""

    code = "exchange_error"
    status_code = 409
    default_message = "This action is not allowed right now."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


# -- Conflicts (409) -----------------------------------------------------------


class NotYourTurn(ExchangeError):
    code = "not_your_turn"
    default_message = "It's not your turn to send a letter yet."


class MissionNotActive(ExchangeError):
    code = "mission_not_active"
    default_message = "This mission is not active."


class DuplicateStep(ExchangeError):
    code = "duplicate_step"
    default_message = "A letter has already been recorded for this step."


class AlreadyResolved(ExchangeError):
    code = "already_resolved"
    default_message = "This letter has already been resolved."


class OutOfOrderConfirmation(ExchangeError):
    code = "out_of_order_confirmation"
    default_message = "Earlier letters must be confirmed first."


class DisputeWindowClosed(ExchangeError):
    code = "dispute_window_closed"
    default_message = "The dispute window for this letter has closed."


class DuplicateRequest(ExchangeError):
    code = "duplicate_request"
    default_message = "A cancellation request is already pending for this match."


class MissionNotCompleted(ExchangeError):
    code = "mission_not_completed"
    default_message = "The reward is available once every letter has been exchanged."


class RewardAlreadyClaimed(ExchangeError):
    code = "reward_already_claimed"
    default_message = "You have already claimed the reward for this mission."



class InvalidDecision(ExchangeError):
    code = "invalid_decision"
    status_code = 422
    default_message = "Unknown decision."


class InvalidMatchSetup(ExchangeError):
    code = "invalid_match_setup"
    status_code = 422
    default_message = "A match needs two different people and an even number of steps."


# -- Not found (404) -----------------------------------------------------------


class MatchNotFound(ExchangeError):
    code = "match_not_found"
    status_code = 404
    default_message = "Match not found."


class ProofNotFound(ExchangeError):
    code = "proof_not_found"
    status_code = 404
    default_message = "No letter has been recorded for this step."


class CancelRequestNotFound(ExchangeError):
    code = "cancel_request_not_found"
    status_code = 404
    default_message = "Cancellation request not found."


# -- Forbidden (403) -----------------------------------------------------------


class NotMatchParticipant(ExchangeError):
    code = "not_match_participant"
    status_code = 403
    default_message = "You are not part of this match."


class NotYourProof(ExchangeError):
    code = "not_your_proof"
    status_code = 403
    default_message = "Only the receiver of this letter can do that."


class NotAdministrator(ExchangeError):
    code = "not_administrator"
    status_code = 403
    default_message = "Only an administrator can do that."


# -- Collaborators --------------------------------------------------------------


class EvidenceUploadFailed(ExchangeError):
    """The blob store rejected the photo; nothing was recorded."""

    code = "evidence_upload_failed"
    status_code = 502
    default_message = "The photo could not be uploaded. Please try again."
