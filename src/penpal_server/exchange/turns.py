"""Turn order derived from step parity.

There is no stored "whose turn" field: the party who registered the match
first (``party_a``) sends every odd step, the counterpart every even step.
"""

from __future__ import annotations

from penpal_server.db.types import Match, Mission


def sender_for_step(match: Match, step_number: int) -> str:
    if step_number < 1:
        raise ValueError(f"step_number must be >= 1, got {step_number}")
    return match.party_a_id if step_number % 2 == 1 else match.party_b_id


def receiver_for_step(match: Match, step_number: int) -> str:
    return match.counterpart_of(sender_for_step(match, step_number))


def whose_turn(match: Match, mission: Mission) -> str | None:
    """Return the user expected to send the next letter, or None when finished."""
    if mission.current_step >= mission.total_steps:
        return None
    return sender_for_step(match, mission.next_step)

