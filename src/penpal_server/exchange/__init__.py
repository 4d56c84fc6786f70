"""Letter exchange protocol components.

- :class:`ProofLedger` / :class:`MissionTracker` record letters and progress.
- :class:`TimeoutScheduler` reminds, escalates and auto-verifies stale letters.
- :class:`DisputeResolver` handles "the letter never arrived" claims.
- :class:`ReputationEngine` keeps counters and the penalty history.
- :class:`CancellationRegistry` handles early termination.
- :class:`RewardLedger` pays the one-time completion reward.

Components never open connections; they work on an
:class:`ExchangeTransaction` supplied by
:class:`penpal_server.services.letter_exchange.LetterExchangeService`.
"""

from penpal_server.exchange.cancellations import CancellationRegistry
from penpal_server.exchange.disputes import DisputeResolver
from penpal_server.exchange.ledger import MissionTracker, ProofLedger
from penpal_server.exchange.reputation import ReputationEngine
from penpal_server.exchange.rewards import RewardLedger
from penpal_server.exchange.scheduler import SweepReport, SweepWorker, TimeoutScheduler
from penpal_server.exchange.transaction import ExchangeTransaction

__all__ = [
    "CancellationRegistry",
    "DisputeResolver",
    "ExchangeTransaction",
    "MissionTracker",
    "ProofLedger",
    "ReputationEngine",
    "RewardLedger",
    "SweepReport",
    "SweepWorker",
    "TimeoutScheduler",
]
