"""Helpers shared by the exchange, service and API tests."""

from collections.abc import Iterator
from contextlib import contextmanager

from penpal_server.db.connection import write_transaction
from penpal_server.exchange.transaction import ExchangeTransaction
from tests.constants import ALICE, BOB, RECEIVED_PHOTO, SENT_PHOTO


def parties_for_step(step: int) -> tuple[str, str]:
    """(sender, receiver) for ``step`` in an Alice/Bob match."""
    return (ALICE, BOB) if step % 2 == 1 else (BOB, ALICE)


def exchange_step(service, match_id: str, step: int) -> None:
    """Send and confirm ``step`` with the parity-correct parties."""
    sender, receiver = parties_for_step(step)
    service.submit_send(match_id, sender, SENT_PHOTO)
    service.confirm_receive(match_id, step, receiver, RECEIVED_PHOTO)


@contextmanager
def arranged_state(service) -> Iterator[ExchangeTransaction]:
    """Raw write transaction for arranging states the protocol never produces."""
    with write_transaction("tests.arrange") as cursor:
        yield ExchangeTransaction(cursor=cursor, now=service.clock())
