"""
Shared pytest fixtures for the pen-pal server test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary SQLite databases (via ``use_test_database``)
- An audit log redirected into ``tmp_path``
- A frozen, manually advanced clock for the 3/7/10-day windows
- A recording notification transport
- A ready ``LetterExchangeService`` and helpers to build active matches
- A FastAPI ``TestClient``
"""

import shutil
import tempfile
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

import penpal_server.audit.writer as audit_writer
from penpal_server.api.server import create_app
from penpal_server.config import ExchangeSettings, use_test_database
from penpal_server.db.schema import init_database
from penpal_server.db.types import Match
from penpal_server.services.letter_exchange import LetterExchangeService
from tests.constants import ADMIN, ALICE, ALICE_NAME, BOB, BOB_NAME

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary database file for testing.

    Each test function gets its own database through the config system's
    ``use_test_database`` context manager.

    Yields:
        Path to temporary database file
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_penpal.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path) -> Generator[None, None, None]:
    """Initialize a test database with the production schema."""
    init_database()
    yield


@pytest.fixture(autouse=True)
def audit_tmp_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect audit log writes to a temporary directory for every test."""
    audit_root = tmp_path / "audit"
    monkeypatch.setattr(audit_writer, "_AUDIT_ROOT", audit_root)
    return audit_root


# ============================================================================
# CLOCK AND COLLABORATOR FIXTURES
# ============================================================================


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@dataclass
class RecordingNotifier:
    """Notification transport that keeps everything it is asked to emit."""

    emitted: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def emit(self, user_id: str, type: str, payload: dict[str, Any]) -> None:
        self.emitted.append((user_id, type, payload))

    def types_for(self, user_id: str) -> list[str]:
        return [t for uid, t, _ in self.emitted if uid == user_id]

    def of_type(self, type: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [item for item in self.emitted if item[1] == type]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def exchange_settings() -> ExchangeSettings:
    return ExchangeSettings()


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def service(
    test_db, clock: FrozenClock, notifier: RecordingNotifier, exchange_settings: ExchangeSettings
) -> LetterExchangeService:
    """
    A service bound to the temporary database, frozen clock and recorder.

    ``ADMIN`` is registered as an administrator. Retries never sleep.
    """
    svc = LetterExchangeService(
        settings=exchange_settings,
        notifier=notifier,
        clock=clock,
        max_attempts=3,
        backoff_seconds=0.0,
        sleep=lambda _seconds: None,
    )
    svc.add_administrator(ADMIN)
    return svc


@pytest.fixture
def make_match(service: LetterExchangeService) -> Callable[..., Match]:
    """Factory for an active Alice/Bob match (Alice sends odd steps)."""

    def _make(total_steps: int = 4, *, activate: bool = True) -> Match:
        match = service.create_match(ALICE, ALICE_NAME, BOB, BOB_NAME, total_steps)
        if activate:
            match = service.activate_match(match.id)
        return match

    return _make


@pytest.fixture
def active_match(make_match) -> Match:
    return make_match(4)


# ============================================================================
# FASTAPI TEST CLIENT FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def test_client(service: LetterExchangeService) -> TestClient:
    """
    Create a FastAPI TestClient for API endpoint testing.

    The background sweep worker is disabled; tests trigger sweeps explicitly.
    """
    return TestClient(create_app(service, start_sweep_worker=False))
