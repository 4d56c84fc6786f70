"""SQLite connection primitives for the pen-pal DB layer.

This module owns connection creation and low-level SQLite runtime pragmas so
repository code can stay focused on queries and transaction intent.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from penpal_server.db.errors import (
    DatabaseOperationContext,
    DatabaseReadError,
    DatabaseWriteError,
    TransactionConflictError,
)

# SQLite reports writer contention with these messages. Both are transient.
_CONFLICT_MARKERS = ("database is locked", "database is busy", "database table is locked")


def get_db_path() -> Path:
    """Resolve the absolute SQLite database path from runtime configuration."""
    from penpal_server.config import config

    return config.database.absolute_path


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the application.

    Notes:
        - ``foreign_keys=ON`` is required because SQLite does not enforce
          foreign-key constraints by default.
        - ``busy_timeout`` reduces transient lock failures during short-lived
          concurrent writes; anything still locked after it surfaces as a
          :class:`TransactionConflictError`.
    """
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA busy_timeout = 5000")
    return connection


def get_connection() -> sqlite3.Connection:
    """Create and configure a new SQLite connection."""
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(str(db_path))
    return configure_connection(connection)


def is_conflict_error(exc: BaseException) -> bool:
    """Return True when ``exc`` is SQLite writer contention."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


@contextmanager
def connection_scope(*, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection with guaranteed cleanup semantics.

    Args:
        write: When True, commit on success and rollback on exceptions.

    Behavior:
        - Always closes the connection in ``finally``.
        - For write scopes, commits at the end of a successful block.
        - For write scopes, attempts rollback before re-raising failures.
    """
    connection = get_connection()
    try:
        yield connection
        if write:
            connection.commit()
    except Exception:
        if write:
            try:
                connection.rollback()
            except sqlite3.Error:
                # Preserve the original exception while best-effort rolling back.
                pass
        raise
    finally:
        connection.close()


@contextmanager
def read_cursor(operation: str) -> Iterator[sqlite3.Cursor]:
    """Yield a cursor for read-only queries, mapping SQLite failures to
    :class:`DatabaseReadError`."""
    try:
        with connection_scope() as connection:
            yield connection.cursor()
    except sqlite3.Error as exc:
        raise DatabaseReadError(
            context=DatabaseOperationContext(operation=operation, details=str(exc)),
            cause=exc,
        ) from exc


@contextmanager
def write_transaction(operation: str) -> Iterator[sqlite3.Cursor]:
    """Run one atomic read-modify-write unit under SQLite's writer lock.

    ``BEGIN IMMEDIATE`` takes the database write lock before the first read,
    so two writers for the same match can never interleave their reads and
    writes. Lock contention is translated into
    :class:`TransactionConflictError` so the service layer can retry it.
    Other SQLite failures become :class:`DatabaseWriteError`. Exceptions
    raised by the caller's own code (domain errors) propagate unchanged after
    the rollback.

    Args:
        operation: Stable operation identifier used in error context.
    """
    # The commit happens inside connection_scope, so lock errors raised by the
    # commit itself are translated here as well.
    try:
        with connection_scope(write=True) as connection:
            connection.execute("BEGIN IMMEDIATE")
            yield connection.cursor()
    except sqlite3.OperationalError as exc:
        if is_conflict_error(exc):
            raise TransactionConflictError(
                context=DatabaseOperationContext(operation=operation, details=str(exc)),
                cause=exc,
            ) from exc
        raise DatabaseWriteError(
            context=DatabaseOperationContext(operation=operation, details=str(exc)),
            cause=exc,
        ) from exc
    except sqlite3.Error as exc:
        raise DatabaseWriteError(
            context=DatabaseOperationContext(operation=operation, details=str(exc)),
            cause=exc,
        ) from exc
