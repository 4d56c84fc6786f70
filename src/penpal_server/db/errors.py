"""Storage exceptions raised by the repositories and the transaction helpers.

SQLite failures surface as these types; repositories never return ``False``
to report a broken write.

Conventions:
    - Domain outcomes like "row not found" are represented by ``None`` from
      repository reads; the exchange layer turns them into domain errors.
    - Storage failures map to HTTP 500, or 503 for a conflict that survived
      every retry.
    - Writer contention has its own type; it is the only storage failure the
      service retries.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class DatabaseOperationContext:
    """What was being attempted when storage failed.

    Attributes:
        operation: Stable operation identifier (for example
            ``"exchange.submit_send"``).
        details: Free-form detail, usually the SQLite message.
    """

    operation: str
    details: str | None = None


class DatabaseError(RuntimeError):
    """Root of every storage failure."""


class DatabaseOperationError(DatabaseError):
    """A failure tied to a named storage operation.

    Args:
        context: Structured operation metadata.
        cause: The ``sqlite3`` exception, when there is one.
    """

    def __init__(
        self,
        *,
        context: DatabaseOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class DatabaseReadError(DatabaseOperationError):
    """A query failed."""


class DatabaseWriteError(DatabaseOperationError):
    """A write failed or was rolled back, including trigger aborts."""


class TransactionConflictError(DatabaseWriteError):
    """Concurrent writer won the race for the same rows.

    Raised for SQLite lock contention and for a stale optimistic ``version``
    on a mission row. Callers retry the whole transaction with backoff.
    """
