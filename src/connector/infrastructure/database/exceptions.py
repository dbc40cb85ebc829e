"""Database-specific exceptions for the connector.

Every exception exposes a ``retryable`` flag so that a retry policy can be
layered over the sink without knowing the individual classes.
"""

from __future__ import annotations

from typing import Any

import psycopg2
from psycopg2 import extensions as psycopg2_extensions


class DatabaseError(Exception):
    """Base exception for database operations."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.element: Any = None
        self.template_id: str | None = None
        self.batch_size: int | None = None


class DatabaseConnectionError(DatabaseError):
    """Raised when the database cannot be reached while opening or closing."""

    pass


class SessionError(DatabaseError):
    """Raised when no session can be obtained (pool exhausted, transport down)."""

    retryable = True


class PoolClosedError(SessionError):
    """Raised when a session is requested from, or awaited on, a closed pool."""

    retryable = False


class SessionClosedError(DatabaseError):
    """Raised when a session is used after it was released."""

    pass


class ExecutionError(DatabaseError):
    """Raised when the database rejects or fails a query."""

    def __init__(self, message: str, query: str | None = None):
        super().__init__(message)
        self.query = query


class QuerySyntaxError(ExecutionError):
    """Raised when the query itself is invalid. Retrying cannot help."""

    pass


class TransientExecutionError(ExecutionError):
    """Raised on connectivity loss, deadlock or serialization failure."""

    retryable = True


class TransactionError(DatabaseError):
    """Raised when transaction operations fail."""

    pass


def is_retryable(error: BaseException) -> bool:
    """Tell whether retrying the failed operation may succeed."""
    return bool(getattr(error, "retryable", False))


def translate_query_error(
    error: psycopg2.Error, query: str | None = None
) -> ExecutionError:
    """Map a psycopg2 error raised by a query onto the execution taxonomy."""
    message = f"Query execution failed: {error}"
    # TransactionRollbackError (deadlock, serialization) is an OperationalError.
    if isinstance(
        error,
        (
            psycopg2.OperationalError,
            psycopg2.InterfaceError,
            psycopg2_extensions.TransactionRollbackError,
        ),
    ):
        return TransientExecutionError(message, query=query)
    if isinstance(error, (psycopg2.ProgrammingError, psycopg2.DataError)):
        return QuerySyntaxError(message, query=query)
    return ExecutionError(message, query=query)
