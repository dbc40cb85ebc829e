"""Database infrastructure - pooled AGE sessions and the error taxonomy."""

from infrastructure.database.exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    ExecutionError,
    PoolClosedError,
    QuerySyntaxError,
    SessionClosedError,
    SessionError,
    TransactionError,
    TransientExecutionError,
    is_retryable,
)

__all__ = [
    "DatabaseConnectionError",
    "DatabaseError",
    "ExecutionError",
    "PoolClosedError",
    "QuerySyntaxError",
    "SessionClosedError",
    "SessionError",
    "TransactionError",
    "TransientExecutionError",
    "is_retryable",
]
