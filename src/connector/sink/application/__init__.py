"""Sink application layer.

Contains the executors that turn mapped statements into database writes,
and the retry wrapper layered over them.
"""

from sink.application.executor import BatchingSinkExecutor, SinkExecutor
from sink.application.retry import RetryingExecutor, RetryPolicy

__all__ = [
    "BatchingSinkExecutor",
    "RetryPolicy",
    "RetryingExecutor",
    "SinkExecutor",
]
