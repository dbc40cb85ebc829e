"""Caller-level retry, layered over an executor.

The executor never retries. This wrapper retries only the failures marked
retryable (a session that could not be obtained, a transient database
error) and lets everything else through on the first attempt.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from infrastructure.database.exceptions import is_retryable
from infrastructure.database.protocols import CypherResult
from sink.application.executor import SinkExecutor
from sink.observability import DefaultExecutionProbe, ExecutionProbe

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Exponential backoff for retryable failures.

    Attributes:
        max_attempts: Total attempts, including the first one
        backoff_seconds: Delay before the first retry
        backoff_multiplier: Factor applied to the delay after each retry
        max_backoff_seconds: Upper bound for a single delay
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=0.5, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_backoff_seconds: float = Field(default=10.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        delay = self.backoff_seconds * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_backoff_seconds)


class RetryingExecutor(Generic[T]):
    """Wraps an executor and retries its retryable failures."""

    def __init__(
        self,
        executor: SinkExecutor[T],
        policy: RetryPolicy | None = None,
        probe: ExecutionProbe | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._executor = executor
        self._policy = policy or RetryPolicy()
        self._probe = probe or DefaultExecutionProbe()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def pending(self) -> int:
        return self._executor.pending

    def execute(self, element: T) -> CypherResult | None:
        """Persist one element, retrying retryable failures.

        A batching executor keeps a batch buffered after a retryable failure,
        so later attempts flush that batch instead of adding the element again.

        Raises:
            The last error once attempts are exhausted, or the first
            non-retryable error.
        """

        def retry() -> CypherResult | None:
            if self._executor.pending:
                self._executor.flush()
                return None
            return self._executor.execute(element)

        return self._with_retry(lambda: self._executor.execute(element), retry)

    def flush(self) -> None:
        self._with_retry(self._executor.flush, self._executor.flush)

    def _with_retry(
        self,
        first: Callable[[], CypherResult | None],
        again: Callable[[], CypherResult | None],
    ) -> CypherResult | None:
        attempt = 1
        operation = first
        while True:
            try:
                return operation()
            except Exception as e:
                if not is_retryable(e) or attempt >= self._policy.max_attempts:
                    raise
                delay = self._policy.delay_for(attempt)
                self._probe.retry_scheduled(
                    attempt=attempt, delay_seconds=delay, error=e
                )
                self._sleep(delay)
                attempt += 1
                operation = again
