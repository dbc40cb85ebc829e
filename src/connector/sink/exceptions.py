"""Exceptions for the Sink bounded context."""

from __future__ import annotations


class SinkStateError(RuntimeError):
    """Raised when a lifecycle call is not valid in the current state."""

    retryable: bool = False

    def __init__(self, message: str, state: str | None = None):
        super().__init__(message)
        self.state = state
