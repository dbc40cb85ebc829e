"""Domain probes for Sink bounded context observability.

These probes capture domain-significant events around statement execution
and the sink lifecycle, following the Domain Oriented Observability pattern.
They are injected as observers; the execution path never logs directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext
    from mapping.domain.value_objects import Statement


class ExecutionProbe(Protocol):
    """Domain probe observing each statement the executor runs."""

    def statement_started(self, statement: Statement) -> None:
        """Record that a statement is about to run."""
        ...

    def statement_executed(
        self, statement: Statement, row_count: int, duration_ms: float
    ) -> None:
        """Record that a statement completed."""
        ...

    def statement_failed(self, statement: Statement, error: Exception) -> None:
        """Record that a statement failed in the database."""
        ...

    def element_rejected(self, template_id: str, error: Exception) -> None:
        """Record that an element could not be mapped to a statement."""
        ...

    def batch_executed(self, size: int, duration_ms: float) -> None:
        """Record that a batch of statements was committed."""
        ...

    def batch_failed(self, size: int, error: Exception) -> None:
        """Record that a batch of statements was rolled back."""
        ...

    def retry_scheduled(
        self, attempt: int, delay_seconds: float, error: Exception
    ) -> None:
        """Record that a retryable failure will be retried."""
        ...

    def with_context(self, context: ObservationContext) -> ExecutionProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultExecutionProbe:
    """Default implementation of ExecutionProbe using structlog.

    Statement traces are DEBUG events; failures are logged with the
    template id so they can be grouped by configuration.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultExecutionProbe:
        """Create a new probe with observation context bound."""
        return DefaultExecutionProbe(logger=self._logger, context=context)

    def statement_started(self, statement: Statement) -> None:
        self._logger.debug(
            "statement_started",
            template_id=statement.template_id,
            query=statement.query,
            **self._get_context_kwargs(),
        )

    def statement_executed(
        self, statement: Statement, row_count: int, duration_ms: float
    ) -> None:
        self._logger.debug(
            "statement_executed",
            template_id=statement.template_id,
            row_count=row_count,
            duration_ms=duration_ms,
            **self._get_context_kwargs(),
        )

    def statement_failed(self, statement: Statement, error: Exception) -> None:
        self._logger.error(
            "statement_failed",
            template_id=statement.template_id,
            query=statement.query,
            error=str(error),
            error_type=type(error).__name__,
            retryable=getattr(error, "retryable", False),
            **self._get_context_kwargs(),
        )

    def element_rejected(self, template_id: str, error: Exception) -> None:
        self._logger.warning(
            "element_rejected",
            template_id=template_id,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def batch_executed(self, size: int, duration_ms: float) -> None:
        self._logger.debug(
            "batch_executed",
            batch_size=size,
            duration_ms=duration_ms,
            **self._get_context_kwargs(),
        )

    def batch_failed(self, size: int, error: Exception) -> None:
        self._logger.error(
            "batch_failed",
            batch_size=size,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def retry_scheduled(
        self, attempt: int, delay_seconds: float, error: Exception
    ) -> None:
        self._logger.warning(
            "retry_scheduled",
            attempt=attempt,
            delay_seconds=delay_seconds,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )


class SinkProbe(Protocol):
    """Domain probe for sink and source lifecycle events."""

    def opened(self, graph_name: str) -> None:
        """Record that the sink connected and accepts elements."""
        ...

    def open_failed(self, error: Exception) -> None:
        """Record that the sink could not be opened."""
        ...

    def invocation_failed(self, error: Exception, fatal: bool) -> None:
        """Record that processing one element failed."""
        ...

    def closed(self) -> None:
        """Record that the sink released its resources."""
        ...

    def already_closed(self) -> None:
        """Record a close request on an already closed sink."""
        ...

    def close_failed(self, error: Exception) -> None:
        """Record a failure while closing; it is never raised."""
        ...

    def with_context(self, context: ObservationContext) -> SinkProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultSinkProbe:
    """Default implementation of SinkProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultSinkProbe:
        """Create a new probe with observation context bound."""
        return DefaultSinkProbe(logger=self._logger, context=context)

    def opened(self, graph_name: str) -> None:
        self._logger.info(
            "sink_opened",
            **{**self._get_context_kwargs(), "graph_name": graph_name},
        )

    def open_failed(self, error: Exception) -> None:
        self._logger.error(
            "sink_open_failed",
            error=str(error),
            **self._get_context_kwargs(),
        )

    def invocation_failed(self, error: Exception, fatal: bool) -> None:
        self._logger.warning(
            "sink_invocation_failed",
            error=str(error),
            error_type=type(error).__name__,
            fatal=fatal,
            **self._get_context_kwargs(),
        )

    def closed(self) -> None:
        self._logger.debug(
            "sink_closed",
            **self._get_context_kwargs(),
        )

    def already_closed(self) -> None:
        self._logger.warning(
            "sink_already_closed",
            **self._get_context_kwargs(),
        )

    def close_failed(self, error: Exception) -> None:
        self._logger.error(
            "sink_close_failed",
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )
