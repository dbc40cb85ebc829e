"""Per-element execution protocol of the sink.

For every element the executor builds a statement, leases a session, runs
the statement and releases the session. Nothing is retried here: errors
propagate with the element and template id attached, and their
``retryable`` flag tells a caller whether trying again can help.
"""

from __future__ import annotations

import time
from typing import Any, Generic, TypeVar

from infrastructure.database.exceptions import DatabaseError
from infrastructure.database.protocols import CypherResult, SessionProviderProtocol
from mapping.domain.exceptions import MappingError
from mapping.domain.value_objects import Statement
from mapping.ports.protocols import MappingStrategy
from sink.observability import DefaultExecutionProbe, ExecutionProbe

T = TypeVar("T")


def _annotate(error: DatabaseError, element: Any, statement: Statement) -> None:
    error.element = element
    error.template_id = statement.template_id


class SinkExecutor(Generic[T]):
    """Runs one statement per element, one round trip each.

    Statements run in the order ``execute`` is called.
    """

    def __init__(
        self,
        strategy: MappingStrategy[T, Any],
        connections: SessionProviderProtocol,
        probe: ExecutionProbe | None = None,
    ):
        """Initialize the executor.

        Args:
            strategy: Builds the statement for each element
            connections: Hands out sessions, normally a ConnectionManager
            probe: Domain probe for observability (optional, defaults to
                DefaultExecutionProbe)
        """
        self._strategy = strategy
        self._connections = connections
        self._probe = probe or DefaultExecutionProbe()

    @property
    def pending(self) -> int:
        """Statements accepted but not yet executed."""
        return 0

    def execute(self, element: T) -> CypherResult | None:
        """Persist one element.

        Returns:
            The result of the statement.

        Raises:
            ConversionError: If the element lacks required fields. No session
                is acquired in that case.
            MappingError: If the element cannot be bound to the template.
            SessionError: If no session could be obtained (retryable).
            ExecutionError: If the database failed the statement.
        """
        statement = self._build_statement(element)

        # The session is released on every exit path, interrupts included.
        with self._connections.session() as session:
            self._probe.statement_started(statement)
            start = time.perf_counter()
            try:
                result = session.run(statement.query, statement.parameters)
            except DatabaseError as e:
                _annotate(e, element, statement)
                self._probe.statement_failed(statement, e)
                raise
            self._probe.statement_executed(
                statement,
                row_count=result.row_count,
                duration_ms=(time.perf_counter() - start) * 1000,
            )
        return result

    def flush(self) -> None:
        """Execute anything still buffered. Nothing is buffered here."""
        return None

    def _build_statement(self, element: T) -> Statement:
        try:
            return self._strategy.get_statement(element)
        except MappingError as e:
            self._probe.element_rejected(template_id=e.template_id or "", error=e)
            raise


class BatchingSinkExecutor(SinkExecutor[T]):
    """Groups up to ``batch_size`` statements into one transaction.

    Elements are mapped as they arrive, so a malformed element fails on its
    own ``execute`` call and never enters a batch. Statements of a batch run
    in arrival order, and a batch is committed or rolled back before the next
    one starts. After a retryable failure the rolled-back batch stays
    buffered, ahead of anything added later; after any other failure it is
    dropped.
    """

    def __init__(
        self,
        strategy: MappingStrategy[T, Any],
        connections: SessionProviderProtocol,
        batch_size: int,
        probe: ExecutionProbe | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        super().__init__(strategy, connections, probe)
        self._batch_size = batch_size
        self._buffer: list[tuple[T, Statement]] = []

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def execute(self, element: T) -> None:
        """Buffer one element, flushing when the batch is full.

        Raises:
            MappingError: If the element cannot be mapped; it is not buffered.
            SessionError, ExecutionError: If this call filled the batch and
                the flush failed.
        """
        statement = self._build_statement(element)
        self._buffer.append((element, statement))
        if len(self._buffer) >= self._batch_size:
            self.flush()

    def flush(self) -> None:
        """Run every buffered statement in one transaction.

        Raises:
            SessionError: If no session could be obtained.
            ExecutionError: If a statement or the commit failed. The whole
                batch is rolled back, and kept for another flush only when
                the error is retryable.
        """
        if not self._buffer:
            return

        batch, self._buffer = self._buffer, []
        start = time.perf_counter()
        try:
            with self._connections.session() as session:
                with session.transaction() as tx:
                    for element, statement in batch:
                        self._probe.statement_started(statement)
                        try:
                            tx.run(statement.query, statement.parameters)
                        except DatabaseError as e:
                            _annotate(e, element, statement)
                            self._probe.statement_failed(statement, e)
                            raise
        except DatabaseError as e:
            e.batch_size = len(batch)
            self._probe.batch_failed(size=len(batch), error=e)
            if e.retryable:
                self._buffer = batch + self._buffer
            raise

        self._probe.batch_executed(
            size=len(batch),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
