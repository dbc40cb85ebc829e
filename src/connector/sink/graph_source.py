"""Graph source: the graph-to-stream direction.

A source runs one configured statement and turns each result row into a
stream element through the strategy's mapper.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator, Mapping
from typing import Any, Generic, TypeVar

from infrastructure.database.connection_manager import ConnectionManager
from infrastructure.database.exceptions import DatabaseError
from infrastructure.observability.context import ObservationContext
from infrastructure.observability.probes import (
    ConnectionProbe,
    DefaultConnectionProbe,
)
from infrastructure.settings import ConnectionSettings
from mapping.application.strategies import SerializationMappingStrategy
from mapping.domain.exceptions import ConversionError, MappingError
from mapping.ports.protocols import SerializationMapper
from sink.exceptions import SinkStateError
from sink.graph_sink import ManagerFactory, SinkState
from sink.observability import (
    DefaultExecutionProbe,
    DefaultSinkProbe,
    ExecutionProbe,
    SinkProbe,
)

T = TypeVar("T")


class GraphSource(Generic[T]):
    """Reads elements out of an Apache AGE graph.

    Example:
        source = GraphSource(
            SerializationMappingStrategy(
                "MATCH (n:Person) RETURN n.name", ColumnMapper()
            ),
            {"host": "db1", "graph": "people"},
        )
        with source:
            for name in source.read():
                ...
    """

    def __init__(
        self,
        strategy: SerializationMappingStrategy[T],
        config: Mapping[str, Any] | ConnectionSettings,
        probe: SinkProbe | None = None,
        execution_probe: ExecutionProbe | None = None,
        connection_probe: ConnectionProbe | None = None,
        context: ObservationContext | None = None,
        manager_factory: ManagerFactory | None = None,
    ):
        self._strategy = strategy
        self._config = config
        self._manager_factory = manager_factory
        self._probe = probe or DefaultSinkProbe()
        self._execution_probe = execution_probe or DefaultExecutionProbe()
        self._connection_probe = connection_probe or DefaultConnectionProbe()
        if context is not None:
            self._probe = self._probe.with_context(context)
            self._execution_probe = self._execution_probe.with_context(context)
            self._connection_probe = self._connection_probe.with_context(context)

        self._state = SinkState.CREATED
        self._manager: ConnectionManager | None = None
        self._cancelled = threading.Event()

    @property
    def state(self) -> SinkState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def open(self) -> None:
        """Connect to the database.

        Raises:
            SinkStateError: If the source is not in the CREATED state.
            DatabaseConnectionError: If the database cannot be reached.
        """
        if self._state is not SinkState.CREATED:
            raise SinkStateError(
                f"Cannot open a source in state '{self._state.value}'",
                state=self._state.value,
            )

        factory = self._manager_factory or ConnectionManager.open
        try:
            self._manager = factory(self._config, probe=self._connection_probe)
        except Exception as e:
            self._probe.open_failed(e)
            raise

        self._cancelled.clear()
        self._state = SinkState.OPENED
        self._probe.opened(self._manager.graph_name)

    def read(self) -> Iterator[T]:
        """Run the statement and yield one element per row, in row order.

        The statement runs once, when iteration starts. Rows are fetched
        before the first element is yielded, so the session is released
        before the caller sees any element.

        Raises:
            SinkStateError: If the source is not open.
            SessionError, ExecutionError: If the query failed.
            MappingError: If a row cannot be mapped to an element.
        """
        if self._state is not SinkState.OPENED or self._manager is None:
            raise SinkStateError(
                f"Source is not open (state '{self._state.value}')",
                state=self._state.value,
            )
        return self._iterate(self._manager)

    def cancel(self) -> None:
        """Stop an ongoing ``read`` before its next element."""
        self._cancelled.set()

    def close(self) -> None:
        """Cancel any read and release the connections. Never raises."""
        if self._state is SinkState.CLOSED:
            self._probe.already_closed()
            return

        self._cancelled.set()
        if self._manager is not None:
            try:
                self._manager.close()
            except Exception as e:
                self._probe.close_failed(e)

        self._manager = None
        self._state = SinkState.CLOSED
        self._probe.closed()

    def __enter__(self) -> GraphSource[T]:
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _iterate(self, manager: ConnectionManager) -> Iterator[T]:
        statement = self._strategy.get_statement()
        mapper = self._strategy.get_mapper()

        self._execution_probe.statement_started(statement)
        start = time.perf_counter()
        with manager.session() as session:
            try:
                result = session.run(statement.query, statement.parameters or None)
            except DatabaseError as e:
                self._execution_probe.statement_failed(statement, e)
                raise
        self._execution_probe.statement_executed(
            statement,
            row_count=result.row_count,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

        for row in result.rows:
            if self._cancelled.is_set():
                return
            yield self._serialize(mapper, row, statement.template_id)

    def _serialize(
        self, mapper: SerializationMapper[T], row: tuple[Any, ...], template_id: str
    ) -> T:
        try:
            return mapper.serialize(row)
        except MappingError as e:
            if e.template_id is None:
                e.template_id = template_id
            self._execution_probe.element_rejected(template_id=template_id, error=e)
            raise
        except Exception as e:
            error = ConversionError(
                f"Mapper failed: {e}", element=row, template_id=template_id
            )
            self._execution_probe.element_rejected(
                template_id=template_id, error=error
            )
            raise error from e
