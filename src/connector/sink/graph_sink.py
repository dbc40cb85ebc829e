"""Graph sink: the composition root of the stream-to-graph direction.

The host stream engine drives a sink through ``open``, ``invoke`` for every
element and ``close``. The sink owns one ConnectionManager and one executor
for its lifetime and hands each element to the executor in delivery order.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Generic, TypeVar

from infrastructure.database.connection_manager import ConnectionManager
from infrastructure.observability.context import ObservationContext
from infrastructure.observability.probes import (
    ConnectionProbe,
    DefaultConnectionProbe,
)
from infrastructure.settings import ConnectionSettings, SinkSettings, get_sink_settings
from mapping.application.strategies import DeserializationMappingStrategy
from mapping.ports.protocols import MappingStrategy
from sink.application.executor import BatchingSinkExecutor, SinkExecutor
from sink.application.retry import RetryingExecutor, RetryPolicy
from sink.exceptions import SinkStateError
from sink.observability import (
    DefaultExecutionProbe,
    DefaultSinkProbe,
    ExecutionProbe,
    SinkProbe,
)

T = TypeVar("T")

ManagerFactory = Callable[..., ConnectionManager]

# Attributes left out when a sink is pickled.
_PROCESS_LOCAL = (
    "_manager",
    "_executor",
    "_probe",
    "_execution_probe",
    "_connection_probe",
)


class SinkState(str, Enum):
    """Lifecycle states of a sink or source."""

    CREATED = "created"
    OPENED = "opened"
    CLOSED = "closed"
    FAILED = "failed"


class GraphSink(Generic[T]):
    """Persists stream elements into an Apache AGE graph.

    Example:
        sink = GraphSink(
            DeserializationMappingStrategy(
                "CREATE (n:Person {name: $name})", ScalarConverter("name")
            ),
            {"host": "db1", "graph": "people"},
        )
        with sink:
            for name in names:
                sink.invoke(name)
    """

    def __init__(
        self,
        mapping_strategy: MappingStrategy[T, Any],
        config: Mapping[str, Any] | ConnectionSettings,
        settings: SinkSettings | None = None,
        retry_policy: RetryPolicy | None = None,
        probe: SinkProbe | None = None,
        execution_probe: ExecutionProbe | None = None,
        connection_probe: ConnectionProbe | None = None,
        context: ObservationContext | None = None,
        manager_factory: ManagerFactory | None = None,
    ):
        """Initialize the sink. Nothing is connected until ``open``.

        Args:
            mapping_strategy: Turns each element into a statement
            config: Connection parameters, passed unchanged to
                ``ConnectionManager.open``
            settings: Batching and failure behaviour (defaults to the
                environment, see SinkSettings)
            retry_policy: Retry retryable failures with this policy; without
                one, every failure propagates on the first attempt
            probe: Lifecycle probe (optional)
            execution_probe: Statement probe (optional)
            connection_probe: Connection probe (optional)
            context: Observation context bound to every probe
            manager_factory: Creates the ConnectionManager; defaults to
                ``ConnectionManager.open``
        """
        self._strategy = mapping_strategy
        self._config = config
        self._settings = settings or get_sink_settings()
        self._retry_policy = retry_policy
        self._context = context
        self._manager_factory = manager_factory
        self._probe = probe or DefaultSinkProbe()
        self._execution_probe = execution_probe or DefaultExecutionProbe()
        self._connection_probe = connection_probe or DefaultConnectionProbe()
        if context is not None:
            self._bind_context(context)

        self._state = SinkState.CREATED
        self._manager: ConnectionManager | None = None
        self._executor: SinkExecutor[T] | RetryingExecutor[T] | None = None

    @property
    def state(self) -> SinkState:
        return self._state

    @property
    def settings(self) -> SinkSettings:
        return self._settings

    @property
    def pending(self) -> int:
        """Elements accepted but not yet written."""
        return self._executor.pending if self._executor is not None else 0

    def open(self) -> None:
        """Connect to the database and prepare the executor.

        Raises:
            SinkStateError: If the sink is not in the CREATED state.
            DatabaseConnectionError: If the database cannot be reached. The
                sink stays CREATED and may be opened again.
        """
        if self._state is not SinkState.CREATED:
            raise SinkStateError(
                f"Cannot open a sink in state '{self._state.value}'",
                state=self._state.value,
            )

        factory = self._manager_factory or ConnectionManager.open
        try:
            manager = factory(self._config, probe=self._connection_probe)
        except Exception as e:
            self._probe.open_failed(e)
            raise

        self._manager = manager
        self._executor = self._build_executor(manager)
        self._state = SinkState.OPENED
        self._probe.opened(manager.graph_name)

    def invoke(self, element: T) -> None:
        """Write one element.

        Raises:
            SinkStateError: If the sink is not open, or has failed.
            MappingError: If the element cannot be mapped.
            SessionError, ExecutionError: If the database write failed.
        """
        executor = self._require_open()
        try:
            executor.execute(element)
        except Exception as e:
            self._on_failure(e)
            raise

    def flush(self) -> None:
        """Write any buffered elements. Does nothing without batching."""
        executor = self._require_open()
        try:
            executor.flush()
        except Exception as e:
            self._on_failure(e)
            raise

    def close(self) -> None:
        """Flush, release the connections and move to CLOSED.

        Never raises: failures are reported through the probe. Closing a
        second time only logs.
        """
        if self._state is SinkState.CLOSED:
            self._probe.already_closed()
            return

        if self._executor is not None and self._state is SinkState.OPENED:
            try:
                self._executor.flush()
            except Exception as e:
                self._probe.close_failed(e)

        if self._manager is not None:
            try:
                self._manager.close()
            except Exception as e:
                self._probe.close_failed(e)

        self._manager = None
        self._executor = None
        self._state = SinkState.CLOSED
        self._probe.closed()

    def __enter__(self) -> GraphSink[T]:
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __getstate__(self) -> dict[str, Any]:
        """Ship the configuration only.

        The manager, executor and probes belong to the sending process. A
        sink unpickled before it was closed comes back in the CREATED state.
        """
        state = self.__dict__.copy()
        for key in _PROCESS_LOCAL:
            state.pop(key, None)
        if state["_state"] is SinkState.OPENED:
            state["_state"] = SinkState.CREATED
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        self._manager = None
        self._executor = None
        self._probe = DefaultSinkProbe()
        self._execution_probe = DefaultExecutionProbe()
        self._connection_probe = DefaultConnectionProbe()
        if self._context is not None:
            self._bind_context(self._context)

    def _bind_context(self, context: ObservationContext) -> None:
        self._probe = self._probe.with_context(context)
        self._execution_probe = self._execution_probe.with_context(context)
        self._connection_probe = self._connection_probe.with_context(context)

    def _build_executor(
        self, manager: ConnectionManager
    ) -> SinkExecutor[T] | RetryingExecutor[T]:
        strategy = self._strategy
        if self._settings.strict_templates and isinstance(
            strategy, DeserializationMappingStrategy
        ):
            strategy = strategy.with_strict(True)

        executor: SinkExecutor[T]
        if self._settings.batch_size > 1:
            executor = BatchingSinkExecutor(
                strategy,
                manager,
                batch_size=self._settings.batch_size,
                probe=self._execution_probe,
            )
        else:
            executor = SinkExecutor(strategy, manager, probe=self._execution_probe)

        if self._retry_policy is None:
            return executor
        return RetryingExecutor(
            executor, policy=self._retry_policy, probe=self._execution_probe
        )

    def _require_open(self) -> SinkExecutor[T] | RetryingExecutor[T]:
        if self._state is not SinkState.OPENED or self._executor is None:
            raise SinkStateError(
                f"Sink is not open (state '{self._state.value}')",
                state=self._state.value,
            )
        return self._executor

    def _on_failure(self, error: Exception) -> None:
        fatal = self._settings.fail_on_error
        self._probe.invocation_failed(error, fatal=fatal)
        if fatal:
            self._state = SinkState.FAILED
