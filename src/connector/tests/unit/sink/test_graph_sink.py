"""Unit tests for GraphSink."""

import pickle
from unittest.mock import MagicMock, patch

import pytest

from infrastructure.database.connection_manager import ConnectionManager
from infrastructure.database.exceptions import (
    DatabaseConnectionError,
    QuerySyntaxError,
    TransientExecutionError,
)
from infrastructure.observability import ObservationContext
from infrastructure.settings import SinkSettings
from mapping.application.strategies import DeserializationMappingStrategy
from mapping.converters import FieldConverter, ScalarConverter
from mapping.domain.exceptions import ConversionError, TemplateError
from sink.application.retry import RetryPolicy
from sink.exceptions import SinkStateError
from sink.graph_sink import GraphSink, SinkState

TEMPLATE = "CREATE (n:Person {name: {name}})"
CONFIG = {"host": "db1", "graph": "people"}


@pytest.fixture
def strategy():
    return DeserializationMappingStrategy(TEMPLATE, ScalarConverter("name"))


@pytest.fixture
def sink_probe():
    return MagicMock()


@pytest.fixture
def make_sink(strategy, fake_connections, sink_probe):
    """Build sinks whose manager is the in-memory session provider."""
    factory = MagicMock(return_value=fake_connections)

    def build(settings=None, **kwargs):
        kwargs.setdefault("mapping_strategy", strategy)
        return GraphSink(
            config=CONFIG,
            settings=settings or SinkSettings(),
            probe=sink_probe,
            manager_factory=factory,
            **kwargs,
        )

    build.factory = factory
    return build


class TestOpen:
    """Tests for GraphSink.open."""

    def test_open_connects_with_config(self, make_sink, sink_probe):
        sink = make_sink()

        sink.open()

        assert sink.state is SinkState.OPENED
        assert make_sink.factory.call_args.args == (CONFIG,)
        sink_probe.opened.assert_called_once_with("test_graph")

    def test_uses_connection_manager_by_default(self, strategy, fake_connections):
        sink = GraphSink(strategy, CONFIG, settings=SinkSettings())

        with patch.object(
            ConnectionManager, "open", return_value=fake_connections
        ) as mock_open:
            sink.open()

        assert mock_open.call_args.args == (CONFIG,)
        assert sink.state is SinkState.OPENED

    def test_connection_failure_is_fatal_and_leaves_sink_created(
        self, make_sink, sink_probe
    ):
        sink = make_sink()
        make_sink.factory.side_effect = DatabaseConnectionError("refused")

        with pytest.raises(DatabaseConnectionError):
            sink.open()

        assert sink.state is SinkState.CREATED
        sink_probe.open_failed.assert_called_once()

    def test_open_twice_is_rejected(self, make_sink):
        sink = make_sink()
        sink.open()

        with pytest.raises(SinkStateError):
            sink.open()

    def test_closed_sink_cannot_be_reopened(self, make_sink):
        sink = make_sink()
        sink.close()

        with pytest.raises(SinkStateError):
            sink.open()


class TestInvoke:
    """Tests for GraphSink.invoke."""

    def test_end_to_end_success(self, make_sink, fake_connections):
        """Elements should be written in order, one session each."""
        sink = make_sink()
        sink.open()

        sink.invoke("Bob")
        sink.invoke("Ann")
        sink.close()

        assert fake_connections.committed == [
            ("CREATE (n:Person {name: $name})", {"name": "Bob"}),
            ("CREATE (n:Person {name: $name})", {"name": "Ann"}),
        ]
        assert [s.close_count for s in fake_connections.sessions] == [1, 1]
        assert fake_connections.close_count == 1

    def test_invoke_before_open_is_rejected(self, make_sink):
        with pytest.raises(SinkStateError):
            make_sink().invoke("Bob")

    def test_invoke_after_close_is_rejected(self, make_sink):
        sink = make_sink()
        sink.open()
        sink.close()

        with pytest.raises(SinkStateError):
            sink.invoke("Bob")

    def test_missing_field_fails_only_that_element(
        self, make_sink, fake_connections, sink_probe
    ):
        """Without fail_on_error the sink keeps accepting elements."""
        sink = make_sink(
            mapping_strategy=DeserializationMappingStrategy(
                TEMPLATE, FieldConverter(["name"])
            )
        )
        sink.open()

        with pytest.raises(ConversionError):
            sink.invoke({"age": 3})
        sink.invoke({"name": "Bob"})

        assert sink.state is SinkState.OPENED
        assert len(fake_connections.committed) == 1
        sink_probe.invocation_failed.assert_called_once()

    def test_fail_on_error_moves_sink_to_failed(self, make_sink, make_connections):
        connections = make_connections(failures={0: QuerySyntaxError("bad")})
        sink = make_sink(settings=SinkSettings(fail_on_error=True))
        make_sink.factory.return_value = connections
        sink.open()

        with pytest.raises(QuerySyntaxError):
            sink.invoke("Bob")

        assert sink.state is SinkState.FAILED
        with pytest.raises(SinkStateError):
            sink.invoke("Ann")

        sink.close()
        assert sink.state is SinkState.CLOSED
        assert connections.close_count == 1

    def test_strict_templates_setting_checks_placeholders(self, make_sink):
        sink = make_sink(
            settings=SinkSettings(strict_templates=True),
            mapping_strategy=DeserializationMappingStrategy(
                "CREATE (n {name: $name, age: $age})", ScalarConverter("name")
            ),
        )
        sink.open()

        with pytest.raises(TemplateError):
            sink.invoke("Bob")

    def test_retry_policy_retries_transient_failures(
        self, make_sink, make_connections
    ):
        connections = make_connections(failures={0: TransientExecutionError("lost")})
        sink = make_sink(retry_policy=RetryPolicy(backoff_seconds=0))
        make_sink.factory.return_value = connections
        sink.open()

        sink.invoke("Bob")

        assert len(connections.committed) == 1


class TestBatchingSink:
    """Tests for a sink with batching enabled."""

    def test_close_flushes_pending_batch(self, make_sink, fake_connections):
        sink = make_sink(settings=SinkSettings(batch_size=10))
        sink.open()

        sink.invoke("Bob")
        sink.invoke("Ann")
        assert sink.pending == 2
        assert fake_connections.committed == []

        sink.close()

        assert [p["name"] for _, p in fake_connections.committed] == ["Bob", "Ann"]

    def test_explicit_flush(self, make_sink, fake_connections):
        sink = make_sink(settings=SinkSettings(batch_size=10))
        sink.open()
        sink.invoke("Bob")

        sink.flush()

        assert sink.pending == 0
        assert len(fake_connections.committed) == 1

    def test_close_reports_flush_failure_without_raising(
        self, make_sink, make_connections, sink_probe
    ):
        connections = make_connections(failures={0: QuerySyntaxError("bad")})
        sink = make_sink(settings=SinkSettings(batch_size=10))
        make_sink.factory.return_value = connections
        sink.open()
        sink.invoke("Bob")

        sink.close()

        sink_probe.close_failed.assert_called_once()
        assert connections.close_count == 1
        assert sink.state is SinkState.CLOSED


class TestClose:
    """Tests for GraphSink.close."""

    def test_close_twice_is_harmless(self, make_sink, fake_connections, sink_probe):
        sink = make_sink()
        sink.open()

        sink.close()
        sink.close()

        assert fake_connections.close_count == 1
        sink_probe.already_closed.assert_called_once()

    def test_close_never_raises(self, make_sink, fake_connections, sink_probe):
        sink = make_sink()
        sink.open()
        fake_connections.close = MagicMock(side_effect=RuntimeError("boom"))

        sink.close()

        sink_probe.close_failed.assert_called_once()
        assert sink.state is SinkState.CLOSED

    def test_close_without_open(self, make_sink):
        sink = make_sink()

        sink.close()

        assert sink.state is SinkState.CLOSED
        make_sink.factory.assert_not_called()

    def test_context_manager_opens_and_closes(self, make_sink, fake_connections):
        with make_sink() as sink:
            assert sink.state is SinkState.OPENED
            sink.invoke("Bob")

        assert sink.state is SinkState.CLOSED
        assert fake_connections.close_count == 1


class TestPickling:
    """Tests for shipping a sink to another process."""

    def test_pickled_sink_leaves_connections_behind(self, strategy, fake_connections):
        sink = GraphSink(
            strategy,
            CONFIG,
            settings=SinkSettings(batch_size=5),
            context=ObservationContext(job_id="orders"),
        )
        with patch.object(ConnectionManager, "open", return_value=fake_connections):
            sink.open()

        restored = pickle.loads(pickle.dumps(sink))

        assert restored.state is SinkState.CREATED
        assert restored.pending == 0
        assert restored.settings.batch_size == 5
        assert restored._manager is None
        assert restored._executor is None
        # The original keeps its connections.
        assert sink.state is SinkState.OPENED

    def test_restored_sink_can_be_opened(self, strategy, fake_connections):
        sink = GraphSink(strategy, CONFIG, settings=SinkSettings())
        restored = pickle.loads(pickle.dumps(sink))

        with patch.object(ConnectionManager, "open", return_value=fake_connections):
            restored.open()
        restored.invoke("Bob")

        assert len(fake_connections.committed) == 1
