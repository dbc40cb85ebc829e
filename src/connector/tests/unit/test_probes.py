"""Unit tests for domain probes.

Tests that domain probes correctly capture domain events
following the Domain Oriented Observability pattern.
"""

from unittest.mock import MagicMock

import structlog

from infrastructure.observability import ObservationContext
from infrastructure.observability.probes import (
    DefaultConnectionProbe,
)


class TestConnectionProbe:
    """Tests for ConnectionProbe protocol and implementation."""

    def test_default_probe_creates_with_default_logger(self):
        """Default probe should work without explicit logger."""
        probe = DefaultConnectionProbe()
        assert probe._logger is not None

    def test_default_probe_accepts_custom_logger(self):
        """Default probe should accept a custom logger."""
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)
        assert probe._logger is mock_logger

    def test_connection_established_logs_info(self):
        """connection_established should log with host and database."""
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.connection_established(host="localhost", database="testdb")

        mock_logger.info.assert_called_once_with(
            "database_connection_established",
            host="localhost",
            database="testdb",
        )

    def test_connection_failed_logs_error(self):
        """connection_failed should log error with host, database, and error."""
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)
        error = Exception("Connection refused")

        probe.connection_failed(host="localhost", database="testdb", error=error)

        mock_logger.error.assert_called_once_with(
            "database_connection_failed",
            host="localhost",
            database="testdb",
            error="Connection refused",
        )

    def test_graph_created_logs_info(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.graph_created("people")

        mock_logger.info.assert_called_once_with("graph_created", graph_name="people")

    def test_pool_initialized_logs_bounds(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.pool_initialized(min_conn=1, max_conn=4)

        mock_logger.info.assert_called_once_with(
            "connection_pool_initialized",
            min_connections=1,
            max_connections=4,
        )

    def test_pool_exhausted_logs_warning(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.pool_exhausted(timeout_seconds=2.0)

        mock_logger.warning.assert_called_once_with(
            "connection_pool_exhausted",
            timeout_seconds=2.0,
        )

    def test_pool_lifecycle_events(self):
        """Lease, return, discard and close events should each be logged."""
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.connection_acquired_from_pool()
        probe.connection_returned_to_pool()
        probe.connection_discarded()
        probe.session_wait_abandoned()
        probe.pool_closed()

        debug_events = [call.args[0] for call in mock_logger.debug.call_args_list]
        assert debug_events == [
            "connection_acquired_from_pool",
            "connection_returned_to_pool",
        ]
        mock_logger.warning.assert_called_once_with("connection_discarded")
        info_events = [call.args[0] for call in mock_logger.info.call_args_list]
        assert info_events == ["session_wait_abandoned", "connection_pool_closed"]

    def test_close_failures_log_errors(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.connection_return_failed(error=Exception("bad"))
        probe.pool_close_failed(error=Exception("worse"))

        mock_logger.error.assert_any_call("connection_return_failed", error="bad")
        mock_logger.error.assert_any_call(
            "connection_pool_close_failed", error="worse"
        )

    def test_already_closed_logs_warning(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.already_closed()

        mock_logger.warning.assert_called_once_with(
            "connection_manager_already_closed"
        )


class TestObservationContext:
    """Tests for ObservationContext."""

    def test_as_dict_includes_only_set_values(self):
        context = ObservationContext(job_id="orders", task_id="3")
        assert context.as_dict() == {"job_id": "orders", "task_id": "3"}

    def test_with_graph_returns_new_context(self):
        context = ObservationContext(job_id="orders")

        updated = context.with_graph("people")

        assert updated.graph_name == "people"
        assert context.graph_name is None

    def test_with_extra_merges_metadata(self):
        context = ObservationContext(extra={"a": 1})

        updated = context.with_extra(b=2)

        assert updated.as_dict() == {"a": 1, "b": 2}
        assert context.extra == {"a": 1}

    def test_probe_includes_context_in_events(self):
        """Events from a probe with context should carry the context."""
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        context = ObservationContext(job_id="orders", sink_name="people-sink")
        probe = DefaultConnectionProbe(logger=mock_logger).with_context(context)

        probe.connection_established(host="localhost", database="testdb")

        mock_logger.info.assert_called_once_with(
            "database_connection_established",
            host="localhost",
            database="testdb",
            job_id="orders",
            sink_name="people-sink",
        )
