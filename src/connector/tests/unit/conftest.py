"""Unit test fixtures with mocked dependencies."""

from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest
from pydantic import SecretStr

from infrastructure.database.protocols import CypherResult


@pytest.fixture
def mock_connection_settings():
    """Provide test connection settings."""
    from infrastructure.settings import ConnectionSettings

    return ConnectionSettings(
        host="testhost",
        port=5432,
        database="testdb",
        username="testuser",
        password=SecretStr("testpass"),
        graph_name="test_graph",
        pool_min_connections=1,
        pool_max_connections=2,
        acquire_timeout_seconds=0.2,
    )


@pytest.fixture
def mock_psycopg2_connection():
    """Provide a mocked psycopg2 connection."""
    conn = MagicMock()
    conn.closed = False

    cursor = MagicMock()
    cursor.fetchall.return_value = []
    cursor.fetchone.return_value = (1,)
    cursor.description = None

    # Set up context manager
    cursor.__enter__ = MagicMock(return_value=cursor)
    cursor.__exit__ = MagicMock(return_value=False)
    conn.cursor.return_value = cursor

    return conn, cursor


class FakeTransaction:
    """Transaction double recording the statements it ran."""

    def __init__(self, session):
        self._session = session

    def run(self, query, parameters=None):
        return self._session.run_in_transaction(query, parameters)


class FakeSession:
    """Session double recording statements and how often it was closed.

    ``failures`` maps a call index (0-based, counted over every run) to the
    exception raised by that call.
    """

    def __init__(self, log, failures=None):
        self.log = log
        self.failures = failures if failures is not None else {}
        self.close_count = 0
        self.committed = []
        self.rolled_back = 0
        self._pending = []

    def _record(self, query, parameters):
        index = len(self.log.calls)
        self.log.calls.append((query, dict(parameters or {})))
        error = self.failures.get(index)
        if error is not None:
            raise error
        return CypherResult(rows=[], row_count=0)

    def run(self, query, parameters=None):
        result = self._record(query, parameters)
        self.committed.append((query, dict(parameters or {})))
        return result

    def run_in_transaction(self, query, parameters=None):
        result = self._record(query, parameters)
        self._pending.append((query, dict(parameters or {})))
        return result

    @contextmanager
    def transaction(self):
        try:
            yield FakeTransaction(self)
        except BaseException:
            self._pending = []
            self.rolled_back += 1
            raise
        self.committed.extend(self._pending)
        self._pending = []

    def close(self):
        self.close_count += 1

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class FakeConnections:
    """Session provider double handing out FakeSession objects.

    Attributes:
        calls: Every (query, parameters) pair run, in order
        sessions: Every session handed out, in order
        session_error: Raised by ``session()`` instead of a session when set
    """

    def __init__(self, failures=None, graph_name="test_graph"):
        self.calls = []
        self.sessions = []
        self.failures = failures if failures is not None else {}
        self.session_error = None
        self.graph_name = graph_name
        self.close_count = 0

    @property
    def committed(self):
        return [stmt for session in self.sessions for stmt in session.committed]

    def session(self, timeout=None):
        if self.session_error is not None:
            error, self.session_error = self.session_error, None
            raise error
        session = FakeSession(self, self.failures)
        self.sessions.append(session)
        return session

    def close(self):
        self.close_count += 1


@pytest.fixture
def fake_connections():
    """Provide an in-memory session provider."""
    return FakeConnections()


@pytest.fixture
def mock_execution_probe():
    """Provide a mocked execution probe."""
    return MagicMock()


@pytest.fixture
def make_connections():
    """Provide a factory for session providers with scripted failures."""
    return FakeConnections
