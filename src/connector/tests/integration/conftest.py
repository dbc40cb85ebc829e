"""Integration test fixtures for database tests.

These fixtures require a running PostgreSQL instance with AGE extension.
Connection values come from the GRAPH_SINK_DB_* environment variables.
"""

from collections.abc import Generator

import pytest

from infrastructure.database.connection_manager import ConnectionManager
from infrastructure.settings import ConnectionSettings


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires database)",
    )


@pytest.fixture(scope="session")
def integration_settings() -> ConnectionSettings:
    """Connection settings for integration tests.

    Override with environment variables:
        GRAPH_SINK_DB_HOST, GRAPH_SINK_DB_PORT, etc.
    """
    settings = ConnectionSettings()
    if settings.graph_name == "stream_graph":
        settings = settings.model_copy(update={"graph_name": "test_graph"})
    return settings


@pytest.fixture
def manager(
    integration_settings: ConnectionSettings,
) -> Generator[ConnectionManager, None, None]:
    """Provide an open connection manager over an empty graph."""
    manager = ConnectionManager.open(integration_settings)
    with manager.session() as session:
        session.run("MATCH (n) DETACH DELETE n")
    yield manager
    with manager.session() as session:
        session.run("MATCH (n) DETACH DELETE n")
    manager.close()
