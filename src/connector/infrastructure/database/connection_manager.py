"""Connection lifecycle for the graph database.

A ConnectionManager is created once per sink or source instance. It owns
the connection pool, verifies the endpoint when it is opened, hands out
lease-scoped sessions and tears everything down on close.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from infrastructure.database.connection_pool import ConnectionPool
from infrastructure.database.exceptions import (
    DatabaseConnectionError,
    DatabaseError,
)
from infrastructure.database.session import GraphSession
from infrastructure.observability.probes import (
    ConnectionProbe,
    DefaultConnectionProbe,
)
from infrastructure.settings import ConnectionSettings


class ConnectionManager:
    """Owns the pooled connections of one sink or source instance.

    Example:
        manager = ConnectionManager.open({"host": "db1", "pool-size": "2"})
        with manager.session() as session:
            session.run("MATCH (n) RETURN count(n)")
        manager.close()
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        pool: ConnectionPool,
        probe: ConnectionProbe | None = None,
    ):
        """Initialize the manager around an existing pool.

        Prefer ``ConnectionManager.open``, which also verifies the endpoint.

        Args:
            settings: Connection settings
            pool: Connection pool (required)
            probe: Optional observability probe
        """
        self._settings = settings
        self._pool = pool
        self._probe = probe or DefaultConnectionProbe()

    @classmethod
    def open(
        cls,
        config: Mapping[str, Any] | ConnectionSettings,
        probe: ConnectionProbe | None = None,
    ) -> ConnectionManager:
        """Create a manager and check that the database is usable.

        Args:
            config: Connection parameters as handed over by the host engine,
                or ready-made settings.
            probe: Optional observability probe

        Returns:
            An open ConnectionManager.

        Raises:
            DatabaseConnectionError: If the configuration is invalid, or the
                endpoint is unreachable or rejects the credentials.
        """
        probe = probe or DefaultConnectionProbe()
        if isinstance(config, ConnectionSettings):
            settings = config
        else:
            try:
                settings = ConnectionSettings.from_config(config)
            except ValidationError as e:
                raise DatabaseConnectionError(
                    f"Invalid connection configuration: {e}"
                ) from e

        pool = ConnectionPool(settings, probe=probe)
        manager = cls(settings, pool, probe=probe)
        try:
            manager._verify()
        except DatabaseError as e:
            probe.connection_failed(
                host=settings.host, database=settings.database, error=e
            )
            pool.close_all(drain_timeout=0)
            raise DatabaseConnectionError(f"Failed to connect: {e}") from e

        probe.connection_established(host=settings.host, database=settings.database)
        return manager

    @property
    def settings(self) -> ConnectionSettings:
        return self._settings

    @property
    def graph_name(self) -> str:
        """The name of the graph being operated on."""
        return self._settings.graph_name

    @property
    def closed(self) -> bool:
        return self._pool.closed

    def session(self, timeout: float | None = None) -> GraphSession:
        """Obtain a session from the pool.

        Args:
            timeout: Seconds to wait for a free connection; defaults to
                ``acquire_timeout_seconds``.

        Raises:
            SessionError: On timeout or broken transport (retryable).
            PoolClosedError: If the manager is closed, or is closed while
                this call waits.
        """
        conn = self._pool.get_connection(timeout=timeout)
        return GraphSession(
            conn,
            graph_name=self._settings.graph_name,
            release=self._pool.return_connection,
        )

    def close(self) -> None:
        """Release every pooled connection. Idempotent and never raises."""
        if not self._pool.close_all():
            self._probe.already_closed()

    def __enter__(self) -> ConnectionManager:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _verify(self) -> None:
        """Run a trivial query and make sure the target graph exists."""
        with self.session() as session:
            if session.ensure_graph():
                self._probe.graph_created(self.graph_name)
