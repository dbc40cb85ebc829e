"""Connection pool for Apache AGE/PostgreSQL.

This module provides connection pooling using psycopg2.pool.ThreadedConnectionPool.
The psycopg2 pool fails immediately when it is exhausted; this wrapper adds
a bounded wait so that callers block until a connection is returned, the
acquire timeout elapses, or the pool is closed.
"""

from __future__ import annotations

import threading
import time
import weakref
from typing import TYPE_CHECKING

import psycopg2
from psycopg2 import pool as psycopg2_pool

from infrastructure.database.exceptions import (
    DatabaseConnectionError,
    PoolClosedError,
    SessionError,
)
from infrastructure.observability.probes import (
    ConnectionProbe,
    DefaultConnectionProbe,
)

if TYPE_CHECKING:
    from psycopg2.extensions import connection as PsycopgConnection

    from infrastructure.settings import ConnectionSettings


class ConnectionPool:
    """Thread-safe, bounded connection pool for PostgreSQL/AGE.

    Wraps psycopg2.pool.ThreadedConnectionPool and ensures all connections
    have the AGE extension properly configured.

    Attributes:
        _settings: Connection settings
        _pool: The underlying ThreadedConnectionPool instance
        _probe: Observability probe for monitoring
        _leased: Number of connections currently handed out
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        probe: ConnectionProbe | None = None,
    ):
        """Initialize the connection pool.

        Opens ``pool_min_connections`` connections right away, so that an
        unreachable host or bad credentials fail here rather than on first use.

        Args:
            settings: Connection settings
            probe: Optional observability probe

        Raises:
            DatabaseConnectionError: If the pool cannot be created.
        """
        self._settings = settings
        self._probe = probe or DefaultConnectionProbe()
        self._condition = threading.Condition()
        self._leased = 0
        self._closed = False
        self._configured: weakref.WeakSet[PsycopgConnection] = weakref.WeakSet()
        self._pool: psycopg2_pool.ThreadedConnectionPool | None = None
        self._initialize_pool()

    def _initialize_pool(self) -> None:
        """Initialize the ThreadedConnectionPool."""
        try:
            self._pool = psycopg2_pool.ThreadedConnectionPool(
                minconn=self._settings.pool_min_connections,
                maxconn=self._settings.pool_max_connections,
                host=self._settings.host,
                port=self._settings.port,
                dbname=self._settings.database,
                user=self._settings.username,
                password=self._settings.password.get_secret_value(),
                connect_timeout=self._settings.connect_timeout_seconds,
            )
            self._probe.pool_initialized(
                min_conn=self._settings.pool_min_connections,
                max_conn=self._settings.pool_max_connections,
            )
        except psycopg2.Error as e:
            self._probe.pool_initialization_failed(error=e)
            raise DatabaseConnectionError(
                f"Failed to initialize connection pool: {e}"
            ) from e

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def leased(self) -> int:
        """Number of connections currently handed out."""
        return self._leased

    def get_connection(self, timeout: float | None = None) -> PsycopgConnection:
        """Get a connection from the pool, waiting for one if necessary.

        The connection will have AGE extension configured.

        Args:
            timeout: Seconds to wait for a free connection. Defaults to
                ``acquire_timeout_seconds`` from the settings.

        Returns:
            A configured psycopg2 connection.

        Raises:
            PoolClosedError: If the pool is closed, or gets closed while waiting.
            SessionError: On timeout or if the connection cannot be set up.
        """
        wait = self._settings.acquire_timeout_seconds if timeout is None else timeout
        deadline = time.monotonic() + wait

        with self._condition:
            while True:
                if self._closed:
                    self._probe.session_wait_abandoned()
                    raise PoolClosedError("Connection pool is closed")
                if self._leased < self._settings.pool_max_connections:
                    self._leased += 1
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._probe.pool_exhausted(timeout_seconds=wait)
                    raise SessionError(
                        f"Pool exhausted, no connection became free within {wait}s"
                    )
                self._condition.wait(remaining)

        try:
            assert self._pool is not None
            conn = self._pool.getconn()
        except (psycopg2.Error, psycopg2_pool.PoolError) as e:
            self._release_slot()
            raise SessionError(f"Cannot get connection: {e}") from e

        try:
            self._ensure_age_setup(conn)
        except psycopg2.Error as e:
            self.return_connection(conn, discard=True)
            raise SessionError(f"Connection is not usable: {e}") from e

        self._probe.connection_acquired_from_pool()
        return conn

    def return_connection(
        self, conn: PsycopgConnection, discard: bool = False
    ) -> None:
        """Return a connection to the pool.

        Args:
            conn: The connection to return.
            discard: Close the connection instead of keeping it for reuse.
        """
        try:
            if discard or self._closed:
                self._configured.discard(conn)
            if self._closed or self._pool is None:
                # closeall() already ran; this lease outlived the pool.
                conn.close()
            else:
                self._pool.putconn(conn, close=discard)
                if discard:
                    self._probe.connection_discarded()
                else:
                    self._probe.connection_returned_to_pool()
        except Exception as e:
            self._probe.connection_return_failed(error=e)
        finally:
            self._release_slot()

    def close_all(self, drain_timeout: float | None = None) -> bool:
        """Close the pool and wake every waiter.

        Pending ``get_connection`` calls fail with PoolClosedError at once.
        Connections still leased are given up to ``drain_timeout`` seconds
        (default: the acquire timeout) to come back, so a statement already
        running is not cut off; then every pooled connection is closed.

        Returns:
            False if the pool was already closed, True otherwise.
        """
        wait = (
            self._settings.acquire_timeout_seconds
            if drain_timeout is None
            else drain_timeout
        )
        deadline = time.monotonic() + wait

        with self._condition:
            if self._closed:
                return False
            self._closed = True
            self._condition.notify_all()
            while self._leased > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._condition.wait(remaining)

        if self._pool is not None:
            try:
                self._pool.closeall()
            except (psycopg2.Error, psycopg2_pool.PoolError) as e:
                self._probe.pool_close_failed(error=e)
            self._pool = None
        self._configured.clear()
        self._probe.pool_closed()
        return True

    def _release_slot(self) -> None:
        with self._condition:
            self._leased -= 1
            self._condition.notify_all()

    def _ensure_age_setup(self, conn: PsycopgConnection) -> None:
        """Ensure AGE extension is configured on the connection.

        Configured connections are held weakly: once psycopg2 closes and
        drops a surplus connection, a new one is never mistaken for it.
        """
        if conn in self._configured:
            return

        self._setup_age(conn)
        self._configured.add(conn)

    def _setup_age(self, conn: PsycopgConnection) -> None:
        """Set up AGE extension on the connection.

        Args:
            conn: The connection to configure
        """
        with conn.cursor() as cursor:
            cursor.execute("LOAD 'age';")
            cursor.execute('SET search_path = ag_catalog, "$user", public;')
        conn.commit()
