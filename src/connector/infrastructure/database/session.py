"""Lease-scoped graph sessions.

A GraphSession wraps one pooled psycopg2 connection for the duration of a
single unit of work: one element, or one batch of elements. It is released
exactly once, and a connection that broke while leased is discarded
instead of being handed to the next caller.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import psycopg2

from infrastructure.database.cypher import build_cypher_sql, encode_parameters
from infrastructure.database.exceptions import (
    DatabaseConnectionError,
    SessionClosedError,
    TransactionError,
    TransientExecutionError,
    translate_query_error,
)
from infrastructure.database.protocols import CypherResult

if TYPE_CHECKING:
    from psycopg2.extensions import connection as PsycopgConnection


class GraphSession:
    """One logical conversation with the graph database.

    Example:
        with manager.session() as session:
            session.run("CREATE (n:Person {name: $name})", {"name": "Bob"})
    """

    def __init__(
        self,
        connection: PsycopgConnection,
        graph_name: str,
        release: Callable[[PsycopgConnection, bool], None],
    ):
        """Initialize the session.

        Args:
            connection: A leased connection with AGE configured
            graph_name: Graph the queries run against
            release: Called once with the connection and whether to discard it
        """
        self._connection = connection
        self._graph_name = graph_name
        self._release = release
        self._closed = False
        self._broken = False
        self._in_transaction = False
        self._prepared: list[str] = []

    @property
    def graph_name(self) -> str:
        return self._graph_name

    @property
    def closed(self) -> bool:
        return self._closed

    def run(
        self,
        query: str,
        parameters: Mapping[str, Any] | None = None,
    ) -> CypherResult:
        """Execute a Cypher query and commit it.

        Args:
            query: The Cypher query string (without the cypher() wrapper).
            parameters: Values for the ``$name`` references in the query.

        Returns:
            CypherResult containing the query results.

        Raises:
            QuerySyntaxError: If the database rejects the query.
            TransientExecutionError: On connectivity loss or deadlock.
            ExecutionError: On any other database failure.
        """
        self._ensure_usable()
        if self._in_transaction:
            raise TransactionError("Use the open transaction to run queries")

        try:
            result = self._execute(query, parameters)
            self._connection.commit()
            return result
        except psycopg2.Error as e:
            self._rollback()
            raise self._translate(e, query) from e

    @contextmanager
    def transaction(self) -> Iterator[_SessionTransaction]:
        """Create a transaction context for atomic operations.

        Usage:
            with session.transaction() as tx:
                tx.run("CREATE ...", {...})
                tx.run("CREATE ...", {...})
                # Auto-commits on success, rolls back on exception
        """
        self._ensure_usable()
        if self._in_transaction:
            raise TransactionError("Session already has an open transaction")

        tx = _SessionTransaction(self)
        self._in_transaction = True
        try:
            yield tx
            if not tx.finalized:
                tx.commit()
        except BaseException:
            if not tx.finalized:
                tx.rollback()
            raise
        finally:
            self._in_transaction = False

    def ensure_graph(self) -> bool:
        """Verify the connection and make sure the graph exists.

        Returns:
            True if the graph was missing and has been created.

        Raises:
            DatabaseConnectionError: If the check fails.
        """
        self._ensure_usable()
        created = False
        try:
            with self._connection.cursor() as cursor:
                cursor.execute("SELECT 1")
                row = cursor.fetchone()
                if row is None or row[0] != 1:
                    raise DatabaseConnectionError("Connection check returned no row")
                cursor.execute(
                    "SELECT 1 FROM ag_catalog.ag_graph WHERE name = %s",
                    (self._graph_name,),
                )
                if cursor.fetchone() is None:
                    cursor.execute(
                        "SELECT ag_catalog.create_graph(%s)",
                        (self._graph_name,),
                    )
                    created = True
            self._connection.commit()
        except psycopg2.Error as e:
            self._rollback()
            self._broken = True
            raise DatabaseConnectionError(f"Connection check failed: {e}") from e
        return created

    def close(self) -> None:
        """Release the session back to its pool. Idempotent."""
        if self._closed:
            return
        self._closed = True
        discard = self._broken or bool(getattr(self._connection, "closed", False))
        self._release(self._connection, discard)

    def __enter__(self) -> GraphSession:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _ensure_usable(self) -> None:
        if self._closed:
            raise SessionClosedError("Session is closed")

    def _execute(
        self,
        query: str,
        parameters: Mapping[str, Any] | None,
    ) -> CypherResult:
        """Run one query without committing.

        Parameterized queries go through a server-side prepared statement,
        the only form in which AGE accepts a cypher() parameter map.
        """
        with self._connection.cursor() as cursor:
            if parameters:
                name = f"graph_sink_{uuid4().hex}"
                sql = build_cypher_sql(self._graph_name, query, parameterized=True)
                cursor.execute(f"PREPARE {name}(agtype) AS {sql}")
                self._prepared.append(name)
                cursor.execute(
                    f"EXECUTE {name}(%s)",
                    (encode_parameters(parameters),),
                )
                rows = cursor.fetchall() if cursor.description else []
                cursor.execute(f"DEALLOCATE {name}")
                self._prepared.remove(name)
            else:
                cursor.execute(build_cypher_sql(self._graph_name, query))
                rows = cursor.fetchall() if cursor.description else []

        return CypherResult(rows=tuple(rows), row_count=len(rows))

    def _rollback(self) -> None:
        """Roll back and drop prepared statements left by a failed query.

        If the connection cannot even do that, it is marked broken and gets
        discarded on close.
        """
        try:
            self._connection.rollback()
            if self._prepared:
                with self._connection.cursor() as cursor:
                    for name in self._prepared:
                        cursor.execute(f"DEALLOCATE {name}")
                self._connection.commit()
        except psycopg2.Error:
            self._broken = True
        finally:
            self._prepared.clear()

    def _translate(self, error: psycopg2.Error, query: str) -> Exception:
        translated = translate_query_error(error, query=query)
        if isinstance(translated, TransientExecutionError):
            self._broken = True
        return translated


class _SessionTransaction:
    """Internal transaction implementation for GraphSession."""

    def __init__(self, session: GraphSession):
        self._session = session
        self._committed = False
        self._rolled_back = False

    @property
    def finalized(self) -> bool:
        return self._committed or self._rolled_back

    def run(
        self,
        query: str,
        parameters: Mapping[str, Any] | None = None,
    ) -> CypherResult:
        """Execute a Cypher query within the transaction."""
        if self.finalized:
            raise TransactionError("Transaction already finalized")

        try:
            return self._session._execute(query, parameters)
        except psycopg2.Error as e:
            raise self._session._translate(e, query) from e

    def commit(self) -> None:
        """Commit the transaction."""
        if self._rolled_back:
            raise TransactionError("Cannot commit a rolled-back transaction")
        if not self._committed:
            try:
                self._session._connection.commit()
            except psycopg2.Error as e:
                self._session._rollback()
                self._rolled_back = True
                raise self._session._translate(e, "COMMIT") from e
            self._committed = True

    def rollback(self) -> None:
        """Rollback the transaction."""
        if self._committed:
            raise TransactionError("Cannot rollback a committed transaction")
        if not self._rolled_back:
            self._session._rollback()
            self._rolled_back = True
