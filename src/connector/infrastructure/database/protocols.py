"""Session protocols for the graph database.

These protocols enable dependency inversion: the sink and source depend on
the narrow ``run(query, parameters) -> result`` capability rather than on
psycopg2 or the pool.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Protocol, Sequence, Union

from age.models import Edge, Path, Vertex


@dataclass(frozen=True)
class CypherResult:
    """Container for Cypher query results.

    Results contain tuples where each element can be:
    - Vertex: A graph node with id, label, and properties
    - Edge: A graph relationship with id, label, start_id, end_id, and properties
    - Path: A graph path containing vertices and edges
    - Any: Other AGType values (scalars, lists, etc.)
    """

    rows: Sequence[tuple[Union[Vertex, Edge, Path, Any], ...]]
    row_count: int


class GraphTransactionProtocol(Protocol):
    """Protocol for a transaction opened on a session."""

    def run(
        self,
        query: str,
        parameters: Mapping[str, Any] | None = None,
    ) -> CypherResult:
        """Execute a Cypher query within the transaction."""
        ...

    def commit(self) -> None:
        """Commit the transaction."""
        ...

    def rollback(self) -> None:
        """Rollback the transaction."""
        ...


class GraphSessionProtocol(Protocol):
    """Protocol for a leased database session."""

    @property
    def closed(self) -> bool:
        """Whether the session has been released."""
        ...

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
            ExecutionError: If query execution fails.
        """
        ...

    def transaction(self) -> AbstractContextManager[GraphTransactionProtocol]:
        """Create a transaction context for atomic operations.

        Usage:
            with session.transaction() as tx:
                tx.run("CREATE ...", {...})
                tx.run("CREATE ...", {...})
                # Auto-commits on success, rolls back on exception
        """
        ...

    def close(self) -> None:
        """Release the session. Calling it again has no effect."""
        ...

    def __enter__(self) -> GraphSessionProtocol: ...

    def __exit__(self, *exc_info: Any) -> None: ...


class SessionProviderProtocol(Protocol):
    """Anything that hands out sessions, normally a ConnectionManager."""

    def session(self, timeout: float | None = None) -> GraphSessionProtocol:
        """Obtain a session, waiting up to ``timeout`` seconds for one.

        Raises:
            SessionError: If no session can be obtained.
        """
        ...
