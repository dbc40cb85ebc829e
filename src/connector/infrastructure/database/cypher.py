"""Utilities for safe Cypher query construction.

Apache AGE executes Cypher through a SQL function:

    SELECT * FROM cypher('graph_name', $tag$ CYPHER_QUERY $tag$, $1) AS (result agtype)

The optional third argument carries the query parameters as an ``agtype``
map. AGE only accepts it as a real statement parameter, which is why
parameterized queries go through PREPARE/EXECUTE.
"""

from __future__ import annotations

import json
import secrets
import string
from collections.abc import Callable, Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class InsecureCypherQueryError(ValueError):
    """Raised when a Cypher query contains the dollar-quote tag chosen for it."""

    def __init__(self, message: str, query: str | None = None):
        super().__init__(message)
        self.query = query


def generate_cypher_nonce() -> str:
    """Generate a random nonce for Cypher dollar-quoting.

    Returns a 64-character random string for use as a unique delimiter
    in Cypher queries. This prevents injection attacks via $$ breakout.

    Returns:
        64-character random alphabetic string
    """
    return "".join(secrets.choice(string.ascii_letters) for _ in range(64))


def build_cypher_sql(
    graph_name: str,
    query: str,
    parameterized: bool = False,
    nonce_generator: Callable[[], str] | None = None,
) -> str:
    """Build the SQL statement for executing a Cypher query via AGE.

    A unique dollar-quote tag (as opposed to the default $$) is generated
    for each query. If the tag body is found in the query an
    InsecureCypherQueryError is raised.

    Note that the return type is hard-coded to ``(result agtype)``: the
    query must return a single column, or nothing at all.

    Args:
        graph_name: The AGE graph to run against.
        query: The Cypher text, with ``$name`` parameter references.
        parameterized: Pass ``$1`` as the cypher() parameter map.
        nonce_generator: Returns the random tag body; defaults to
            generate_cypher_nonce.
    """
    nonce = (nonce_generator or generate_cypher_nonce)()
    if nonce in query:
        raise InsecureCypherQueryError(
            message="Unique nonce detected in cypher query.", query=query
        )

    tag = f"${nonce}$"
    params_arg = ", $1" if parameterized else ""
    return (
        f"SELECT * FROM cypher('{graph_name}', {tag} {query} {tag}{params_arg}) "
        f"AS (result agtype)"
    )


def _json_default(value: Any) -> Any:
    """Encode the non-JSON parameter types the mapping layer accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_parameters(parameters: Mapping[str, Any]) -> str:
    """Encode a parameter binding as the agtype map literal AGE expects."""
    return json.dumps(dict(parameters), default=_json_default)
