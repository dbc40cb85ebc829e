"""Observation context for domain-oriented observability.

Observation contexts collect and manage contextual metadata for instrumentation,
following the Domain Oriented Observability pattern.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class ObservationContext:
    """Immutable context containing metadata for observability.

    Captures the metadata of one sink or source instance that should be
    included with all instrumentation events, so that events from parallel
    partitions of the same job can be told apart.

    Attributes:
        job_id: Identifier of the streaming job (if applicable).
        task_id: Identifier of the parallel instance, e.g. a partition index.
        sink_name: Name of the sink or source emitting the event.
        graph_name: Name of the graph being written to (if applicable).
        extra: Additional contextual metadata.

    Example:
        context = ObservationContext(job_id="orders", task_id="3")
        probe = DefaultConnectionProbe().with_context(context)
    """

    job_id: str | None = None
    task_id: str | None = None
    sink_name: str | None = None
    graph_name: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging.

        Only includes non-None values to keep logs clean.
        """
        result: dict[str, Any] = {}
        if self.job_id is not None:
            result["job_id"] = self.job_id
        if self.task_id is not None:
            result["task_id"] = self.task_id
        if self.sink_name is not None:
            result["sink_name"] = self.sink_name
        if self.graph_name is not None:
            result["graph_name"] = self.graph_name
        result.update(self.extra)
        return result

    def with_graph(self, graph_name: str) -> ObservationContext:
        """Create a new context with the graph name set."""
        return replace(self, graph_name=graph_name)

    def with_extra(self, **kwargs: Any) -> ObservationContext:
        """Create a new context with additional metadata."""
        return replace(self, extra={**self.extra, **kwargs})
