"""Conversion protocols for the Mapping bounded context.

Each protocol is a single capability. Concrete implementations are supplied
per element type; no class hierarchy is required beyond these contracts.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from mapping.domain.value_objects import Statement

T_contra = TypeVar("T_contra", contravariant=True)
T_co = TypeVar("T_co", covariant=True)
M_co = TypeVar("M_co", covariant=True)


@runtime_checkable
class ValueConverter(Protocol[T_contra]):
    """Extracts named parameter values from a stream element."""

    def convert(self, element: T_contra) -> Mapping[str, Any]:
        """Convert an element to the key-value pairs a statement binds.

        Must be deterministic and free of side effects.

        Raises:
            ConversionError: If a required field is missing or invalid.
        """
        ...


@runtime_checkable
class SerializationMapper(Protocol[T_co]):
    """Turns one result row of a query into a stream element."""

    def serialize(self, row: tuple[Any, ...]) -> T_co:
        """Build an element from a result row."""
        ...


class MappingStrategy(Protocol[T_contra, M_co]):
    """Pairs a query template with a converter or mapper."""

    def get_statement(self, element: T_contra) -> Statement:
        """Build the statement for one element.

        Raises:
            MappingError: If the element cannot be bound to the template.
        """
        ...

    def get_mapper(self) -> M_co:
        """The converter or mapper this strategy was configured with."""
        ...
