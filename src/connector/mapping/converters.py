"""Ready-made converters and mappers.

Converters turn stream elements into parameter bindings (sink direction);
mappers turn result rows into stream elements (source direction).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from mapping.domain.exceptions import ConversionError

T = TypeVar("T")

_MISSING = object()


class ScalarConverter:
    """Binds the whole element to a single parameter.

    Example:
        ScalarConverter("name").convert("Bob")  # {"name": "Bob"}
    """

    def __init__(self, parameter: str):
        if not parameter:
            raise ValueError("parameter name must not be empty")
        self._parameter = parameter

    @property
    def parameter(self) -> str:
        return self._parameter

    def convert(self, element: Any) -> dict[str, Any]:
        if element is None:
            raise ConversionError(
                f"Element is null, cannot bind parameter '{self._parameter}'",
                element=element,
            )
        return {self._parameter: element}


class FieldConverter:
    """Extracts named fields from mapping or object elements.

    Fields are looked up by key on mappings and by attribute otherwise.
    Dotted field names (``address.city``) walk into nested values.

    Args:
        fields: Field names, bound to parameters of the same name, or a
            ``{parameter: field}`` mapping.
        required: Parameters that must be present and not None. Defaults to
            all of them. Optional parameters whose field is absent are left
            out of the binding.
    """

    def __init__(
        self,
        fields: Sequence[str] | Mapping[str, str],
        required: Iterable[str] | None = None,
    ):
        if isinstance(fields, Mapping):
            self._fields = dict(fields)
        else:
            self._fields = {name: name for name in fields}
        if not self._fields:
            raise ValueError("FieldConverter needs at least one field")

        self._required = (
            frozenset(self._fields) if required is None else frozenset(required)
        )
        unknown = self._required - self._fields.keys()
        if unknown:
            raise ValueError(f"Required parameters not in fields: {sorted(unknown)}")

    @property
    def fields(self) -> Mapping[str, str]:
        return dict(self._fields)

    @property
    def required(self) -> frozenset[str]:
        return self._required

    def convert(self, element: Any) -> dict[str, Any]:
        if element is None:
            raise ConversionError("Element is null", element=element)

        values: dict[str, Any] = {}
        for parameter, field_name in self._fields.items():
            value = self._lookup(element, field_name)
            if value is _MISSING:
                if parameter in self._required:
                    raise ConversionError(
                        f"Required field '{field_name}' is missing",
                        element=element,
                    )
                continue
            if value is None and parameter in self._required:
                raise ConversionError(
                    f"Required field '{field_name}' is null",
                    element=element,
                )
            values[parameter] = value
        return values

    @staticmethod
    def _lookup(element: Any, field_name: str) -> Any:
        current = element
        for part in field_name.split("."):
            if current is None:
                return _MISSING
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            else:
                current = getattr(current, part, _MISSING)
            if current is _MISSING:
                return _MISSING
        return current


class CallableConverter(Generic[T]):
    """Adapts a plain function to the ValueConverter protocol."""

    def __init__(self, func: Callable[[T], Mapping[str, Any]]):
        self._func = func

    def convert(self, element: T) -> Mapping[str, Any]:
        return self._func(element)


class ColumnMapper:
    """Emits one column of every result row.

    Queries run through AGE return a single ``result`` column, so the
    default index is usually right.
    """

    def __init__(self, index: int = 0):
        self._index = index

    def serialize(self, row: tuple[Any, ...]) -> Any:
        return row[self._index]


class CallableMapper(Generic[T]):
    """Adapts a plain function to the SerializationMapper protocol."""

    def __init__(self, func: Callable[[tuple[Any, ...]], T]):
        self._func = func

    def serialize(self, row: tuple[Any, ...]) -> T:
        return self._func(row)
