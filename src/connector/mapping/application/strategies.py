"""Mapping strategies.

A mapping strategy pairs one query template with a converter (stream to
database) or a mapper (database to stream). Strategies hold no per-element
state, so one instance can be shared by every invocation of a sink.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from mapping.domain.exceptions import ConversionError, MappingError, TemplateError
from mapping.domain.value_objects import (
    QueryTemplate,
    Statement,
    find_unsupported_value,
)
from mapping.ports.protocols import SerializationMapper, ValueConverter

T = TypeVar("T")


def _as_template(template: str | QueryTemplate) -> QueryTemplate:
    if isinstance(template, QueryTemplate):
        return template
    return QueryTemplate(text=template)


def _validate_binding(
    values: Mapping[Any, Any],
    element: Any,
    template_id: str,
) -> None:
    """Check that every name is a string and every value can be sent.

    Raises:
        ConversionError: If a parameter name is not a string.
        MappingError: If a value has a type the client cannot encode.
    """
    for name, value in values.items():
        if not isinstance(name, str):
            raise ConversionError(
                f"Parameter names must be strings, got {name!r}",
                element=element,
                template_id=template_id,
            )
        bad_path = find_unsupported_value(value, name)
        if bad_path is not None:
            raise MappingError(
                f"Parameter '{bad_path}' has an unsupported type",
                element=element,
                template_id=template_id,
            )


class DeserializationMappingStrategy(Generic[T]):
    """Maps stream elements to statements, for a sink.

    Placeholders are not checked against the binding by default: the
    database reports a missing parameter when the statement runs, and a
    template may reference parameters the query only consumes conditionally.
    ``strict=True`` checks them before execution instead.

    Example:
        strategy = DeserializationMappingStrategy(
            "CREATE (n:Person {name: {name}})",
            ScalarConverter("name"),
        )
        strategy.get_statement("Bob").parameters  # {"name": "Bob"}
    """

    def __init__(
        self,
        template: str | QueryTemplate,
        converter: ValueConverter[T],
        strict: bool = False,
    ):
        self._template = _as_template(template)
        self._converter = converter
        self._strict = strict

    @property
    def template(self) -> QueryTemplate:
        return self._template

    @property
    def strict(self) -> bool:
        return self._strict

    def with_strict(self, strict: bool) -> DeserializationMappingStrategy[T]:
        """Return a copy of this strategy with strict placeholder checking."""
        return DeserializationMappingStrategy(self._template, self._converter, strict)

    def get_mapper(self) -> ValueConverter[T]:
        return self._converter

    def get_statement(self, element: T) -> Statement:
        """Build the statement for one element.

        Raises:
            ConversionError: If the converter cannot produce a binding.
            MappingError: If a value cannot be sent as a parameter.
            TemplateError: In strict mode, if a placeholder is unbound.
        """
        template_id = self._template.template_id
        try:
            values = self._converter.convert(element)
        except ConversionError as e:
            if e.template_id is None:
                e.template_id = template_id
            raise
        except Exception as e:
            raise ConversionError(
                f"Converter failed: {e}", element=element, template_id=template_id
            ) from e

        if not isinstance(values, Mapping):
            raise ConversionError(
                f"Converter returned {type(values).__name__}, expected a mapping",
                element=element,
                template_id=template_id,
            )

        _validate_binding(values, element, template_id)

        statement = Statement(template=self._template, parameters=values)
        if self._strict:
            missing = statement.unbound_placeholders()
            if missing:
                raise TemplateError(
                    f"Unbound placeholders: {', '.join(sorted(missing))}",
                    missing=missing,
                    element=element,
                    template_id=template_id,
                )
        return statement


class SerializationMappingStrategy(Generic[T]):
    """Maps result rows back to stream elements, for a source.

    The statement is fixed at configuration time; ``get_statement`` may
    overlay extra parameter values on the configured ones.
    """

    def __init__(
        self,
        template: str | QueryTemplate,
        mapper: SerializationMapper[T],
        parameters: Mapping[str, Any] | None = None,
    ):
        self._template = _as_template(template)
        self._mapper = mapper
        self._parameters = dict(parameters or {})
        _validate_binding(self._parameters, None, self._template.template_id)

    @property
    def template(self) -> QueryTemplate:
        return self._template

    def get_mapper(self) -> SerializationMapper[T]:
        return self._mapper

    def get_statement(self, element: Mapping[str, Any] | None = None) -> Statement:
        """Build the statement the source runs.

        Args:
            element: Optional parameter values that override the configured ones.
        """
        parameters = dict(self._parameters)
        if element:
            _validate_binding(element, element, self._template.template_id)
            parameters.update(element)
        return Statement(template=self._template, parameters=parameters)
