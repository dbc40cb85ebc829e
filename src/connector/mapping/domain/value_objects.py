"""Domain value objects for the Mapping bounded context.

These are immutable data structures that represent domain concepts
within the Mapping context. They have no identity - equality is based
on their attribute values.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Native ``$name`` references, and the legacy ``{name}`` spelling. A brace
# pair only counts when it wraps a bare identifier, so map literals such as
# ``{name: $name}`` never match.
PLACEHOLDER_PATTERN = re.compile(
    r"\$(?P<native>[A-Za-z_][A-Za-z0-9_]*)|\{(?P<legacy>[A-Za-z_][A-Za-z0-9_]*)\}"
)

# Scalar types the database client can encode as a parameter value.
SCALAR_PARAMETER_TYPES: tuple[type, ...] = (
    str,
    bool,
    int,
    float,
    Decimal,
    UUID,
    datetime,
    date,
    time,
    type(None),
)


class QueryTemplate(BaseModel):
    """Immutable Cypher text with named placeholders.

    Attributes:
        text: The query as configured, e.g.
            ``CREATE (n:Person {name: {name}})`` or
            ``CREATE (n:Person {name: $name})``
        template_id: Identifies the template in errors and logs. Defaults to
            a short hash of the text.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)
    template_id: str = Field(default="", description="Stable template identifier")

    @model_validator(mode="before")
    @classmethod
    def default_template_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("template_id"):
            text = data.get("text")
            if isinstance(text, str):
                digest = hashlib.sha1(text.encode("utf-8")).hexdigest()
                data = {**data, "template_id": f"tpl-{digest[:12]}"}
        return data

    @property
    def placeholders(self) -> frozenset[str]:
        """Names of every placeholder the text references."""
        return frozenset(
            match.group("native") or match.group("legacy")
            for match in PLACEHOLDER_PATTERN.finditer(self.text)
        )

    def render(self) -> str:
        """Return the text the database executes.

        Legacy ``{name}`` placeholders are rewritten to ``$name``.
        """

        def _replace(match: re.Match[str]) -> str:
            legacy = match.group("legacy")
            return f"${legacy}" if legacy else match.group(0)

        return PLACEHOLDER_PATTERN.sub(_replace, self.text)


@dataclass(frozen=True)
class Statement:
    """One template paired with the parameters bound for one element.

    The parameters are exposed read-only; a statement never changes after it
    has been built. Statements compare by value but are not hashable.
    """

    template: QueryTemplate
    parameters: Mapping[str, Any] = field(default_factory=dict)

    # The parameter view is unhashable, so statements are too.
    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def text(self) -> str:
        """The template text exactly as configured."""
        return self.template.text

    @property
    def query(self) -> str:
        """The rendered text handed to the database."""
        return self.template.render()

    @property
    def template_id(self) -> str:
        return self.template.template_id

    def unbound_placeholders(self) -> frozenset[str]:
        """Placeholders referenced by the template but absent from the binding."""
        return self.template.placeholders - self.parameters.keys()


def find_unsupported_value(value: Any, path: str) -> str | None:
    """Locate the first value the database client cannot encode.

    Args:
        value: A parameter value, possibly nested.
        path: Display path of ``value``, e.g. the parameter name.

    Returns:
        The path of the offending value, or None if everything is accepted.
    """
    if isinstance(value, Enum):
        return find_unsupported_value(value.value, path)
    if isinstance(value, SCALAR_PARAMETER_TYPES):
        return None
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                return f"{path}.<{type(key).__name__} key>"
            found = find_unsupported_value(item, f"{path}.{key}")
            if found is not None:
                return found
        return None
    if isinstance(value, (list, tuple, set, frozenset)):
        for index, item in enumerate(value):
            found = find_unsupported_value(item, f"{path}[{index}]")
            if found is not None:
                return found
        return None
    return path
