"""Mapping domain module.

Contains value objects and exceptions for the Mapping bounded context.
"""

from mapping.domain.exceptions import ConversionError, MappingError, TemplateError
from mapping.domain.value_objects import QueryTemplate, Statement

__all__ = [
    "ConversionError",
    "MappingError",
    "QueryTemplate",
    "Statement",
    "TemplateError",
]
