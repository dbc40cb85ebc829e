"""Exceptions raised while turning a stream element into a statement.

None of them is retryable: the element, or the template it is mapped
through, is wrong, and running it again changes nothing.
"""

from __future__ import annotations

from typing import Any


class MappingError(Exception):
    """Raised when an element cannot be turned into a statement."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        element: Any = None,
        template_id: str | None = None,
    ):
        super().__init__(message)
        self.element = element
        self.template_id = template_id


class ConversionError(MappingError):
    """Raised when an element's fields cannot be turned into parameters."""

    pass


class TemplateError(MappingError):
    """Raised in strict mode when a placeholder has no bound value."""

    def __init__(
        self,
        message: str,
        missing: frozenset[str],
        element: Any = None,
        template_id: str | None = None,
    ):
        super().__init__(message, element=element, template_id=template_id)
        self.missing = missing
