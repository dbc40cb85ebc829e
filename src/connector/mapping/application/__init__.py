"""Mapping application layer - the strategies a sink or source is built from."""

from mapping.application.strategies import (
    DeserializationMappingStrategy,
    SerializationMappingStrategy,
)

__all__ = [
    "DeserializationMappingStrategy",
    "SerializationMappingStrategy",
]
