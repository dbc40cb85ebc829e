"""Mapping ports - converter, mapper and strategy protocols."""

from mapping.ports.protocols import MappingStrategy, SerializationMapper, ValueConverter

__all__ = [
    "MappingStrategy",
    "SerializationMapper",
    "ValueConverter",
]
