"""Metadata functionality: entity types, properties and the type catalog."""

from entitycache.core.metadata.models import (
    DataProperty,
    DataType,
    EntityType,
    NavigationProperty,
    Property,
)
from entitycache.core.metadata.store import LocalQueryComparisonOptions, MetadataStore

__all__ = [
    "DataType",
    "DataProperty",
    "NavigationProperty",
    "Property",
    "EntityType",
    "MetadataStore",
    "LocalQueryComparisonOptions",
]
