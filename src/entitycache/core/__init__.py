"""Core functionalities: stateless metadata, identity and query primitives.

Architecture Note:
    core/ contains pure, stateless building blocks with no cache state.
    For stateful services, see entity/, storage/, manager/ and remote/.
"""

from entitycache.core.identity import EntityKey
from entitycache.core.metadata import (
    DataProperty,
    DataType,
    EntityType,
    LocalQueryComparisonOptions,
    MetadataStore,
    NavigationProperty,
)
from entitycache.core.query import (
    EntityQuery,
    FetchStrategy,
    FilterOperator,
    MergeStrategy,
    Predicate,
    QueryOptions,
    literal,
)

__all__ = [
    # Identity
    "EntityKey",
    # Metadata
    "DataType",
    "DataProperty",
    "NavigationProperty",
    "EntityType",
    "MetadataStore",
    "LocalQueryComparisonOptions",
    # Query
    "EntityQuery",
    "Predicate",
    "FilterOperator",
    "literal",
    "QueryOptions",
    "FetchStrategy",
    "MergeStrategy",
]
