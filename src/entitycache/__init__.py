"""EntityCache: client-side entity cache with queries, change tracking and merging.

Usage:
    from entitycache import EntityManager, EntityQuery, InMemoryDataService, MergeStrategy

    service = InMemoryDataService(catalog)
    manager = EntityManager(executor=service)

    query = EntityQuery.from_("Orders").where("freight", ">", 100).expand("customer")
    result = await query.using(manager).execute()

    order = result.results[0]
    order.freight = 0                      # Unchanged -> Modified
    await query.using(manager, MergeStrategy.OVERWRITE_CHANGES).execute()
    order.entity_aspect.entity_state       # EntityState.UNCHANGED again
"""

__version__ = "0.1.0"

# Configuration
from entitycache.config import EntityCacheSettings

# Core primitives
from entitycache.core import (
    DataProperty,
    DataType,
    EntityKey,
    EntityQuery,
    EntityType,
    FetchStrategy,
    FilterOperator,
    LocalQueryComparisonOptions,
    MergeStrategy,
    MetadataStore,
    NavigationProperty,
    Predicate,
    QueryOptions,
    literal,
)

# Entities
from entitycache.entity import (
    ArrayChangedArgs,
    Entity,
    EntityAction,
    EntityAspect,
    EntityChangedArgs,
    EntityState,
    HasChangesChangedArgs,
    RelationArray,
)

# Errors
from entitycache.errors import (
    DuplicateKeyError,
    EntityCacheError,
    InvalidConfigurationError,
    InvalidKeyChangeError,
    InvalidPredicateError,
    MissingKeyError,
    RemoteQueryError,
    UnknownEntityTypeError,
    UnknownPropertyError,
    UnknownResourceError,
)

# Manager
from entitycache.manager import EntityManager, FetchResult, QueryResult

# Remote
from entitycache.remote import (
    InMemoryDataService,
    MetadataProvider,
    QueryExecutor,
    RemoteResult,
    RetryPolicy,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "EntityKey",
    "DataType",
    "DataProperty",
    "NavigationProperty",
    "EntityType",
    "MetadataStore",
    "LocalQueryComparisonOptions",
    "EntityQuery",
    "Predicate",
    "FilterOperator",
    "literal",
    "QueryOptions",
    "FetchStrategy",
    "MergeStrategy",
    # Entities
    "Entity",
    "EntityAspect",
    "EntityState",
    "EntityAction",
    "RelationArray",
    "EntityChangedArgs",
    "ArrayChangedArgs",
    "HasChangesChangedArgs",
    # Manager
    "EntityManager",
    "QueryResult",
    "FetchResult",
    # Remote
    "QueryExecutor",
    "MetadataProvider",
    "RemoteResult",
    "RetryPolicy",
    "InMemoryDataService",
    # Configuration
    "EntityCacheSettings",
    # Errors
    "EntityCacheError",
    "UnknownResourceError",
    "UnknownEntityTypeError",
    "UnknownPropertyError",
    "DuplicateKeyError",
    "InvalidKeyChangeError",
    "MissingKeyError",
    "InvalidConfigurationError",
    "InvalidPredicateError",
    "RemoteQueryError",
]
