"""Entity manager: the cache, its merge engine and result types."""

from entitycache.manager.manager import EntityManager
from entitycache.manager.merge import MergeContext
from entitycache.manager.results import FetchResult, QueryResult

__all__ = [
    "EntityManager",
    "MergeContext",
    "QueryResult",
    "FetchResult",
]
