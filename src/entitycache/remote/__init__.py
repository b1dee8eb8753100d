"""Remote execution: executor protocol, retry policy and the in-memory reference service."""

from entitycache.remote.memory import InMemoryDataService
from entitycache.remote.models import RemoteResult, RetryPolicy
from entitycache.remote.protocol import MetadataProvider, QueryExecutor
from entitycache.remote.retry import build_retryer, call_remote

__all__ = [
    # Protocols
    "QueryExecutor",
    "MetadataProvider",
    # Models
    "RemoteResult",
    "RetryPolicy",
    # Retry
    "build_retryer",
    "call_remote",
    # Implementations
    "InMemoryDataService",
]
