"""Remote executor protocol.

The executor is the seam to the wire transport: it receives the immutable
EntityQuery descriptor and is responsible for translating it to its
backend's filter syntax and returning raw rows.

Usage:
    class HttpExecutor:
        async def execute(self, query: EntityQuery, metadata_store: MetadataStore) -> RemoteResult:
            params = {"$filter": to_odata(query.predicate), "$top": query.take_count}
            rows = await client.get(query.resource_name, params=params)
            return RemoteResult(rows=rows)

    manager = EntityManager(metadata_store, executor=HttpExecutor())
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from entitycache.core.metadata import MetadataStore
    from entitycache.core.query import EntityQuery
    from entitycache.remote.models import RemoteResult


@runtime_checkable
class QueryExecutor(Protocol):
    """Protocol for remote query execution."""

    async def execute(self, query: EntityQuery, metadata_store: MetadataStore) -> RemoteResult:
        """Run ``query`` remotely.

        Args:
            query: Query descriptor (resource, predicate, ordering, paging,
                projection, expansion, inline-count flag).
            metadata_store: Catalog for resolving the query's paths.

        Returns:
            Raw rows plus the inline count when requested.
        """
        ...


@runtime_checkable
class MetadataProvider(Protocol):
    """Optional executor capability: populate an empty metadata store."""

    async def fetch_metadata(self, metadata_store: MetadataStore) -> None:
        """Register the backend's entity types into ``metadata_store``."""
        ...
