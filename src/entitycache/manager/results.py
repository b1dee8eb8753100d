"""Result types returned by EntityManager operations."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from entitycache.core.identity import EntityKey
    from entitycache.core.query import EntityQuery
    from entitycache.entity.entity import Entity


@dataclass(slots=True)
class QueryResult:
    """Outcome of an executed query.

    Attributes:
        results: Entities, or plain records for projected queries, in query order.
        query: The query that was executed (bound to its manager).
        inline_count: Total matches ignoring skip/take; None unless requested.
        retrieved_entities: Every entity materialized by the query, including
            those reached through ``expand``.
        from_cache: True when the query was evaluated against the local cache.
    """

    results: list[Any]
    query: EntityQuery
    inline_count: int | None = None
    retrieved_entities: list[Entity] = field(default_factory=list)
    from_cache: bool = False

    def __iter__(self) -> Iterator[Any]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of ``fetch_entity_by_key``.

    ``entity`` is None when nothing was found, including when the cached
    entity is Deleted and the cache was consulted first.
    """

    entity: Entity | None
    entity_key: EntityKey
    from_cache: bool
