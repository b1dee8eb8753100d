"""EntityQuery: immutable, chainable query descriptor.

Usage:
    query = (
        EntityQuery.from_("Orders")
        .where("freight", ">", 100)
        .where("customerID", "!=", None)
        .order_by("customer.companyName, orderDate desc")
        .expand("customer, orderDetails.product")
        .skip(10)
        .take(5)
        .inline_count()
    )
    result = await query.using(manager).execute()
    cached = query.using(manager).execute_locally()
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from entitycache.core.query.options import QueryOptions
from entitycache.core.query.predicate import FilterOperator, Predicate, literal

if TYPE_CHECKING:
    from entitycache.core.identity import EntityKey
    from entitycache.core.metadata import EntityType, MetadataStore
    from entitycache.entity.entity import Entity
    from entitycache.manager.manager import EntityManager
    from entitycache.manager.results import QueryResult


@dataclass(frozen=True, slots=True)
class OrderByItem:
    """One ordering clause: property path plus direction."""

    path: str
    descending: bool = False

    @classmethod
    def parse(cls, text: str) -> OrderByItem:
        """Parse "path", "path asc" or "path desc"."""
        parts = text.split()
        if len(parts) == 2 and parts[1].lower() in ("asc", "desc"):
            return cls(parts[0], parts[1].lower() == "desc")
        if len(parts) != 1:
            raise ValueError(f"Invalid orderBy clause: '{text}'")
        return cls(parts[0])


def _split_paths(args: tuple[Any, ...]) -> list[str]:
    paths: list[str] = []
    for arg in args:
        if isinstance(arg, str):
            paths.extend(p.strip() for p in arg.split(",") if p.strip())
        elif isinstance(arg, Iterable):
            paths.extend(_split_paths(tuple(arg)))
        else:
            raise ValueError(f"Expected a property path, got {arg!r}")
    return paths


def _clears(args: tuple[Any, ...]) -> bool:
    return not args or (len(args) == 1 and args[0] is None)


def _check_count(n: int | None, name: str) -> int | None:
    if n is not None and (not isinstance(n, int) or isinstance(n, bool) or n < 0):
        raise ValueError(f"{name} requires a non-negative integer, got {n!r}")
    return n


@dataclass(frozen=True)
class EntityQuery:
    """Declarative query against a resource.

    Immutable - each builder method returns a new EntityQuery. This
    descriptor is the contract a remote executor translates.
    """

    resource_name: str | None = None
    predicate: Predicate | None = None
    ordering: tuple[OrderByItem, ...] = ()
    projection: tuple[str, ...] = ()
    expansions: tuple[str, ...] = ()
    skip_count: int | None = None
    take_count: int | None = None
    inline_count_enabled: bool = False
    query_options: QueryOptions | None = None
    result_type_name: str | None = None
    """Entity type of the results when the resource alone cannot tell (key queries)."""
    entity_manager: EntityManager | None = field(default=None, compare=False, repr=False)

    # --- Construction ---

    @classmethod
    def from_(cls, resource_name: str) -> EntityQuery:
        return cls(resource_name=resource_name)

    @classmethod
    def from_entity_key(cls, entity_key: EntityKey) -> EntityQuery:
        """Query for the single entity identified by ``entity_key``."""
        entity_type = entity_key.entity_type
        predicate = Predicate.all_of(
            Predicate.create(name, FilterOperator.EQ, literal(value))
            for name, value in zip(entity_type.key_names, entity_key.values, strict=True)
        )
        return cls(
            resource_name=entity_type.default_resource_name,
            predicate=predicate,
            result_type_name=entity_type.name,
        )

    @classmethod
    def from_entities(cls, entities: Iterable[Entity]) -> EntityQuery:
        """Query that re-fetches the given entities (all of one type)."""
        items = list(entities)
        if not items:
            raise ValueError("from_entities requires at least one entity")
        entity_type = items[0].entity_type
        if any(e.entity_type is not entity_type for e in items):
            raise ValueError("from_entities requires entities of a single type")
        predicate = Predicate.any_of(
            EntityQuery.from_entity_key(e.entity_aspect.get_key()).predicate for e in items
        )
        query = cls(
            resource_name=entity_type.default_resource_name,
            predicate=predicate,
            result_type_name=entity_type.name,
        )
        manager = items[0].entity_aspect.entity_manager
        return query.using(manager) if manager is not None else query

    # --- Builders ---

    def where(self, *args: Any) -> EntityQuery:
        """Add a filter, ANDed with any existing one. ``where()``/``where(None)`` clears it."""
        if _clears(args):
            return replace(self, predicate=None)
        predicate = Predicate.create(*args)
        if self.predicate is not None:
            predicate = self.predicate.and_(predicate)
        return replace(self, predicate=predicate)

    def order_by(self, *paths: Any) -> EntityQuery:
        """Append ordering clauses ("a, b desc" or lists). ``order_by(None)`` clears."""
        if _clears(paths):
            return replace(self, ordering=())
        items = tuple(OrderByItem.parse(p) for p in _split_paths(paths))
        return replace(self, ordering=self.ordering + items)

    def order_by_desc(self, *paths: Any) -> EntityQuery:
        items = tuple(OrderByItem(OrderByItem.parse(p).path, True) for p in _split_paths(paths))
        return replace(self, ordering=self.ordering + items)

    def select(self, *paths: Any) -> EntityQuery:
        """Project results onto plain records. ``select(None)`` clears."""
        if _clears(paths):
            return replace(self, projection=())
        return replace(self, projection=tuple(_split_paths(paths)))

    def expand(self, *paths: Any) -> EntityQuery:
        """Eagerly include navigation paths. ``expand(None)`` clears."""
        if _clears(paths):
            return replace(self, expansions=())
        return replace(self, expansions=tuple(_split_paths(paths)))

    def skip(self, count: int | None = None) -> EntityQuery:
        return replace(self, skip_count=_check_count(count, "skip"))

    def take(self, count: int | None = None) -> EntityQuery:
        return replace(self, take_count=_check_count(count, "take"))

    top = take

    def inline_count(self, enabled: bool = True) -> EntityQuery:
        return replace(self, inline_count_enabled=bool(enabled))

    def using(self, *args: Any) -> EntityQuery:
        """Bind a manager and/or query options.

        Args:
            *args: EntityManager, MergeStrategy, FetchStrategy, QueryOptions or
                an options dict.
        """
        # Late import to avoid circular dependency
        from entitycache.manager.manager import EntityManager

        query = self
        for arg in args:
            if isinstance(arg, EntityManager):
                query = replace(query, entity_manager=arg)
            else:
                # QueryOptions.using rejects anything that is not a config
                query = replace(query, query_options=query.effective_options().using(arg))
        return query

    # --- Introspection ---

    def effective_options(self) -> QueryOptions:
        """Options this query runs with: its own, else its manager's, else defaults."""
        if self.query_options is not None:
            return self.query_options
        if self.entity_manager is not None:
            return self.entity_manager.query_options
        return QueryOptions.default()

    def get_entity_type(self, metadata_store: MetadataStore) -> EntityType:
        """Entity type of the query's results.

        Raises:
            UnknownResourceError: If the resource is not mapped to a type.
        """
        if self.result_type_name is not None:
            return metadata_store.get_entity_type(self.result_type_name)
        if self.resource_name is None:
            raise ValueError("Query has no resource name; call from_(resource) first")
        return metadata_store.get_entity_type_for_resource(self.resource_name)

    # --- Execution ---

    def _require_manager(self) -> EntityManager:
        if self.entity_manager is None:
            raise ValueError("Query is not bound to an EntityManager; call using(manager)")
        return self.entity_manager

    async def execute(self) -> QueryResult:
        """Execute through the bound manager according to its fetch strategy."""
        return await self._require_manager().execute_query(self)

    def execute_locally(self) -> list[Any]:
        """Evaluate against the bound manager's cache only."""
        return self._require_manager().execute_query_locally(self)
