"""EntityManager: the entity cache.

Owns the identity map, runs queries remotely or against the cache, merges
results, and accounts for pending changes.

Usage:
    manager = EntityManager(metadata_store, executor=service)

    result = await EntityQuery.from_("Customers").where("city", "==", "London").using(manager).execute()
    customer = result.results[0]
    customer.companyName = "Renamed"          # Unchanged -> Modified
    manager.has_changes()                     # True
    manager.reject_changes()                  # back to Unchanged

    fetched = await manager.fetch_entity_by_key("Customer", "ALFKI", check_cache_first=True)
    fetched.from_cache                        # True when served from the cache
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from entitycache.config import EntityCacheSettings
from entitycache.core.identity import EntityKey
from entitycache.core.metadata import EntityType, MetadataStore, NavigationProperty
from entitycache.core.query import (
    EntityQuery,
    FetchStrategy,
    MergeStrategy,
    PipelineResult,
    Predicate,
    QueryOptions,
    build_expand_tree,
    compile_predicate,
    literal,
    run_query,
    validate_query,
)
from entitycache.entity.entity import Entity, entity_value_getter
from entitycache.entity.events import (
    EntityChangedArgs,
    Event,
    EventDispatcher,
    EventKind,
    HasChangesChangedArgs,
)
from entitycache.entity.relation import ArrayChangeBatch, link, unlink
from entitycache.entity.state import PENDING_STATES, EntityAction, EntityState
from entitycache.errors import (
    EntityCacheError,
    MissingKeyError,
    RemoteQueryError,
    UnknownEntityTypeError,
)
from entitycache.manager.merge import MergeContext
from entitycache.manager.results import FetchResult, QueryResult
from entitycache.remote.models import RetryPolicy
from entitycache.remote.protocol import MetadataProvider, QueryExecutor
from entitycache.remote.retry import call_remote
from entitycache.storage import IdentityMap

logger = logging.getLogger(__name__)


def _detached_graph(root: Entity) -> list[Entity]:
    """``root`` plus every detached entity reachable from it, depth first."""
    graph: dict[Entity, None] = {root: None}
    stack = [root]
    while stack:
        for other in reversed(stack.pop().entity_aspect._pending_attachments()):
            if other not in graph:
                graph[other] = None
                stack.append(other)
    return list(graph)


class EntityManager:
    """Client-side cache of entities mirrored from a remote store.

    Args:
        metadata_store: Type catalog. Empty stores are filled from the
            executor on first use when it provides metadata.
        executor: Remote query executor (None for cache-only use).
        query_options: Default fetch/merge strategies (from settings if omitted).
        settings: Environment-driven defaults.
        retry_policy: Retry policy for remote calls (from settings if omitted).
    """

    def __init__(
        self,
        metadata_store: MetadataStore | None = None,
        executor: QueryExecutor | None = None,
        query_options: QueryOptions | None = None,
        settings: EntityCacheSettings | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        settings = settings or EntityCacheSettings()
        self.settings = settings
        self.metadata_store = metadata_store or MetadataStore(
            comparison_options=settings.comparison_options()
        )
        self.executor = executor
        self.query_options = query_options or settings.query_options()
        self.retry_policy = retry_policy or settings.retry_policy()

        self.event_dispatcher = EventDispatcher()
        self.entity_changed: Event[EntityChangedArgs] = Event(
            EventKind.ENTITY_CHANGED, self._get_dispatcher
        )
        self.has_changes_changed: Event[HasChangesChangedArgs] = Event(
            EventKind.HAS_CHANGES_CHANGED, self._get_dispatcher
        )

        self._identity_map = IdentityMap()
        self._pending: set[Entity] = set()
        self._has_changes = False
        self._merge_lock = threading.RLock()
        self._metadata_lock = asyncio.Lock()

    def _get_dispatcher(self) -> EventDispatcher:
        return self.event_dispatcher

    def set_query_options(self, options: Any) -> QueryOptions:
        """Replace the default query options.

        Args:
            options: QueryOptions, a strategy enum or an options dict.

        Raises:
            InvalidConfigurationError: If ``options`` is malformed.
        """
        if isinstance(options, QueryOptions):
            self.query_options = options
        else:
            self.query_options = self.query_options.using(options)
        return self.query_options

    # --- Metadata ---

    async def fetch_metadata(self) -> MetadataStore:
        """Populate an empty metadata store from the executor (once, even under concurrency)."""
        if not self.metadata_store.is_empty:
            return self.metadata_store
        async with self._metadata_lock:
            executor = self.executor
            if self.metadata_store.is_empty and isinstance(executor, MetadataProvider):
                await call_remote(
                    lambda: executor.fetch_metadata(self.metadata_store), self.retry_policy
                )
                logger.info(
                    "Fetched metadata: %d entity types",
                    sum(1 for _ in self.metadata_store.entity_types()),
                )
        return self.metadata_store

    def _resolve_type(self, entity_type: EntityType | str) -> EntityType:
        name = entity_type if isinstance(entity_type, str) else entity_type.name
        return self.metadata_store.get_entity_type(name)

    # --- Attach / detach ---

    def create_entity(
        self,
        entity_type: EntityType | str,
        values: dict[str, Any] | None = None,
        entity_state: EntityState = EntityState.ADDED,
    ) -> Entity:
        """Create an entity and attach it (as Added unless told otherwise)."""
        entity = self._resolve_type(entity_type).create_entity(values)
        if not entity_state.is_detached:
            self.attach_entity(entity, entity_state)
        return entity

    def add_entity(self, entity: Entity) -> Entity:
        return self.attach_entity(entity, EntityState.ADDED)

    def attach_entity(
        self,
        entity: Entity,
        entity_state: EntityState = EntityState.UNCHANGED,
        batch: ArrayChangeBatch | None = None,
    ) -> Entity:
        """Put a detached entity (and detached entities related to it) under this manager.

        Raises:
            ValueError: If the entity belongs to another manager or the state is Detached.
            UnknownEntityTypeError: If the entity's type is not in this manager's catalog.
            DuplicateKeyError: If any graph member's key is already cached or shared
                within the graph. Nothing is attached in that case.
        """
        aspect = entity.entity_aspect
        if aspect.entity_manager is self:
            return entity
        if aspect.entity_manager is not None:
            raise ValueError("Entity is already attached to another EntityManager")
        if entity_state.is_detached:
            raise ValueError("Cannot attach an entity in the Detached state")
        graph = _detached_graph(entity)
        for member in graph:
            if self.metadata_store.find_entity_type(member.entity_type.name) is None:
                raise UnknownEntityTypeError(member.entity_type.name)

        own_batch = batch is None
        batch = batch if batch is not None else ArrayChangeBatch()
        try:
            with self._merge_lock:
                # Nothing is registered unless the whole graph fits
                self._identity_map.check_registrable(graph)
                for member in graph:
                    self._identity_map.register(member)
                    member.entity_aspect._attached(self, entity_state)
                    self.entity_changed.publish(EntityChangedArgs(EntityAction.ATTACH, member))
                    link(member, batch)
                    self._track_changes(member)
        finally:
            if own_batch:
                batch.flush()
        return entity

    def detach_entity(self, entity: Entity) -> bool:
        """Remove an entity from the cache. Returns False if it was not attached here."""
        aspect = entity.entity_aspect
        if aspect.entity_manager is not self:
            return False
        with self._merge_lock:
            batch = ArrayChangeBatch()
            unlink(entity, batch)
            batch.flush()
            self._identity_map.unregister(entity)
            self.entity_changed.publish(EntityChangedArgs(EntityAction.DETACH, entity))
            aspect._detached()
            self._track_changes(entity)
        return True

    # --- Cache lookups ---

    def _resolve_key(self, args: tuple[Any, ...]) -> EntityKey:
        if len(args) == 1 and isinstance(args[0], EntityKey):
            return args[0]
        if not args:
            raise MissingKeyError("An EntityKey (or an entity type and key values) is required")
        type_arg, *values = args
        if not isinstance(type_arg, (str, EntityType)):
            raise MissingKeyError(f"Cannot build an EntityKey from {args!r}")
        entity_type = self._resolve_type(type_arg)
        if not values:
            raise MissingKeyError(
                f"An EntityKey for '{entity_type.name}' requires key values",
                details={"type_name": entity_type.name},
            )
        return EntityKey(entity_type, *values)

    def get_entity_by_key(self, *args: Any) -> Entity | None:
        """Cached entity for a key, or None.

        Accepts an EntityKey or an entity type (or type name) plus key values.

        Raises:
            MissingKeyError: If no key can be built from the arguments.
        """
        return self._identity_map.resolve(self._resolve_key(args))

    def find_entity_by_key(self, *args: Any) -> Entity | None:
        """Like get_entity_by_key but never raises; unresolvable keys yield None."""
        if len(args) == 1 and isinstance(args[0], EntityKey):
            return self._identity_map.resolve(args[0])
        try:
            return self.get_entity_by_key(*args)
        except EntityCacheError:
            return None

    async def fetch_entity_by_key(self, *args: Any, check_cache_first: bool = False) -> FetchResult:
        """Get an entity by key from the cache or the remote store.

        With ``check_cache_first`` a cached entity is returned without a
        remote call. A cached Deleted entity is reported as not found unless
        the merge strategy is OVERWRITE_CHANGES, in which case it is
        refetched (and undeleted).

        Raises:
            MissingKeyError: If no complete EntityKey can be built from the arguments.
        """
        await self.fetch_metadata()
        key = self._resolve_key(args)
        if not key.is_complete:
            raise MissingKeyError(f"EntityKey {key!r} has missing values")

        if check_cache_first:
            cached = self._identity_map.resolve(key)
            if cached is not None:
                deleted = cached.entity_aspect.entity_state.is_deleted
                overwrite = self.query_options.merge_strategy is MergeStrategy.OVERWRITE_CHANGES
                if not deleted:
                    return FetchResult(cached, key, from_cache=True)
                if not overwrite:
                    return FetchResult(None, key, from_cache=True)

        query = EntityQuery.from_entity_key(key).using(self, FetchStrategy.FROM_SERVER)
        result = await self.execute_query(query)
        entity = result.results[0] if result.results else None
        return FetchResult(entity, key, from_cache=False)

    def get_entities(
        self,
        entity_types: Iterable[EntityType | str] | EntityType | str | None = None,
        entity_states: Iterable[EntityState] | EntityState | None = None,
        predicate: Predicate | None = None,
    ) -> list[Entity]:
        """Cached entities, optionally filtered by type, state and predicate.

        Raises:
            UnknownPropertyError: If ``predicate`` references a property some
                selected type does not have.
        """
        if isinstance(entity_types, (str, EntityType)):
            entity_types = [entity_types]
        type_names = (
            None if entity_types is None else {self._resolve_type(t).name for t in entity_types}
        )
        if isinstance(entity_states, EntityState):
            entity_states = [entity_states]
        states = None if entity_states is None else frozenset(entity_states)

        matchers: dict[str, Callable[[Any], bool]] = {}
        entities = []
        for entity in self._identity_map:
            name = entity.entity_type.name
            if type_names is not None and name not in type_names:
                continue
            if states is not None and entity.entity_aspect.entity_state not in states:
                continue
            if predicate is not None:
                if name not in matchers:
                    matchers[name] = compile_predicate(
                        predicate, entity.entity_type, self.metadata_store, entity_value_getter
                    )
                if not matchers[name](entity):
                    continue
            entities.append(entity)
        return entities

    # --- Change accounting ---

    def get_changes(
        self, entity_types: Iterable[EntityType | str] | EntityType | str | None = None
    ) -> list[Entity]:
        """Added, Modified and Deleted entities."""
        return self.get_entities(entity_types, PENDING_STATES)

    def has_changes(
        self, entity_types: Iterable[EntityType | str] | EntityType | str | None = None
    ) -> bool:
        if entity_types is None:
            return bool(self._pending)
        return bool(self.get_changes(entity_types))

    def reject_changes(self) -> list[Entity]:
        """Restore every pending entity to its pre-change values and state."""
        entities = self.get_changes()
        for entity in entities:
            entity.entity_aspect.reject_changes()
        return entities

    def accept_changes(self) -> list[Entity]:
        """Treat every pending change as saved."""
        entities = self.get_changes()
        for entity in entities:
            entity.entity_aspect.accept_changes()
        return entities

    def clear(self) -> None:
        """Detach everything. Query options, settings and metadata are left as they are."""
        with self._merge_lock:
            for entity in self._identity_map.clear():
                entity.entity_aspect._detached()
            self._pending.clear()
        self.entity_changed.publish(EntityChangedArgs(EntityAction.CLEAR))
        self._notify_has_changes()

    def _track_changes(self, entity: Entity) -> None:
        aspect = entity.entity_aspect
        if aspect.entity_manager is self and aspect.has_changes:
            self._pending.add(entity)
        else:
            self._pending.discard(entity)
        self._notify_has_changes()

    def _notify_has_changes(self) -> None:
        has_changes = bool(self._pending)
        if has_changes != self._has_changes:
            self._has_changes = has_changes
            self.has_changes_changed.publish(HasChangesChangedArgs(self, has_changes))

    # --- Query execution ---

    def _bind(self, query: EntityQuery) -> EntityQuery:
        return query if query.entity_manager is self else query.using(self)

    async def execute_query(self, query: EntityQuery) -> QueryResult:
        """Execute ``query`` per its fetch strategy.

        Remote execution validates the query first, awaits the executor, then
        merges the rows under the query's merge strategy.

        Raises:
            UnknownResourceError: If the resource is unknown.
            UnknownPropertyError: If any referenced path is unknown.
            RemoteQueryError: If the executor fails.
        """
        query = self._bind(query)
        options = query.effective_options()
        await self.fetch_metadata()

        if options.fetch_strategy is FetchStrategy.FROM_LOCAL_CACHE:
            local = self._run_locally(query)
            return QueryResult(local.items, query, local.inline_count, [], from_cache=True)

        entity_type = validate_query(query, self.metadata_store)
        executor = self.executor
        if executor is None:
            raise RemoteQueryError(
                "No query executor configured for remote queries", query.resource_name
            )
        logger.debug("Executing remote query on %s", query.resource_name)
        remote = await call_remote(
            lambda: executor.execute(query, self.metadata_store),
            self.retry_policy,
            query.resource_name,
        )

        with self._merge_lock:
            context = MergeContext(self, options.merge_strategy)
            results: list[Any]
            if query.projection:
                results = context.merge_projection(remote.rows, entity_type, query.projection)
            else:
                tree = build_expand_tree(query.expansions, entity_type, self.metadata_store)
                results = context.merge_entities(remote.rows, entity_type, tree)
            context.flush()

        inline_count = remote.inline_count if query.inline_count_enabled else None
        return QueryResult(
            results, query, inline_count, context.retrieved_entities, from_cache=False
        )

    def execute_query_locally(self, query: EntityQuery) -> list[Any]:
        """Evaluate ``query`` against cached, non-deleted entities only.

        Raises:
            UnknownResourceError: If the resource is unknown.
            UnknownPropertyError: If any referenced path is unknown.
        """
        return self._run_locally(self._bind(query)).items

    def _run_locally(self, query: EntityQuery) -> PipelineResult:
        entity_type = validate_query(query, self.metadata_store)
        candidates = [
            e
            for e in self._identity_map.entities_of_type(entity_type.name)
            if not e.entity_aspect.entity_state.is_deleted
        ]
        return run_query(query, candidates, entity_type, self.metadata_store, entity_value_getter)

    async def load_navigation_property(self, entity: Entity, nav: NavigationProperty) -> Any:
        """Fetch the rows related to ``entity`` through ``nav`` and merge them.

        Collection navigations gain all newly related entities in a single
        ``array_changed`` event; the navigation is then marked loaded.
        """
        aspect = entity.entity_aspect
        target_type = self.metadata_store.get_entity_type(nav.entity_type_name)

        if nav.is_scalar:
            fk_values = tuple(entity._values.get(name) for name in nav.foreign_key_names)
            if fk_values and all(v is not None for v in fk_values):
                key = EntityKey(target_type, fk_values)
                await self.execute_query(
                    EntityQuery.from_entity_key(key).using(self, FetchStrategy.FROM_SERVER)
                )
            aspect.mark_navigation_property_as_loaded(nav.name)
            return aspect.resolve_scalar_navigation(nav)

        array = aspect.get_relation_array(nav)
        key_values = tuple(entity._values[name] for name in entity.entity_type.key_names)
        if any(v is None for v in key_values):
            # No stored row can reference a parent without a key
            aspect.mark_navigation_property_as_loaded(nav.name)
            return array
        predicate = Predicate.all_of(
            Predicate.create(fk_name, "==", literal(value))
            for fk_name, value in zip(nav.foreign_key_names, key_values, strict=False)
        )
        query = EntityQuery(
            resource_name=target_type.default_resource_name,
            predicate=predicate,
            result_type_name=target_type.name,
        ).using(self, FetchStrategy.FROM_SERVER)
        await self.execute_query(query)
        aspect.mark_navigation_property_as_loaded(nav.name)
        return array
