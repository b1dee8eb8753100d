"""In-memory reference executor.

Serves queries from plain dict tables using the same predicate evaluator
and query pipeline as local cache evaluation, so remote and local
partitioning agree by construction. Used for tests, demos and offline
development.

Usage:
    service = InMemoryDataService(catalog)
    service.add_rows("Customer", [{"customerID": "ALFKI", "companyName": "Alfreds"}])
    manager = EntityManager(executor=service)        # metadata fetched lazily
    result = await EntityQuery.from_("Customers").using(manager).execute()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from entitycache.core.identity import EntityKey
from entitycache.core.metadata import (
    DataProperty,
    EntityType,
    LocalQueryComparisonOptions,
    MetadataStore,
    NavigationProperty,
    Property,
)
from entitycache.core.query import (
    EntityQuery,
    ExpandNode,
    build_expand_tree,
    run_query,
    validate_query,
)
from entitycache.remote.models import RemoteResult

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class InMemoryDataService:
    """Dict-backed QueryExecutor and MetadataProvider.

    Args:
        metadata_store: Server-side catalog describing the tables.
        materialize_projected_dates: If False, projected datetime values are
            returned as ISO strings, as some backends do.
        comparison_options: Server collation (defaults to the catalog's).
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        materialize_projected_dates: bool = True,
        comparison_options: LocalQueryComparisonOptions | None = None,
    ) -> None:
        self.metadata_store = metadata_store
        self.materialize_projected_dates = materialize_projected_dates
        self.comparison_options = comparison_options
        self._tables: dict[str, list[Row]] = {t.name: [] for t in metadata_store.entity_types()}
        self._failures: list[BaseException] = []
        self.executed_queries: list[EntityQuery] = []
        """Every query received, in order (inspect to assert on network use)."""

    # --- Table management ---

    def add_rows(self, type_name: str, rows: Iterable[Row]) -> None:
        """Insert rows, coercing values to their declared data types."""
        entity_type = self.metadata_store.get_entity_type(type_name)
        table = self._tables.setdefault(type_name, [])
        for row in rows:
            table.append(self._normalize(entity_type, row))

    def update_row(self, type_name: str, key: Iterable[Any], changes: Row) -> None:
        """Apply ``changes`` to the row with the given key values."""
        entity_type = self.metadata_store.get_entity_type(type_name)
        row = self._find(entity_type, EntityKey(entity_type, tuple(key)))
        if row is None:
            raise KeyError(f"No {type_name} row with key {tuple(key)!r}")
        row.update(self._normalize(entity_type, changes, partial=True))

    def delete_row(self, type_name: str, key: Iterable[Any]) -> bool:
        entity_type = self.metadata_store.get_entity_type(type_name)
        row = self._find(entity_type, EntityKey(entity_type, tuple(key)))
        if row is None:
            return False
        self._tables[type_name].remove(row)
        return True

    def rows(self, type_name: str) -> list[Row]:
        return list(self._tables.get(type_name, []))

    def inject_failure(self, exception: BaseException, times: int = 1) -> None:
        """Make the next ``times`` calls raise ``exception`` (transport failure simulation)."""
        self._failures.extend([exception] * times)

    def _normalize(self, entity_type: EntityType, row: Row, partial: bool = False) -> Row:
        normalized: Row = {}
        for prop in entity_type.data_properties:
            if prop.name in row:
                normalized[prop.name] = prop.data_type.coerce(row[prop.name])
            elif not partial:
                normalized[prop.name] = prop.default
        return normalized

    def _find(self, entity_type: EntityType, key: EntityKey) -> Row | None:
        for row in self._tables.get(entity_type.name, []):
            if EntityKey.from_values(entity_type, row) == key:
                return row
        return None

    # --- Executor protocol ---

    async def fetch_metadata(self, metadata_store: MetadataStore) -> None:
        await self._round_trip()
        self.metadata_store.copy_into(metadata_store)
        logger.info("Served metadata for %d entity types", len(self._tables))

    async def execute(self, query: EntityQuery, metadata_store: MetadataStore) -> RemoteResult:
        """Evaluate ``query`` against the tables.

        Paths resolve against the service's own catalog; the client's
        ``metadata_store`` is accepted for protocol compatibility.

        Raises:
            UnknownResourceError: If the resource is not served.
            UnknownPropertyError: If a path does not exist.
        """
        self.executed_queries.append(query)
        await self._round_trip()
        store = self.metadata_store
        entity_type = validate_query(query, store)
        getter = _RowGetter(self)
        result = run_query(
            query,
            self._tables.get(entity_type.name, []),
            entity_type,
            store,
            getter,
            self.comparison_options or store.local_query_comparison_options,
        )
        if query.projection:
            rows = [self._shape_projection(record, entity_type, query) for record in result.items]
        else:
            tree = build_expand_tree(query.expansions, entity_type, store)
            rows = [self._shape(row, entity_type, tree, getter) for row in result.items]
        logger.debug("Served %d row(s) for %s", len(rows), query.resource_name)
        return RemoteResult(rows=rows, inline_count=result.inline_count)

    async def _round_trip(self) -> None:
        # Yield so concurrent callers interleave as they would over a network
        await asyncio.sleep(0)
        if self._failures:
            raise self._failures.pop(0)

    # --- Result shaping ---

    def _shape(
        self, row: Row, entity_type: EntityType, tree: dict[str, ExpandNode], getter: _RowGetter
    ) -> Row:
        shaped = {p.name: row.get(p.name) for p in entity_type.data_properties}
        for name, node in tree.items():
            related = getter(row, node.navigation)
            if node.navigation.is_scalar:
                shaped[name] = (
                    None
                    if related is None
                    else self._shape(related, node.entity_type, node.children, getter)
                )
            else:
                shaped[name] = [
                    self._shape(child, node.entity_type, node.children, getter) for child in related
                ]
        return shaped

    def _shape_projection(self, record: Row, entity_type: EntityType, query: EntityQuery) -> Row:
        shaped: Row = {}
        getter = _RowGetter(self)
        for path in query.projection:
            name = path.replace(".", "_")
            value = record.get(name)
            last = self.metadata_store.resolve_property_path(entity_type, path)[-1]
            if isinstance(last, NavigationProperty):
                target = self.metadata_store.get_entity_type(last.entity_type_name)
                if isinstance(value, list):
                    value = [self._shape(v, target, {}, getter) for v in value]
                elif value is not None:
                    value = self._shape(value, target, {}, getter)
            elif isinstance(value, datetime) and not self.materialize_projected_dates:
                value = value.isoformat()
            shaped[name] = value
        return shaped


class _RowGetter:
    """ValueGetter over raw rows; navigations follow foreign keys."""

    def __init__(self, service: InMemoryDataService) -> None:
        self._service = service
        self._store = service.metadata_store

    def __call__(self, row: Row, prop: Property) -> Any:
        if isinstance(prop, DataProperty):
            return row.get(prop.name)
        return self._navigate(row, prop)

    def _navigate(self, row: Row, nav: NavigationProperty) -> Any:
        target_type = self._store.get_entity_type(nav.entity_type_name)
        if nav.is_scalar:
            fk_values = tuple(row.get(name) for name in nav.foreign_key_names)
            if not fk_values or any(v is None for v in fk_values):
                return None
            return self._service._find(target_type, EntityKey(target_type, fk_values))
        owner_type = self._owner_type(nav)
        key = EntityKey.from_values(owner_type, row)
        children = []
        for child in self._service._tables.get(target_type.name, []):
            fk_values = tuple(child.get(name) for name in nav.foreign_key_names)
            if any(v is None for v in fk_values):
                continue
            if EntityKey(owner_type, fk_values) == key:
                children.append(child)
        return children

    def _owner_type(self, nav: NavigationProperty) -> EntityType:
        for entity_type in self._store.entity_types():
            if any(n is nav for n in entity_type.navigation_properties):
                return entity_type
        raise LookupError(f"Navigation '{nav.name}' is not declared by any entity type")
