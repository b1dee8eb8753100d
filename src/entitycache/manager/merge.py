"""Merge engine: reconciles remote rows with cached entities.

For each incoming row, given the cached entity with the same key:
- none cached: create it, attach as Unchanged
- Unchanged: overwrite with incoming values (refresh)
- pending changes (Added/Modified/Deleted): per MergeStrategy
    PRESERVE_CHANGES   keep local values and state
    OVERWRITE_CHANGES  take incoming values, reset to Unchanged (undeletes)
    SKIP_MERGE         leave every cached entity untouched

Expanded navigations are merged recursively and marked loaded. Array
membership changes are batched so each RelationArray fires a single
``array_changed`` per merge.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from entitycache.core.identity import EntityKey
from entitycache.core.metadata import EntityType, NavigationProperty
from entitycache.core.query import ExpandNode, MergeStrategy
from entitycache.entity.entity import Entity
from entitycache.entity.relation import ArrayChangeBatch
from entitycache.entity.state import EntityState
from entitycache.errors import RemoteQueryError

if TYPE_CHECKING:
    from entitycache.manager.manager import EntityManager

logger = logging.getLogger(__name__)


class MergeContext:
    """State of one merge operation (one query result or navigation load).

    Args:
        manager: Manager whose cache receives the rows.
        merge_strategy: Policy for entities with pending changes.
    """

    def __init__(self, manager: EntityManager, merge_strategy: MergeStrategy) -> None:
        self.manager = manager
        self.merge_strategy = merge_strategy
        self.batch = ArrayChangeBatch()
        self._retrieved: dict[Entity, None] = {}

    @property
    def retrieved_entities(self) -> list[Entity]:
        """Every entity materialized so far, in first-seen order."""
        return list(self._retrieved)

    def merge_entities(
        self, rows: Iterable[dict[str, Any]], entity_type: EntityType, expand: dict[str, ExpandNode]
    ) -> list[Entity]:
        """Merge top-level rows.

        Returns:
            Entities in row order; entities left Deleted by the merge are omitted.
        """
        merged = [self.merge_row(row, entity_type, expand) for row in rows]
        return [e for e in merged if not e.entity_aspect.entity_state.is_deleted]

    def merge_projection(
        self, rows: Iterable[dict[str, Any]], entity_type: EntityType, select: Sequence[str]
    ) -> list[dict[str, Any]]:
        """Return projected records, merging values of navigation-ending paths as entities."""
        store = self.manager.metadata_store
        navigations: dict[str, EntityType] = {}
        for path in select:
            last = store.resolve_property_path(entity_type, path)[-1]
            if isinstance(last, NavigationProperty):
                navigations[path.replace(".", "_")] = store.get_entity_type(last.entity_type_name)

        records = []
        for row in rows:
            record = dict(row)
            for name, target in navigations.items():
                value = record.get(name)
                if isinstance(value, list):
                    record[name] = [self.merge_row(v, target, {}) for v in value]
                elif isinstance(value, dict):
                    record[name] = self.merge_row(value, target, {})
            records.append(record)
        return records

    def merge_row(
        self, row: dict[str, Any], entity_type: EntityType, expand: dict[str, ExpandNode]
    ) -> Entity:
        """Merge one row (and its expansions) into the cache.

        Raises:
            RemoteQueryError: If the row carries no complete key.
        """
        values = {
            p.name: p.data_type.coerce(row[p.name])
            for p in entity_type.data_properties
            if p.name in row
        }
        key = EntityKey.from_values(entity_type, values)
        if not key.is_complete:
            raise RemoteQueryError(
                f"Received a {entity_type.name} row without a complete key: {row!r}",
                resource_name=entity_type.default_resource_name,
            )

        manager = self.manager
        entity = manager.find_entity_by_key(key)
        if entity is None:
            entity = Entity(entity_type, values)
            manager.attach_entity(entity, EntityState.UNCHANGED, batch=self.batch)
        elif self._should_overwrite(entity):
            entity.entity_aspect.refresh(values, self.batch)

        self._retrieved[entity] = None
        self._merge_expansions(entity, row, expand)
        return entity

    def _should_overwrite(self, entity: Entity) -> bool:
        if self.merge_strategy is MergeStrategy.SKIP_MERGE:
            return False
        if not entity.entity_aspect.entity_state.has_pending_changes:
            return True
        return self.merge_strategy is MergeStrategy.OVERWRITE_CHANGES

    def _merge_expansions(
        self, entity: Entity, row: dict[str, Any], expand: dict[str, ExpandNode]
    ) -> None:
        aspect = entity.entity_aspect
        for name, node in expand.items():
            if name not in row:
                continue
            related = row[name]
            if node.navigation.is_scalar:
                if related is not None:
                    self.merge_row(related, node.entity_type, node.children)
            else:
                # Materialize first so newly merged children land in one batched event
                aspect.get_relation_array(node.navigation)
                for child_row in related or ():
                    self.merge_row(child_row, node.entity_type, node.children)
            aspect.mark_navigation_property_as_loaded(name)

    def flush(self) -> None:
        """Publish the batched array changes."""
        self.batch.flush()
        logger.debug(
            "Merged %d entities (%s)", len(self._retrieved), self.merge_strategy.value
        )
