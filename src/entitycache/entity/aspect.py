"""EntityAspect: per-entity change-tracking control block.

The aspect is the only code that changes an entity's EntityState and the
only author of change events for its entity. It holds:
- the current state and the owning manager (None when detached)
- original values, captured per property on first change
- lazily created RelationArrays and the set of loaded navigations

State transitions:
    Detached  --attach-->         Unchanged | Added | Modified | Deleted
    Unchanged --set property-->   Modified
    Unchanged/Modified --delete-> Deleted
    Added     --delete-->         Detached
    Modified/Deleted --reject-->  Unchanged (originals restored)
    Added     --reject-->         Detached
    Added/Modified --accept-->    Unchanged
    Deleted   --accept-->         Detached
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from entitycache.core.identity import EntityKey
from entitycache.core.metadata import DataProperty, NavigationProperty, Property
from entitycache.entity.events import EntityChangedArgs
from entitycache.entity.relation import (
    ArrayChangeBatch,
    RelationArray,
    follow_key_change,
    link,
    populate,
    relink,
    unlink,
)
from entitycache.entity.state import EntityAction, EntityState
from entitycache.errors import InvalidKeyChangeError, UnknownPropertyError

if TYPE_CHECKING:
    from entitycache.entity.entity import Entity
    from entitycache.manager.manager import EntityManager


def _same_value(old: Any, new: Any) -> bool:
    return old is new or (type(old) is type(new) and old == new)


class EntityAspect:
    """Change-tracking state of one entity.

    Args:
        entity: The entity this aspect belongs to.
    """

    def __init__(self, entity: Entity) -> None:
        self.entity = entity
        self.entity_state = EntityState.DETACHED
        self.entity_manager: EntityManager | None = None
        self.original_values: dict[str, Any] = {}
        self._relation_arrays: dict[str, RelationArray] = {}
        self._loaded_navigations: set[str] = set()
        # Scalar navigation targets assigned while detached; attached with this entity
        self._detached_references: dict[str, Entity] = {}

    def get_key(self) -> EntityKey:
        """Current EntityKey computed from the key property values."""
        return EntityKey.from_values(self.entity.entity_type, self.entity._values)

    @property
    def has_changes(self) -> bool:
        return self.entity_state.has_pending_changes

    def _publish(self, action: EntityAction, **kwargs: Any) -> None:
        if self.entity_manager is not None:
            self.entity_manager.entity_changed.publish(
                EntityChangedArgs(action, self.entity, **kwargs)
            )

    def _set_state(self, state: EntityState) -> None:
        if state is self.entity_state:
            return
        self.entity_state = state
        if self.entity_manager is not None:
            self._publish(EntityAction.ENTITY_STATE_CHANGE)
            self.entity_manager._track_changes(self.entity)

    # --- Property writes ---

    def set_property_value(self, prop: Property, value: Any) -> None:
        """Assign a data value or a scalar navigation target.

        Raises:
            InvalidKeyChangeError: If a key change collides with a cached entity.
            ValueError: For collection navigations or mismatched target types.
        """
        if isinstance(prop, DataProperty):
            batch = ArrayChangeBatch()
            self.write_value(prop.name, value, batch)
            batch.flush()
        elif prop.is_scalar:
            self._set_scalar_navigation(prop, value)
        else:
            raise ValueError(
                f"Collection navigation '{prop.name}' cannot be assigned; "
                "push entities onto its RelationArray instead"
            )

    def write_value(self, name: str, value: Any, batch: ArrayChangeBatch) -> None:
        """Write one data property, tracking originals, identity and array membership."""
        entity = self.entity
        entity_type = entity.entity_type
        prop = entity_type.get_data_property(name)
        if prop is None:
            raise UnknownPropertyError(entity_type.name, name)
        new = prop.data_type.coerce(value)
        old = entity._values[name]
        if _same_value(old, new):
            return

        manager = self.entity_manager
        rekey = prop.is_part_of_key and manager is not None
        if rekey and manager is not None:
            new_key = EntityKey.from_values(entity_type, {**entity._values, name: new})
            existing = manager.find_entity_by_key(new_key) if new_key.is_complete else None
            if existing is not None and existing is not entity:
                raise InvalidKeyChangeError(
                    f"Cannot change key of {entity_type.name} to {new_key!r}: "
                    "another cached entity already has this key",
                    entity_key=new_key,
                )

        state = self.entity_state
        if not state.is_added and not state.is_detached and name not in self.original_values:
            self.original_values[name] = old

        old_values = dict(entity._values)
        entity._values[name] = new
        if manager is None:
            return
        if rekey:
            manager._identity_map.rekey(entity)
            follow_key_change(entity, old_values, batch)
        if not state.is_deleted:
            relink(entity, old_values, batch)
        self._publish(
            EntityAction.PROPERTY_CHANGE, property_name=name, old_value=old, new_value=new
        )
        if state.is_unchanged:
            self._set_state(EntityState.MODIFIED)

    def _set_scalar_navigation(self, nav: NavigationProperty, target: Entity | None) -> None:
        if target is not None and target.entity_type.name != nav.entity_type_name:
            raise ValueError(
                f"'{nav.name}' expects a {nav.entity_type_name}, got a {target.entity_type.name}"
            )
        if not nav.foreign_key_names:
            raise ValueError(f"Navigation '{nav.name}' has no foreign key to assign through")

        manager = self.entity_manager
        target_manager = target.entity_aspect.entity_manager if target is not None else None
        if manager is not None and target is not None:
            if target_manager is None:
                manager.attach_entity(target, EntityState.ADDED)
            elif target_manager is not manager:
                raise ValueError("Cannot relate entities owned by different EntityManagers")
        elif manager is None and target_manager is not None:
            target_manager.attach_entity(self.entity, EntityState.ADDED)

        if target is None:
            key_values: tuple[Any, ...] = (None,) * len(nav.foreign_key_names)
        else:
            key_values = tuple(target._values[k] for k in target.entity_type.key_names)
        batch = ArrayChangeBatch()
        for fk_name, key_value in zip(nav.foreign_key_names, key_values, strict=False):
            self.write_value(fk_name, key_value, batch)
        batch.flush()

        if self.entity_manager is None and target is not None:
            self._detached_references[nav.name] = target
        else:
            self._detached_references.pop(nav.name, None)

    # --- Navigation reads ---

    def resolve_scalar_navigation(self, nav: NavigationProperty) -> Entity | None:
        """Target of a scalar navigation, looked up by foreign key."""
        manager = self.entity_manager
        if manager is None:
            return self._detached_references.get(nav.name)
        fk_values = tuple(self.entity._values.get(name) for name in nav.foreign_key_names)
        if not fk_values or any(v is None for v in fk_values):
            return None
        target_type = manager.metadata_store.get_entity_type(nav.entity_type_name)
        if len(fk_values) != len(target_type.key_names):
            return None
        return manager.find_entity_by_key(EntityKey(target_type, fk_values))

    def get_relation_array(self, nav: NavigationProperty) -> RelationArray:
        """RelationArray for a collection navigation, created on first access."""
        array = self._relation_arrays.get(nav.name)
        if array is None:
            array = RelationArray(self.entity, nav)
            self._relation_arrays[nav.name] = array
            if self.entity_manager is not None:
                cached = self.entity_manager._identity_map.entities_of_type(nav.entity_type_name)
                populate(array, cached)
        return array

    def find_relation_array(self, name: str) -> RelationArray | None:
        """Already created RelationArray, or None."""
        return self._relation_arrays.get(name)

    def is_navigation_property_loaded(self, name: str) -> bool:
        return name in self._loaded_navigations

    def mark_navigation_property_as_loaded(self, name: str) -> None:
        self._loaded_navigations.add(name)

    async def load_navigation_property(self, name: str) -> Any:
        """Fetch a navigation's related rows and merge them into the cache.

        Returns:
            The RelationArray for collection navigations, the target entity
            (or None) for scalar navigations.

        Raises:
            ValueError: If the entity is detached.
            UnknownPropertyError: If ``name`` is not a navigation property.
        """
        manager = self.entity_manager
        if manager is None:
            raise ValueError("Cannot load navigation properties of a detached entity")
        nav = self.entity.entity_type.get_navigation_property(name)
        if nav is None:
            raise UnknownPropertyError(self.entity.entity_type.name, name)
        return await manager.load_navigation_property(self.entity, nav)

    # --- State transitions ---

    def _require_attached(self, operation: str) -> EntityManager:
        if self.entity_manager is None:
            raise ValueError(f"Cannot {operation} a detached entity")
        return self.entity_manager

    def set_unchanged(self) -> None:
        self._require_attached("mark unchanged")
        was_deleted = self.entity_state.is_deleted
        self.original_values.clear()
        self._set_state(EntityState.UNCHANGED)
        if was_deleted:
            batch = ArrayChangeBatch()
            link(self.entity, batch)
            batch.flush()

    def set_modified(self) -> None:
        self._require_attached("mark modified")
        self._set_state(EntityState.MODIFIED)

    def set_deleted(self) -> None:
        """Mark for deletion; an Added entity is detached instead.

        Raises:
            ValueError: If the entity is detached.
        """
        manager = self._require_attached("delete")
        state = self.entity_state
        if state.is_deleted:
            return
        if state.is_added:
            manager.detach_entity(self.entity)
            return
        batch = ArrayChangeBatch()
        unlink(self.entity, batch)
        self._set_state(EntityState.DELETED)
        batch.flush()

    def reject_changes(self) -> None:
        """Restore original values and return to Unchanged; Added entities detach."""
        manager = self.entity_manager
        state = self.entity_state
        if manager is None or not state.has_pending_changes:
            return
        if state.is_added:
            manager.detach_entity(self.entity)
            return

        entity = self.entity
        entity_type = entity.entity_type
        rekey = any(
            prop.is_part_of_key
            for prop in (entity_type.get_data_property(n) for n in self.original_values)
            if prop is not None
        )
        if rekey:
            restored = {**entity._values, **self.original_values}
            restored_key = EntityKey.from_values(entity_type, restored)
            existing = manager.find_entity_by_key(restored_key)
            if existing is not None and existing is not entity:
                raise InvalidKeyChangeError(
                    f"Cannot restore key {restored_key!r}: another cached entity has it",
                    entity_key=restored_key,
                )

        old_values = dict(entity._values)
        entity._values.update(self.original_values)
        self.original_values.clear()
        batch = ArrayChangeBatch()
        if rekey:
            manager._identity_map.rekey(entity)
            follow_key_change(entity, old_values, batch, rewrite_children=False)
        if state.is_deleted:
            link(entity, batch)
        else:
            relink(entity, old_values, batch)
        self._set_state(EntityState.UNCHANGED)
        self._publish(EntityAction.REJECT_CHANGES)
        batch.flush()

    def accept_changes(self) -> None:
        """Commit pending changes locally (after a successful save)."""
        manager = self.entity_manager
        state = self.entity_state
        if manager is None or not state.has_pending_changes:
            return
        if state.is_deleted:
            manager.detach_entity(self.entity)
            return
        self.original_values.clear()
        self._set_state(EntityState.UNCHANGED)
        self._publish(EntityAction.ACCEPT_CHANGES)

    def refresh(self, values: dict[str, Any], batch: ArrayChangeBatch) -> None:
        """Overwrite data values with incoming server values.

        Pending changes are dropped and the entity becomes Unchanged; a
        Deleted entity reappears in its parent arrays.
        """
        entity = self.entity
        state = self.entity_state
        old_values = dict(entity._values)
        entity._values.update(values)
        self.original_values.clear()
        if state.is_deleted:
            link(entity, batch)
        else:
            relink(entity, old_values, batch)
        self._set_state(EntityState.UNCHANGED)
        self._publish(EntityAction.MERGE_ON_QUERY)

    # --- Manager hooks ---

    def _pending_attachments(self) -> list[Entity]:
        """Detached entities reachable from this one that attach alongside it."""
        pending = list(self._detached_references.values())
        for array in self._relation_arrays.values():
            pending.extend(array)
        return [e for e in pending if e.entity_aspect.entity_manager is None]

    def _attached(self, manager: EntityManager, state: EntityState) -> None:
        self.entity_manager = manager
        self.entity_state = state
        if state.is_added:
            self.original_values.clear()
        self._detached_references.clear()
        for array in self._relation_arrays.values():
            target = array.navigation_property.entity_type_name
            populate(array, manager._identity_map.entities_of_type(target))

    def _detached(self) -> None:
        self.entity_manager = None
        self.entity_state = EntityState.DETACHED
        self.original_values.clear()
        self._relation_arrays.clear()
        self._loaded_navigations.clear()
