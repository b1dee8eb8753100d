"""RelationArray: observable to-many navigation collection.

A RelationArray belongs to the "one" side of a relationship and holds
non-owning references to the related entities. Membership is derived from
foreign keys: linking and unlinking go through the helpers at the bottom of
this module, which every mutation path (property sets, attach/detach,
delete/reject, merge) shares.

Usage:
    orders = customer.orders                     # created lazily
    orders.array_changed.subscribe(on_change)
    await orders.load()                          # one event, N added
    orders.push(manager.create_entity("Order", {"orderID": 99}))  # one event, 1 added
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, overload

from entitycache.core.identity import EntityKey
from entitycache.entity.events import ArrayChangedArgs, Event, EventDispatcher, EventKind
from entitycache.entity.state import EntityState

if TYPE_CHECKING:
    from entitycache.core.metadata import NavigationProperty
    from entitycache.entity.entity import Entity


class RelationArray(Sequence["Entity"]):
    """Ordered related entities of one collection navigation.

    Args:
        parent_entity: Entity owning the navigation.
        navigation_property: The collection navigation this array represents.
    """

    def __init__(self, parent_entity: Entity, navigation_property: NavigationProperty) -> None:
        self.parent_entity = parent_entity
        self.navigation_property = navigation_property
        self._items: list[Entity] = []
        self.array_changed: Event[ArrayChangedArgs] = Event(
            EventKind.ARRAY_CHANGED, self._event_dispatcher
        )

    @property
    def is_loaded(self) -> bool:
        """True once related rows were fetched, even if there are none."""
        return self.parent_entity.entity_aspect.is_navigation_property_loaded(
            self.navigation_property.name
        )

    def _event_dispatcher(self) -> EventDispatcher | None:
        manager = self.parent_entity.entity_aspect.entity_manager
        return manager.event_dispatcher if manager is not None else None

    # --- Sequence protocol ---

    @overload
    def __getitem__(self, index: int) -> Entity: ...

    @overload
    def __getitem__(self, index: slice) -> list[Entity]: ...

    def __getitem__(self, index: int | slice) -> Entity | list[Entity]:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._items))

    def __contains__(self, entity: object) -> bool:
        return any(item is entity for item in self._items)

    def __repr__(self) -> str:
        owner = self.parent_entity.entity_type.name
        return f"RelationArray({owner}.{self.navigation_property.name}, {self._items!r})"

    # --- Mutation ---

    def push(self, *entities: Entity) -> None:
        """Relate entities to the parent, firing one ``array_changed`` per call.

        Sets each entity's foreign key to the parent's key and attaches
        detached entities as Added when the parent is attached.

        Raises:
            ValueError: If an entity has the wrong type or belongs to another manager.
        """
        target_type = self.navigation_property.entity_type_name
        parent_aspect = self.parent_entity.entity_aspect
        manager = parent_aspect.entity_manager
        batch = ArrayChangeBatch()
        for entity in entities:
            if entity.entity_type.name != target_type:
                raise ValueError(
                    f"Cannot add a {entity.entity_type.name} to "
                    f"{self.parent_entity.entity_type.name}.{self.navigation_property.name}"
                )
            if entity in self:
                continue
            aspect = entity.entity_aspect
            if manager is not None:
                if aspect.entity_manager is None:
                    manager.attach_entity(entity, EntityState.ADDED, batch=batch)
                elif aspect.entity_manager is not manager:
                    raise ValueError("Entity belongs to a different EntityManager")
            parent_values = self.parent_entity._values
            parent_keys = self.parent_entity.entity_type.key_names
            for fk_name, key_name in zip(
                self.navigation_property.foreign_key_names, parent_keys, strict=False
            ):
                aspect.write_value(fk_name, parent_values[key_name], batch=batch)
            if not batch.will_contain(self, entity):
                batch.add(self, entity)
        batch.flush()

    async def load(self) -> RelationArray:
        """Fetch related rows remotely and merge them in (see load_navigation_property)."""
        await self.parent_entity.entity_aspect.load_navigation_property(
            self.navigation_property.name
        )
        return self

    def _apply(self, added: Sequence[Entity], removed: Sequence[Entity], notify: bool) -> None:
        added = [e for e in added if e not in self]
        removed = [e for e in removed if e in self]
        if removed:
            self._items = [item for item in self._items if all(item is not r for r in removed)]
        self._items.extend(added)
        if notify and (added or removed):
            self.array_changed.publish(ArrayChangedArgs(self, tuple(added), tuple(removed)))


class ArrayChangeBatch:
    """Collects array membership changes so each array fires one event per operation."""

    def __init__(self) -> None:
        self._changes: dict[int, tuple[RelationArray, list[Entity], list[Entity]]] = {}

    def _slot(self, array: RelationArray) -> tuple[RelationArray, list[Entity], list[Entity]]:
        return self._changes.setdefault(id(array), (array, [], []))

    def add(self, array: RelationArray, entity: Entity) -> None:
        _, added, removed = self._slot(array)
        removed[:] = [e for e in removed if e is not entity]
        if entity not in array and all(e is not entity for e in added):
            added.append(entity)

    def remove(self, array: RelationArray, entity: Entity) -> None:
        _, added, removed = self._slot(array)
        added[:] = [e for e in added if e is not entity]
        if entity in array and all(e is not entity for e in removed):
            removed.append(entity)

    def will_contain(self, array: RelationArray, entity: Entity) -> bool:
        _, added, removed = self._changes.get(id(array), (array, [], []))
        if any(e is entity for e in removed):
            return False
        return entity in array or any(e is entity for e in added)

    def flush(self) -> None:
        changes, self._changes = self._changes, {}
        for array, added, removed in changes.values():
            array._apply(added, removed, notify=True)


# --- Foreign-key driven membership ---


def parent_arrays(entity: Entity, values: dict[str, Any] | None = None) -> list[RelationArray]:
    """Materialized arrays ``entity`` belongs to according to its foreign keys.

    Args:
        entity: Child entity (must be attached to resolve parents).
        values: Data values to read foreign keys from (defaults to current).
    """
    aspect = entity.entity_aspect
    manager = aspect.entity_manager
    if manager is None:
        return []
    values = entity._values if values is None else values
    arrays: list[RelationArray] = []
    store = manager.metadata_store
    for owner_type, nav in store.collection_navigations_targeting(entity.entity_type):
        if not nav.foreign_key_names:
            continue
        fk_values = tuple(values.get(name) for name in nav.foreign_key_names)
        if any(v is None for v in fk_values) or len(fk_values) != len(owner_type.key_names):
            continue
        parent = manager.find_entity_by_key(EntityKey(owner_type, fk_values))
        if parent is None:
            continue
        array = parent.entity_aspect.find_relation_array(nav.name)
        if array is not None:
            arrays.append(array)
    return arrays


def link(entity: Entity, batch: ArrayChangeBatch) -> None:
    """Add ``entity`` to every materialized parent array its foreign keys point at."""
    for array in parent_arrays(entity):
        batch.add(array, entity)


def unlink(entity: Entity, batch: ArrayChangeBatch) -> None:
    """Remove ``entity`` from every array currently holding it."""
    for array in parent_arrays(entity):
        batch.remove(array, entity)


def relink(entity: Entity, old_values: dict[str, Any], batch: ArrayChangeBatch) -> None:
    """Move ``entity`` between parent arrays after its foreign keys changed."""
    before = parent_arrays(entity, old_values)
    after = parent_arrays(entity)
    for array in before:
        if all(array is not a for a in after):
            batch.remove(array, entity)
    for array in after:
        batch.add(array, entity)


def follow_key_change(
    parent: Entity,
    old_values: dict[str, Any],
    batch: ArrayChangeBatch,
    rewrite_children: bool = True,
) -> None:
    """Keep children attached to ``parent`` after its key changed.

    Cached children whose foreign keys still hold the old key are rewritten
    to the new one when ``rewrite_children`` is set. Each materialized array
    then holds exactly the cached children whose foreign keys match the new key.
    """
    aspect = parent.entity_aspect
    manager = aspect.entity_manager
    if manager is None:
        return
    key_names = parent.entity_type.key_names
    old_key = tuple(old_values.get(name) for name in key_names)
    new_key = tuple(parent._values[name] for name in key_names)
    for nav in parent.entity_type.navigation_properties:
        if nav.is_scalar or not nav.foreign_key_names:
            continue
        array = aspect.find_relation_array(nav.name)
        for child in manager._identity_map.entities_of_type(nav.entity_type_name):
            fk_values = tuple(child._values.get(name) for name in nav.foreign_key_names)
            if rewrite_children and _same_key(parent, fk_values, old_key):
                for fk_name, value in zip(nav.foreign_key_names, new_key, strict=False):
                    child.entity_aspect.write_value(fk_name, value, batch)
            elif (
                array is not None
                and not child.entity_aspect.entity_state.is_deleted
                and _same_key(parent, fk_values, new_key)
            ):
                batch.add(array, child)
        if array is None:
            continue
        for child in array:
            fk_values = tuple(child._values.get(name) for name in nav.foreign_key_names)
            if not _same_key(parent, fk_values, new_key):
                batch.remove(array, child)


def populate(array: RelationArray, candidates: Iterable[Entity]) -> None:
    """Silently fill a freshly created array from already cached children."""
    nav = array.navigation_property
    parent = array.parent_entity
    key_values = tuple(parent._values[name] for name in parent.entity_type.key_names)
    if any(v is None for v in key_values):
        return
    members = []
    for child in candidates:
        if child.entity_aspect.entity_state.is_deleted:
            continue
        fk_values = tuple(child._values.get(name) for name in nav.foreign_key_names)
        if fk_values and _same_key(parent, fk_values, key_values):
            members.append(child)
    array._apply(members, (), notify=False)


def _same_key(parent: Entity, fk_values: tuple[Any, ...], key_values: tuple[Any, ...]) -> bool:
    if len(fk_values) != len(key_values) or any(v is None for v in fk_values):
        return False
    return EntityKey(parent.entity_type, fk_values) == EntityKey(parent.entity_type, key_values)
