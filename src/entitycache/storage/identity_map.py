"""Identity map: one cached instance per EntityKey.

Dict-based index from EntityKey to Entity, plus insertion-ordered
membership so entities with an incomplete key (Added, key not yet
assigned) are still owned and become indexed once their key is complete.

Usage:
    identity_map = IdentityMap()
    identity_map.register(order)
    identity_map.resolve(EntityKey(order_type, 10248)) is order  # True
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from entitycache.errors import DuplicateKeyError

if TYPE_CHECKING:
    from entitycache.core.identity import EntityKey
    from entitycache.entity.entity import Entity


class IdentityMap:
    """In-memory entity index.

    Structure:
        _by_key[entity_key] = entity             (complete keys only)
        _members[entity] = entity_key | None     (every owned entity, ordered)
    """

    def __init__(self) -> None:
        self._by_key: dict[EntityKey, Entity] = {}
        self._members: dict[Entity, EntityKey | None] = {}

    def register(self, entity: Entity) -> None:
        """Insert ``entity`` under its computed key.

        Raises:
            DuplicateKeyError: If a different entity already has an equal key.
        """
        key = entity.entity_aspect.get_key()
        if key.is_complete:
            existing = self._by_key.get(key)
            if existing is not None and existing is not entity:
                raise DuplicateKeyError(
                    f"An entity with key {key!r} is already in the cache", entity_key=key
                )
            self._by_key[key] = entity
            self._members[entity] = key
        else:
            self._members[entity] = None

    def check_registrable(self, entities: Iterable[Entity]) -> None:
        """Verify that ``entities`` could all be registered together.

        Raises:
            DuplicateKeyError: If a key is held by another cached entity or
                shared by two of ``entities``.
        """
        claimed: dict[EntityKey, Entity] = {}
        for entity in entities:
            key = entity.entity_aspect.get_key()
            if not key.is_complete:
                continue
            existing = self._by_key.get(key)
            if existing is None:
                existing = claimed.get(key)
            if existing is not None and existing is not entity:
                raise DuplicateKeyError(
                    f"An entity with key {key!r} is already in the cache", entity_key=key
                )
            claimed[key] = entity

    def unregister(self, entity: Entity) -> bool:
        """Remove ``entity``. Returns True if it was registered."""
        if entity not in self._members:
            return False
        key = self._members.pop(entity)
        if key is not None and self._by_key.get(key) is entity:
            del self._by_key[key]
        return True

    def rekey(self, entity: Entity) -> None:
        """Re-index ``entity`` after a key property changed.

        Raises:
            DuplicateKeyError: If the new key belongs to a different entity.
        """
        old_key = self._members.get(entity)
        new_key = entity.entity_aspect.get_key()
        if new_key == old_key:
            return
        if new_key.is_complete:
            existing = self._by_key.get(new_key)
            if existing is not None and existing is not entity:
                raise DuplicateKeyError(
                    f"An entity with key {new_key!r} is already in the cache", entity_key=new_key
                )
        if old_key is not None and self._by_key.get(old_key) is entity:
            del self._by_key[old_key]
        if new_key.is_complete:
            self._by_key[new_key] = entity
            self._members[entity] = new_key
        else:
            self._members[entity] = None

    def resolve(self, key: EntityKey) -> Entity | None:
        return self._by_key.get(key)

    def entities_of_type(self, type_name: str) -> list[Entity]:
        return [e for e in self._members if e.entity_type.name == type_name]

    def clear(self) -> list[Entity]:
        """Drop every entity. Returns the entities that were registered."""
        entities = list(self._members)
        self._by_key.clear()
        self._members.clear()
        return entities

    def __contains__(self, entity: object) -> bool:
        return entity in self._members

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._members))

    def __len__(self) -> int:
        return len(self._members)
