"""Entities: records, change tracking, relation arrays and notifications."""

from entitycache.entity.aspect import EntityAspect
from entitycache.entity.entity import Entity, entity_value_getter
from entitycache.entity.events import (
    ArrayChangedArgs,
    EntityChangedArgs,
    Event,
    EventDispatcher,
    EventKind,
    HasChangesChangedArgs,
)
from entitycache.entity.relation import ArrayChangeBatch, RelationArray
from entitycache.entity.state import EntityAction, EntityState

__all__ = [
    # Entity
    "Entity",
    "EntityAspect",
    "EntityState",
    "EntityAction",
    "entity_value_getter",
    # Relations
    "RelationArray",
    "ArrayChangeBatch",
    # Events
    "Event",
    "EventKind",
    "EventDispatcher",
    "EntityChangedArgs",
    "ArrayChangedArgs",
    "HasChangesChangedArgs",
]
