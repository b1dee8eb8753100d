"""Entity identity models.

Usage:
    key = EntityKey(customer_type, "785EFA04-CBF2-4DD7-A7DE-083EE17B6AD2")
    key == EntityKey(customer_type, "785efa04-cbf2-4dd7-a7de-083ee17b6ad2")  # True
    detail_key = EntityKey(order_detail_type, 10248, 11)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from entitycache.errors import MissingKeyError

if TYPE_CHECKING:
    from entitycache.core.metadata import EntityType


@dataclass(frozen=True, slots=True, init=False)
class EntityKey:
    """Canonical (type, key values) identity of an entity.

    Values are normalized through each key property's data type, so GUIDs
    compare case-insensitively and numeric strings equal their numbers.
    Immutable - serves as the identity-map lookup key.
    """

    type_name: str
    values: tuple[Any, ...]
    entity_type: EntityType = field(compare=False, hash=False, repr=False)

    def __init__(self, entity_type: EntityType, *values: Any):
        if len(values) == 1 and isinstance(values[0], (tuple, list)):
            values = tuple(values[0])
        key_props = entity_type.key_properties
        if len(values) != len(key_props):
            raise MissingKeyError(
                f"EntityKey for '{entity_type.name}' needs {len(key_props)} value(s), "
                f"got {len(values)}",
                details={"type_name": entity_type.name, "values": values},
            )
        normalized = tuple(
            prop.data_type.coerce(value) for prop, value in zip(key_props, values, strict=True)
        )
        object.__setattr__(self, "type_name", entity_type.name)
        object.__setattr__(self, "values", normalized)
        object.__setattr__(self, "entity_type", entity_type)

    @classmethod
    def from_values(cls, entity_type: EntityType, values: Mapping[str, Any]) -> EntityKey:
        """Build a key by picking the key properties out of a property mapping."""
        return cls(entity_type, *(values.get(name) for name in entity_type.key_names))

    @property
    def is_complete(self) -> bool:
        """True when no key value is missing (None)."""
        return all(v is not None for v in self.values)

    def __repr__(self) -> str:
        inner = ", ".join(repr(v) for v in self.values)
        return f"EntityKey({self.type_name}: {inner})"
