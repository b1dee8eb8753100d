"""Entity: typed record instance with one EntityAspect.

Properties are read and written through ``get_property``/``set_property``,
item access or attribute access. Data values live on the entity; navigation
values are derived: scalar navigations resolve through the owning manager's
identity map by foreign key, collection navigations are RelationArrays.

Usage:
    order = manager.create_entity("Order", {"orderID": 1, "freight": 12.5})
    order.freight = 20                 # Added entities stay Added
    order["customer"] = customer       # writes order.customerID
    customer.orders                    # RelationArray
"""

from __future__ import annotations

from typing import Any

from entitycache.core.metadata import DataProperty, EntityType, NavigationProperty, Property
from entitycache.entity.aspect import EntityAspect
from entitycache.errors import UnknownPropertyError


class Entity:
    """Mapping from property name to value plus its EntityAspect.

    Args:
        entity_type: Metadata describing this entity.
        values: Initial property values. Missing data properties take their
            declared default.
    """

    __slots__ = ("entity_type", "entity_aspect", "_values", "__weakref__")

    def __init__(self, entity_type: EntityType, values: dict[str, Any] | None = None) -> None:
        object.__setattr__(self, "entity_type", entity_type)
        object.__setattr__(
            self, "_values", {p.name: p.default for p in entity_type.data_properties}
        )
        object.__setattr__(self, "entity_aspect", EntityAspect(self))
        navigations: dict[str, Any] = {}
        for name, value in (values or {}).items():
            prop = entity_type.require_property(name)
            if isinstance(prop, DataProperty):
                self._values[name] = prop.data_type.coerce(value)
            else:
                navigations[name] = value
        for name, value in navigations.items():
            nav = entity_type.get_navigation_property(name)
            if nav is not None and not nav.is_scalar:
                self.entity_aspect.get_relation_array(nav).push(*value)
            else:
                self.set_property(name, value)

    # --- Property access ---

    def get_property(self, name: str) -> Any:
        """Read a data value, a scalar navigation target or a RelationArray.

        Raises:
            UnknownPropertyError: If the type declares no such property.
        """
        if name in self._values:
            return self._values[name]
        nav = self.entity_type.get_navigation_property(name)
        if nav is None:
            raise UnknownPropertyError(self.entity_type.name, name)
        if nav.is_scalar:
            return self.entity_aspect.resolve_scalar_navigation(nav)
        return self.entity_aspect.get_relation_array(nav)

    def set_property(self, name: str, value: Any) -> None:
        """Write a property, updating state, originals and graph links.

        Raises:
            UnknownPropertyError: If the type declares no such property.
            InvalidKeyChangeError: If a key change collides with a cached entity.
        """
        self.entity_aspect.set_property_value(self.entity_type.require_property(name), value)

    def __getitem__(self, name: str) -> Any:
        return self.get_property(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set_property(name, value)

    def __getattr__(self, name: str) -> Any:
        entity_type = object.__getattribute__(self, "entity_type")
        if entity_type.get_property(name) is None:
            raise AttributeError(f"'{entity_type.name}' entity has no property '{name}'")
        return self.get_property(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in Entity.__slots__:
            raise AttributeError(f"'{name}' is read-only")
        self.set_property(name, value)

    def to_dict(self) -> dict[str, Any]:
        """Copy of the current data property values."""
        return dict(self._values)

    def __repr__(self) -> str:
        key = ", ".join(repr(self._values.get(n)) for n in self.entity_type.key_names)
        return f"<{self.entity_type.name}({key}) {self.entity_aspect.entity_state.value}>"


def entity_value_getter(node: Entity, prop: Property) -> Any:
    """ValueGetter over cached entity graphs (used for local evaluation)."""
    if isinstance(prop, NavigationProperty):
        value = node.get_property(prop.name)
        return value if prop.is_scalar else list(value)
    return node._values[prop.name]

