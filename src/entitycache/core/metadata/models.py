"""Metadata models: the read-only type catalog the cache consumes.

Usage:
    customer = EntityType(
        name="Customer",
        data_properties=(
            DataProperty("customerID", DataType.GUID, is_nullable=False, is_part_of_key=True),
            DataProperty("companyName", DataType.STRING),
        ),
        navigation_properties=(
            NavigationProperty("orders", "Order", is_scalar=False, foreign_key_names=("customerID",)),
        ),
        default_resource_name="Customers",
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING, Any

from entitycache.errors import UnknownPropertyError

if TYPE_CHECKING:
    from entitycache.core.metadata.store import MetadataStore
    from entitycache.entity.entity import Entity


class DataType(Enum):
    """Semantic type of a data property."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    GUID = "guid"

    def coerce(self, value: Any) -> Any:
        """Coerce a raw or literal value to this type.

        Values that cannot be converted are returned unchanged so that the
        comparison that follows simply fails to match.

        Args:
            value: Value coming from a remote row, a predicate literal or a key.

        Returns:
            The converted value, or the original value if conversion is impossible.
        """
        if value is None:
            return None
        try:
            return _COERCERS[self](value)
        except (ValueError, TypeError, InvalidOperation):
            return value

    @property
    def is_numeric(self) -> bool:
        return self in (DataType.INTEGER, DataType.DECIMAL, DataType.FLOAT)

    @staticmethod
    def parse_date_from_server(value: Any) -> datetime | None:
        """Parse a date value as sent by a backend that does not type projections."""
        if value is None:
            return None
        return _to_datetime(value)


def _to_string(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("bool is not an integer value")
    if isinstance(value, str):
        return int(value.strip())
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value} is not integral")
    return int(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value).strip())


def _to_float(value: Any) -> float:
    return float(value)


def _to_boolean(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
        raise ValueError(f"Not a boolean: {value!r}")
    return bool(value)


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise TypeError(f"Not a datetime: {value!r}")


def _to_guid(value: Any) -> str:
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(value).strip().lower()


_COERCERS = {
    DataType.STRING: _to_string,
    DataType.INTEGER: _to_integer,
    DataType.DECIMAL: _to_decimal,
    DataType.FLOAT: _to_float,
    DataType.BOOLEAN: _to_boolean,
    DataType.DATETIME: _to_datetime,
    DataType.GUID: _to_guid,
}


@dataclass(frozen=True, slots=True)
class DataProperty:
    """Scalar data column of an entity type."""

    name: str
    data_type: DataType = DataType.STRING
    is_nullable: bool = True
    default: Any = None
    is_part_of_key: bool = False

    @property
    def is_navigation(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class NavigationProperty:
    """Relationship from one entity type to another.

    For scalar navigations ``foreign_key_names`` are columns of the owning
    type; for collection navigations they are columns of the target type
    that reference the owner's key.
    """

    name: str
    entity_type_name: str
    is_scalar: bool = True
    foreign_key_names: tuple[str, ...] = ()
    inverse_name: str | None = None

    @property
    def is_navigation(self) -> bool:
        return True


Property = DataProperty | NavigationProperty


@dataclass(eq=False)
class EntityType:
    """Structural description of one kind of entity.

    Attributes:
        name: Short type name ("Customer").
        data_properties: Ordered data properties.
        navigation_properties: Ordered navigation properties.
        default_resource_name: Resource that serves this type ("Customers").
    """

    name: str
    data_properties: tuple[DataProperty, ...] = ()
    navigation_properties: tuple[NavigationProperty, ...] = ()
    default_resource_name: str | None = None
    metadata_store: MetadataStore | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.data_properties = tuple(self.data_properties)
        self.navigation_properties = tuple(self.navigation_properties)
        self._data_by_name = {p.name: p for p in self.data_properties}
        self._nav_by_name = {p.name: p for p in self.navigation_properties}
        if not self.key_properties:
            raise ValueError(f"Entity type '{self.name}' declares no key property")

    @property
    def key_properties(self) -> tuple[DataProperty, ...]:
        return tuple(p for p in self.data_properties if p.is_part_of_key)

    @property
    def key_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.key_properties)

    def get_data_property(self, name: str) -> DataProperty | None:
        return self._data_by_name.get(name)

    def get_navigation_property(self, name: str) -> NavigationProperty | None:
        return self._nav_by_name.get(name)

    def get_property(self, name: str) -> Property | None:
        """Look up a data or navigation property by name."""
        return self._data_by_name.get(name) or self._nav_by_name.get(name)

    def require_property(self, name: str) -> Property:
        prop = self.get_property(name)
        if prop is None:
            raise UnknownPropertyError(self.name, name)
        return prop

    def create_entity(self, values: dict[str, Any] | None = None, **kwargs: Any) -> Entity:
        """Create a detached entity of this type with defaults applied.

        Args:
            values: Initial data property values.
            **kwargs: Additional initial values (merged over ``values``).

        Returns:
            New Entity in the Detached state.

        Raises:
            UnknownPropertyError: If an initial value names no data property.
        """
        # Late import to avoid circular dependency
        from entitycache.entity.entity import Entity

        initial = {**(values or {}), **kwargs}
        return Entity(self, initial)

    def __repr__(self) -> str:
        return f"EntityType({self.name!r})"
