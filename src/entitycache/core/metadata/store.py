"""Metadata store: lookup service over registered entity types.

Usage:
    store = MetadataStore()
    store.add_entity_type(customer_type)
    store.get_entity_type_for_resource("Customers")
    store.resolve_property_path(order_type, "customer.companyName")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace

from entitycache.core.metadata.models import (
    DataProperty,
    EntityType,
    NavigationProperty,
    Property,
)
from entitycache.errors import UnknownEntityTypeError, UnknownPropertyError, UnknownResourceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LocalQueryComparisonOptions:
    """String collation used when predicates are evaluated in-process.

    Should match the collation of the backend so that local and remote
    evaluation partition data the same way.
    """

    is_case_sensitive: bool = False
    uses_sql92_compliant_string_comparison: bool = True
    """Ignore trailing whitespace when comparing strings for equality."""


class MetadataStore:
    """Registry of entity types and resource names.

    Args:
        entity_types: Types to register immediately.
        comparison_options: Global string collation for local evaluation.
    """

    def __init__(
        self,
        entity_types: Iterable[EntityType] = (),
        comparison_options: LocalQueryComparisonOptions | None = None,
    ) -> None:
        self._types: dict[str, EntityType] = {}
        self._resources: dict[str, str] = {}
        self._inverse_collections: dict[str, list[tuple[EntityType, NavigationProperty]]] | None = (
            None
        )
        self.local_query_comparison_options = comparison_options or LocalQueryComparisonOptions()
        for entity_type in entity_types:
            self.add_entity_type(entity_type)

    def add_entity_type(self, entity_type: EntityType) -> EntityType:
        """Register an entity type (and its default resource name)."""
        entity_type.metadata_store = self
        self._types[entity_type.name] = entity_type
        if entity_type.default_resource_name:
            self._resources[entity_type.default_resource_name] = entity_type.name
        self._inverse_collections = None
        logger.debug("Registered entity type %s", entity_type.name)
        return entity_type

    def set_resource_name(self, resource_name: str, type_name: str) -> None:
        """Map an additional resource name onto a registered type."""
        self.get_entity_type(type_name)
        self._resources[resource_name] = type_name

    @property
    def is_empty(self) -> bool:
        return not self._types

    def entity_types(self) -> Iterator[EntityType]:
        return iter(self._types.values())

    def find_entity_type(self, type_name: str) -> EntityType | None:
        return self._types.get(type_name)

    def get_entity_type(self, type_name: str) -> EntityType:
        """Get a registered type by name.

        Raises:
            UnknownEntityTypeError: If no type has this name.
        """
        entity_type = self._types.get(type_name)
        if entity_type is None:
            raise UnknownEntityTypeError(type_name)
        return entity_type

    def get_entity_type_for_resource(self, resource_name: str) -> EntityType:
        """Get the type served by a resource.

        Raises:
            UnknownResourceError: If the resource is not mapped.
        """
        type_name = self._resources.get(resource_name)
        if type_name is None:
            raise UnknownResourceError(resource_name)
        return self._types[type_name]

    def has_resource(self, resource_name: str) -> bool:
        return resource_name in self._resources

    def copy_into(self, target: MetadataStore) -> None:
        """Register copies of every type and resource mapping into ``target``."""
        for entity_type in self._types.values():
            target.add_entity_type(replace(entity_type, metadata_store=None))
        for resource_name, type_name in self._resources.items():
            target.set_resource_name(resource_name, type_name)

    def resolve_property_path(self, entity_type: EntityType, path: str) -> list[Property]:
        """Resolve a dotted property path into the chain of properties it walks.

        Every segment except the last must be a navigation property.

        Args:
            entity_type: Type the path starts from.
            path: Dotted path such as "customer.companyName".

        Returns:
            Properties visited, in path order.

        Raises:
            UnknownPropertyError: If any segment does not resolve.
        """
        segments = path.split(".")
        current = entity_type
        chain: list[Property] = []
        for i, segment in enumerate(segments):
            prop = current.get_property(segment.strip())
            if prop is None:
                raise UnknownPropertyError(entity_type.name, path)
            chain.append(prop)
            if i < len(segments) - 1:
                if not isinstance(prop, NavigationProperty):
                    raise UnknownPropertyError(entity_type.name, path)
                current = self.get_entity_type(prop.entity_type_name)
        return chain

    def is_property_path(self, entity_type: EntityType, path: str) -> bool:
        try:
            self.resolve_property_path(entity_type, path)
        except UnknownPropertyError:
            return False
        return True

    def is_data_property_path(self, entity_type: EntityType, path: str) -> bool:
        """True when ``path`` walks scalar navigations only and ends on a data property."""
        try:
            chain = self.resolve_property_path(entity_type, path)
        except UnknownPropertyError:
            return False
        if not isinstance(chain[-1], DataProperty):
            return False
        return all(
            not isinstance(prop, NavigationProperty) or prop.is_scalar for prop in chain[:-1]
        )

    def collection_navigations_targeting(
        self, entity_type: EntityType
    ) -> list[tuple[EntityType, NavigationProperty]]:
        """Collection navigations of other types whose elements are of ``entity_type``.

        Returns:
            (owning type, navigation) pairs.
        """
        if self._inverse_collections is None:
            index: dict[str, list[tuple[EntityType, NavigationProperty]]] = {}
            for owner in self._types.values():
                for nav in owner.navigation_properties:
                    if not nav.is_scalar:
                        index.setdefault(nav.entity_type_name, []).append((owner, nav))
            self._inverse_collections = index
        return self._inverse_collections.get(entity_type.name, [])
