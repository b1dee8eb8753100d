"""Error types raised by entitycache.

All errors inherit from EntityCacheError and carry a ``details`` dict with
the context needed to act on them.

Usage:
    try:
        await manager.execute_query(EntityQuery.from_("Custmers"))
    except UnknownResourceError as e:
        print(e.details["resource_name"])
"""

from __future__ import annotations

from typing import Any


class EntityCacheError(Exception):
    """Base exception for all entitycache errors.

    Attributes:
        message: Human readable error message.
        details: Additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UnknownResourceError(EntityCacheError):
    """Query resource name does not map to any entity type."""

    def __init__(self, resource_name: str) -> None:
        super().__init__(
            f"Unable to locate a resource named '{resource_name}'",
            details={"resource_name": resource_name},
        )


class UnknownEntityTypeError(EntityCacheError):
    """Entity type name is not registered in the metadata store."""

    def __init__(self, type_name: str) -> None:
        super().__init__(
            f"Unable to locate an entity type named '{type_name}'",
            details={"type_name": type_name},
        )


class UnknownPropertyError(EntityCacheError):
    """Property path does not resolve against an entity type."""

    def __init__(self, type_name: str, property_path: str) -> None:
        super().__init__(
            f"Unable to resolve property path '{property_path}' on entity type '{type_name}'",
            details={"type_name": type_name, "property_path": property_path},
        )


class DuplicateKeyError(EntityCacheError):
    """A different entity with an equal key is already in the cache."""

    def __init__(self, message: str, entity_key: Any = None) -> None:
        super().__init__(message, details={"entity_key": entity_key})


class InvalidKeyChangeError(DuplicateKeyError):
    """Changing a key property would collide with another cached entity."""


class MissingKeyError(EntityCacheError):
    """A key lookup was requested without a resolvable EntityKey."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)


class InvalidConfigurationError(EntityCacheError):
    """Query options config is malformed (unknown option or invalid value)."""


class InvalidPredicateError(EntityCacheError, ValueError):
    """Predicate arguments are malformed (unknown operator, bad shape)."""


class RemoteQueryError(EntityCacheError):
    """The remote executor failed to run a query.

    The backend's own message is preserved untouched; the original exception
    is chained as ``__cause__``.
    """

    def __init__(self, message: str, resource_name: str | None = None) -> None:
        super().__init__(message, details={"resource_name": resource_name})
