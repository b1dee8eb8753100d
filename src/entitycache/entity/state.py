"""Entity lifecycle states and change actions."""

from __future__ import annotations

from enum import Enum


class EntityState(Enum):
    """Lifecycle tag of an entity relative to its manager and the backend."""

    DETACHED = "Detached"
    """Not owned by any manager. Every new entity starts here."""

    ADDED = "Added"
    """Created locally, never persisted. Has no original values."""

    UNCHANGED = "Unchanged"
    """Matches the last known backend state."""

    MODIFIED = "Modified"
    """Persisted entity with local property changes."""

    DELETED = "Deleted"
    """Persisted entity marked for deletion."""

    @property
    def is_detached(self) -> bool:
        return self is EntityState.DETACHED

    @property
    def is_added(self) -> bool:
        return self is EntityState.ADDED

    @property
    def is_unchanged(self) -> bool:
        return self is EntityState.UNCHANGED

    @property
    def is_modified(self) -> bool:
        return self is EntityState.MODIFIED

    @property
    def is_deleted(self) -> bool:
        return self is EntityState.DELETED

    @property
    def is_unchanged_or_modified(self) -> bool:
        return self in (EntityState.UNCHANGED, EntityState.MODIFIED)

    @property
    def has_pending_changes(self) -> bool:
        """Added, Modified and Deleted entities make up the change set."""
        return self in PENDING_STATES


PENDING_STATES = frozenset({EntityState.ADDED, EntityState.MODIFIED, EntityState.DELETED})


class EntityAction(Enum):
    """What caused an ``entity_changed`` notification."""

    ATTACH = "attach"
    DETACH = "detach"
    PROPERTY_CHANGE = "property_change"
    ENTITY_STATE_CHANGE = "entity_state_change"
    MERGE_ON_QUERY = "merge_on_query"
    REJECT_CHANGES = "reject_changes"
    ACCEPT_CHANGES = "accept_changes"
    CLEAR = "clear"
