"""Publish/subscribe channels for cache notifications.

Delivery is synchronous and ordered: every subscriber present when a
mutation happens is called, in subscription order, before the mutating call
returns. Each EntityManager owns an EventDispatcher that can switch an
event kind off for that manager only.

Usage:
    token = manager.entity_changed.subscribe(lambda args: print(args.action))
    manager.entity_changed.unsubscribe(token)

    with manager.event_dispatcher.suppressed(EventKind.ARRAY_CHANGED):
        await customer.entity_aspect.load_navigation_property("orders")
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from entitycache.entity.state import EntityAction

if TYPE_CHECKING:
    from entitycache.entity.entity import Entity
    from entitycache.entity.relation import RelationArray
    from entitycache.manager.manager import EntityManager

T = TypeVar("T")


class EventKind(Enum):
    ENTITY_CHANGED = "entity_changed"
    ARRAY_CHANGED = "array_changed"
    HAS_CHANGES_CHANGED = "has_changes_changed"


@dataclass(frozen=True, slots=True)
class EntityChangedArgs:
    """Payload of ``entity_changed``. ``entity`` is None for manager-wide actions (CLEAR)."""

    action: EntityAction
    entity: Entity | None = None
    property_name: str | None = None
    old_value: Any = None
    new_value: Any = None


@dataclass(frozen=True, slots=True)
class ArrayChangedArgs:
    """Payload of ``array_changed``: members added/removed by one operation."""

    relation_array: RelationArray
    added: tuple[Entity, ...] = ()
    removed: tuple[Entity, ...] = ()


@dataclass(frozen=True, slots=True)
class HasChangesChangedArgs:
    entity_manager: EntityManager
    has_changes: bool


class EventDispatcher:
    """Per-manager on/off switches for event kinds."""

    def __init__(self) -> None:
        self._disabled: set[EventKind] = set()

    def is_enabled(self, kind: EventKind) -> bool:
        return kind not in self._disabled

    def enable(self, kind: EventKind, enabled: bool = True) -> None:
        if enabled:
            self._disabled.discard(kind)
        else:
            self._disabled.add(kind)

    @contextmanager
    def suppressed(self, kind: EventKind) -> Iterator[None]:
        """Disable ``kind`` for the duration of the block, then restore the previous setting."""
        was_enabled = self.is_enabled(kind)
        self.enable(kind, False)
        try:
            yield
        finally:
            self.enable(kind, was_enabled)


class Event(Generic[T]):
    """One notification channel.

    Args:
        kind: Event kind, used for suppression.
        dispatcher: Returns the dispatcher governing this channel (None = always on).
    """

    def __init__(
        self,
        kind: EventKind,
        dispatcher: Callable[[], EventDispatcher | None] | None = None,
    ) -> None:
        self.kind = kind
        self._dispatcher = dispatcher
        self._subscribers: dict[int, Callable[[T], Any]] = {}
        self._next_token = 1

    def subscribe(self, callback: Callable[[T], Any]) -> int:
        """Register a callback. Returns a token for ``unsubscribe``."""
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = callback
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a subscription. Returns True if the token was registered."""
        return self._subscribers.pop(token, None) is not None

    @property
    def is_enabled(self) -> bool:
        dispatcher = self._dispatcher() if self._dispatcher is not None else None
        return dispatcher is None or dispatcher.is_enabled(self.kind)

    def publish(self, args: T) -> bool:
        """Deliver ``args`` to every current subscriber.

        Returns:
            False if the event kind is suppressed (nothing delivered).
        """
        if not self.is_enabled:
            return False
        for callback in list(self._subscribers.values()):
            callback(args)
        return True

    def __len__(self) -> int:
        return len(self._subscribers)
