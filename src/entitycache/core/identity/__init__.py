"""Entity identity functionality: canonical entity keys."""

from entitycache.core.identity.models import EntityKey

__all__ = [
    "EntityKey",
]
