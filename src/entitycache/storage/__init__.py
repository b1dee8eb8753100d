"""Storage: the in-memory identity map backing each EntityManager."""

from entitycache.storage.identity_map import IdentityMap

__all__ = [
    "IdentityMap",
]
