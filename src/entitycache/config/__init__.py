"""Configuration: environment-driven defaults for entity managers."""

from entitycache.config.settings import EntityCacheSettings

__all__ = [
    "EntityCacheSettings",
]
