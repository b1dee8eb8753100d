"""Example catalogs and scripts for entitycache.

This package demonstrates library usage but is not part of the core API.
"""

from .catalog import build_catalog, build_service

__all__ = [
    "build_catalog",
    "build_service",
]
