"""
Cacher — Cache Module

Provides the cache contract, the engines behind it and the registry.

- interface.py: BaseCache, the contract every engine implements
- factory.py: builds an engine from a configuration model
- registry.py: name -> configuration -> lazily built instance
- backends/: memory (always available), redis and memcached (lazy)

Usage:
    from cacher.cache import CacheRegistry

    registry = CacheRegistry()
    registry.register("sessions", {"engine": "MEMORY"})
    cache = registry.get("sessions")
    await cache.set("key", "value", expiry=3600)
    value = await cache.get("key")
"""

from .entry import CacheEntry
from .factory import create_cache
from .interface import BaseCache, CacheState, normalize_name
from .registry import CacheRegistry

__all__ = [
    "BaseCache",
    "CacheEntry",
    "CacheRegistry",
    "CacheState",
    "create_cache",
    "normalize_name",
]
