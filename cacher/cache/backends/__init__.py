"""
Cacher — Cache Backends

Exports available cache engine implementations.

Redis and Memcached engines are lazy-loaded via factory.py to avoid import overhead.
"""

from .memory import MemoryCache, MemoryStore

__all__ = [
    "MemoryCache",
    "MemoryStore",
]
