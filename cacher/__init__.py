"""
Cacher — Caching Abstraction Layer

A uniform async key-value cache contract over in-process memory, Redis and
Memcached engines, plus a registry that maps cache names to lazily built
instances.
"""

from .cache import BaseCache, CacheEntry, CacheRegistry, CacheState, create_cache
from .config import (
    EngineKind,
    MemcachedCacheConfig,
    MemoryCacheConfig,
    RedisCacheConfig,
    load_cache_configs,
    parse_cache_config,
)
from .errors import (
    CacheConnectionError,
    CacheError,
    CacheOperationError,
    ConfigurationError,
    DuplicateError,
    NotFoundError,
    UnsupportedError,
)

__version__ = "1.0.0"

__all__ = [
    # Cache
    "BaseCache",
    "CacheEntry",
    "CacheRegistry",
    "CacheState",
    "create_cache",
    # Config
    "EngineKind",
    "MemoryCacheConfig",
    "RedisCacheConfig",
    "MemcachedCacheConfig",
    "load_cache_configs",
    "parse_cache_config",
    # Errors
    "CacheError",
    "ConfigurationError",
    "CacheConnectionError",
    "CacheOperationError",
    "NotFoundError",
    "DuplicateError",
    "UnsupportedError",
]
