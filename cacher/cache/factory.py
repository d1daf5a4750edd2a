"""
Cacher — Cache Factory

Builds a cache engine from a validated configuration. Dispatch is on the
configuration model type (the tagged union in config.schemas), never on
engine strings.

Network engines are imported lazily so that a process using only memory
caches never imports redis or pymemcache.
"""

from __future__ import annotations

import logging

from ..config.schemas import SUPPORTED_ENGINES, MemcachedCacheConfig, MemoryCacheConfig, RedisCacheConfig
from ..errors import ConfigurationError, UnsupportedError
from .backends.memory import MemoryCache, MemoryStore
from .interface import BaseCache

logger = logging.getLogger(__name__)


def _create_memory_cache(name: str, config: MemoryCacheConfig, store: MemoryStore | None) -> BaseCache:
    """Internal helper to construct a memory cache engine."""
    return MemoryCache(name, config, store=store)


def _create_redis_cache(name: str, config: RedisCacheConfig) -> BaseCache:
    """Internal helper to construct a redis cache engine with lazy import."""
    try:
        from .backends.redis import RedisCache
    except ImportError as e:
        logger.error(
            "Redis engine selected but redis client is not installed",
            extra={"package": "redis>=5.0.1", "error": str(e)},
        )
        raise ConfigurationError(
            "Redis engine selected but redis client is unavailable. Install with: pip install 'redis>=5.0.1'",
            engine="REDIS",
            instance_name=name,
            config_key="engine",
            config_value="REDIS",
        ) from e

    return RedisCache(name, config)


def _create_memcached_cache(name: str, config: MemcachedCacheConfig) -> BaseCache:
    """Internal helper to construct a memcached cache engine with lazy import."""
    try:
        from .backends.memcached import MemcachedCache
    except ImportError as e:
        logger.error(
            "Memcached engine selected but pymemcache is not installed",
            extra={"package": "pymemcache>=4.0.0", "error": str(e)},
        )
        raise ConfigurationError(
            "Memcached engine selected but pymemcache is unavailable. Install with: pip install 'pymemcache>=4.0.0'",
            engine="MEMCACHED",
            instance_name=name,
            config_key="engine",
            config_value="MEMCACHED",
        ) from e

    return MemcachedCache(name, config)


def create_cache(
    name: str,
    config: MemoryCacheConfig | RedisCacheConfig | MemcachedCacheConfig,
    memory_store: MemoryStore | None = None,
) -> BaseCache:
    """
    Create a cache engine instance for a configuration.

    The instance is returned unconnected; it connects on first use.

    Args:
        name: Cache instance name
        config: Validated engine configuration
        memory_store: Store shared by memory caches (private store if omitted)

    Returns:
        Configured cache engine

    Raises:
        UnsupportedError: If the configuration type is not a known engine
        ConfigurationError: If the engine's client library is unavailable
    """
    if isinstance(config, MemoryCacheConfig):
        cache = _create_memory_cache(name, config, memory_store)
    elif isinstance(config, RedisCacheConfig):
        cache = _create_redis_cache(name, config)
    elif isinstance(config, MemcachedCacheConfig):
        cache = _create_memcached_cache(name, config)
    else:
        raise UnsupportedError(
            getattr(config, "engine", type(config).__name__),
            instance_name=name,
            supported=SUPPORTED_ENGINES,
        )

    logger.info(
        f"Cache instance '{cache.name}' created with engine: {cache.engine}",
        extra={"cache_name": cache.name, "engine": cache.engine},
    )
    return cache
