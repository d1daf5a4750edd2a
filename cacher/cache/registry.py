"""
Cacher — Cache Registry

Directory that maps a cache name to its declared configuration and, lazily,
to one live cache instance.

Declaring a cache never opens a connection; the instance is built on the
first get() and connects on its first operation.

Example:
    registry = CacheRegistry()
    registry.register("sessions", {"engine": "MEMORY", "default_expiry": 300})

    sessions = registry.get("sessions")
    await sessions.set("u1", {"id": 1})
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..config.loader import load_cache_configs
from ..config.schemas import MemcachedCacheConfig, MemoryCacheConfig, RedisCacheConfig, parse_cache_config
from ..errors import CacheError, DuplicateError, NotFoundError, UnsupportedError
from .backends.memory import MemoryStore
from .factory import create_cache
from .interface import BaseCache, normalize_name

logger = logging.getLogger(__name__)

AnyCacheConfig = MemoryCacheConfig | RedisCacheConfig | MemcachedCacheConfig
_CONFIG_TYPES = (MemoryCacheConfig, RedisCacheConfig, MemcachedCacheConfig)


class CacheRegistry:
    """
    Registry of named caches.

    Construct one per application and pass it to whatever needs cache
    lookup. Every memory cache built by a registry shares the registry's
    MemoryStore, isolated by key prefix.
    """

    def __init__(self, memory_store: MemoryStore | None = None) -> None:
        self._configs: dict[str, AnyCacheConfig] = {}
        self._instances: dict[str, BaseCache] = {}
        self._memory_store = memory_store if memory_store is not None else MemoryStore()

    @property
    def memory_store(self) -> MemoryStore:
        return self._memory_store

    def register(self, name: str, config: AnyCacheConfig | Mapping[str, Any]) -> None:
        """
        Declare a cache.

        Args:
            name: Cache name (trimmed and lowercased)
            config: Configuration model or raw option mapping

        Raises:
            UnsupportedError: If the engine is unknown
            ConfigurationError: If the options are invalid
            DuplicateError: If the name is registered with a different configuration
        """
        key = normalize_name(name)
        if isinstance(config, _CONFIG_TYPES):
            parsed: AnyCacheConfig = config
        elif isinstance(config, Mapping):
            parsed = parse_cache_config(key, config)
        else:
            raise UnsupportedError(getattr(config, "engine", type(config).__name__), instance_name=key)

        existing = self._configs.get(key)
        if existing is not None:
            if existing == parsed:
                logger.debug("Cache '%s' already registered with identical configuration", key)
                return
            raise DuplicateError(
                key,
                engine=parsed.engine,
                details={"registered_engine": existing.engine, "requested_engine": parsed.engine},
            )

        self._configs[key] = parsed
        logger.info(
            "Registered cache '%s' with engine: %s",
            key,
            parsed.engine,
            extra={"cache_name": key, "engine": parsed.engine},
        )

    def register_from_env(self, env_file: str | None = None) -> list[str]:
        """Register every cache declared in the environment; returns their names."""
        configs = load_cache_configs(env_file)
        for name, config in configs.items():
            self.register(name, config)
        return list(configs)

    def get(self, name: str) -> BaseCache:
        """
        Get the cache instance for a name, building it on first use.

        Raises:
            NotFoundError: If the name was never registered
        """
        key = normalize_name(name)
        instance = self._instances.get(key)
        if instance is not None:
            return instance

        config = self._configs.get(key)
        if config is None:
            raise NotFoundError(key)

        instance = create_cache(key, config, memory_store=self._memory_store)
        self._instances[key] = instance
        return instance

    def has(self, name: str) -> bool:
        """True if a configuration is registered under the name."""
        try:
            return normalize_name(name) in self._configs
        except CacheError:
            return False

    def is_materialized(self, name: str) -> bool:
        """True if an instance has been built for the name."""
        return normalize_name(name) in self._instances

    def names(self) -> list[str]:
        """List all registered cache names."""
        return list(self._configs)

    def config(self, name: str) -> AnyCacheConfig:
        """Return the registered configuration for a name."""
        key = normalize_name(name)
        try:
            return self._configs[key]
        except KeyError:
            raise NotFoundError(key) from None

    async def close(self, name: str) -> None:
        """
        Finalize and drop the instance for a name.

        The configuration stays registered; the next get() builds a fresh instance.
        """
        key = normalize_name(name)
        instance = self._instances.pop(key, None)
        if instance is None:
            return
        await instance.finalize()
        logger.info("Closed cache instance: %s", key)

    async def close_all(self) -> None:
        """
        Close all cache instances and release resources.

        Failures are logged per instance and do not stop the others from closing.
        """
        if not self._instances:
            logger.debug("No cache instances to close")
            return

        logger.info("Closing %d cache instance(s)...", len(self._instances))

        for key, instance in list(self._instances.items()):
            try:
                await instance.finalize()
                logger.info("Closed cache instance: %s", key)
            except CacheError as e:
                logger.error(
                    "Error closing cache instance '%s': %s",
                    key,
                    e.message,
                    extra={"cache_name": key, "error": e.to_dict()},
                    exc_info=True,
                )

        self._instances.clear()
        logger.info("All cache instances closed")
