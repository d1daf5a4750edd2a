"""
Cacher — Configuration Module

Provides typed cache configuration and environment loading.
"""

from .loader import get_log_settings, load_cache_configs, load_env_file
from .schemas import (
    DEFAULT_EXPIRY,
    MAX_EXPIRY,
    SUPPORTED_ENGINES,
    CacheConfig,
    EngineKind,
    MemcachedCacheConfig,
    MemoryCacheConfig,
    RedisCacheConfig,
    is_valid_expiry,
    parse_cache_config,
)

__all__ = [
    # Loader functions
    "load_cache_configs",
    "load_env_file",
    "get_log_settings",
    # Schemas
    "CacheConfig",
    "MemoryCacheConfig",
    "RedisCacheConfig",
    "MemcachedCacheConfig",
    "EngineKind",
    "parse_cache_config",
    "is_valid_expiry",
    # Constants
    "DEFAULT_EXPIRY",
    "MAX_EXPIRY",
    "SUPPORTED_ENGINES",
]
