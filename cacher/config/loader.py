"""
Cacher — Configuration Loader

Loads cache declarations from environment variables and .env files.

Environment layout:
    CACHER_CACHES=sessions,users
    CACHER_SESSIONS_ENGINE=MEMORY
    CACHER_SESSIONS_DEFAULT_EXPIRY=600
    CACHER_USERS_ENGINE=REDIS
    CACHER_USERS_HOST=localhost
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..errors import ConfigurationError
from .schemas import MemcachedCacheConfig, MemoryCacheConfig, RedisCacheConfig, parse_cache_config

logger = logging.getLogger(__name__)

ENV_PREFIX = "CACHER_"

# option name -> converter applied to the raw env string
_OPTION_CONVERTERS: dict[str, Any] = {
    "default_expiry": int,
    "host": str,
    "port": int,
    "username": str,
    "password": str,
    "db": int,
    "cert_path": str,
    "max_connections": int,
    "max_pool_size": int,
    "socket_timeout": float,
}


def env_name(cache_name: str) -> str:
    """Env-var infix for a cache name: upper-cased, non-alphanumerics become '_'."""
    return re.sub(r"[^A-Z0-9]", "_", cache_name.strip().upper())


def load_env_file(env_file: str | None = None) -> None:
    """
    Load a .env file into the process environment if one exists.

    Args:
        env_file: Path to .env file (default: .env in current directory)

    Raises:
        ConfigurationError: If the file exists but cannot be loaded
    """
    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if not env_path.exists():
        logger.debug("No .env file found, using environment variables only")
        return

    logger.info(f"Loading environment from {env_path}")
    try:
        load_dotenv(env_path, override=True)
    except Exception as e:
        logger.error(
            f"Failed to load .env file from {env_path}: {e}",
            extra={"path": str(env_path), "error": str(e)},
            exc_info=True,
        )
        raise ConfigurationError(
            f"Failed to load environment file: {e}",
            config_key="env_file",
            config_value=str(env_path),
        ) from e


def _read_options(cache_name: str) -> dict[str, Any]:
    """Collect the raw options for one cache from the environment."""
    infix = env_name(cache_name)
    options: dict[str, Any] = {"engine": os.getenv(f"{ENV_PREFIX}{infix}_ENGINE", "MEMORY")}

    for option, convert in _OPTION_CONVERTERS.items():
        var = f"{ENV_PREFIX}{infix}_{option.upper()}"
        raw = os.getenv(var)
        if raw is None:
            continue
        try:
            options[option] = convert(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"Environment variable {var} has an invalid value",
                instance_name=cache_name,
                config_key=option,
                config_value="***" if option == "password" else raw,
            ) from e

    return options


def load_cache_configs(
    env_file: str | None = None,
) -> dict[str, MemoryCacheConfig | RedisCacheConfig | MemcachedCacheConfig]:
    """
    Build cache configurations from the environment.

    Args:
        env_file: Optional path to a .env file

    Returns:
        Mapping of normalized cache name to validated configuration

    Raises:
        ConfigurationError: If a declared cache has invalid options
        UnsupportedError: If a declared cache names an unknown engine
    """
    load_env_file(env_file)

    declared = os.getenv(f"{ENV_PREFIX}CACHES", "")
    names = [n.strip().lower() for n in declared.split(",") if n.strip()]

    configs: dict[str, MemoryCacheConfig | RedisCacheConfig | MemcachedCacheConfig] = {}
    for name in names:
        configs[name] = parse_cache_config(name, _read_options(name))

    logger.info(
        f"Loaded {len(configs)} cache declaration(s) from environment",
        extra={"caches": list(configs)},
    )
    return configs


def get_log_settings() -> tuple[str, str]:
    """Return (LOG_LEVEL, LOG_FORMAT) from the environment."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    fmt = os.getenv("LOG_FORMAT", "text").lower()
    return level, fmt
