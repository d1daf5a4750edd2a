"""
Cacher — Configuration Schemas

Typed per-instance cache configuration using Pydantic for validation.

Each engine has its own model; together they form a tagged union
discriminated on the ``engine`` field, so the rest of the package dispatches
on the model type instead of comparing engine strings.
"""

import os
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, TypeAdapter, ValidationError, field_validator

from ..errors import ConfigurationError, UnsupportedError

# Upper bound for any expiry, in seconds (60 hours).
MAX_EXPIRY = 216000
DEFAULT_EXPIRY = 300


class EngineKind(str, Enum):
    """Supported cache engines."""

    MEMORY = "MEMORY"
    REDIS = "REDIS"
    MEMCACHED = "MEMCACHED"


SUPPORTED_ENGINES: list[str] = [e.value for e in EngineKind]


def is_valid_expiry(value: Any) -> bool:
    """True if ``value`` is an integer number of seconds within [0, MAX_EXPIRY]."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value <= MAX_EXPIRY


class _BaseCacheConfig(BaseModel):
    """Options shared by every engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_expiry: int = Field(
        default=DEFAULT_EXPIRY,
        ge=0,
        le=MAX_EXPIRY,
        description="Default TTL in seconds (0 = no expiry)",
    )

    @field_validator("default_expiry", mode="before")
    @classmethod
    def reject_bool_expiry(cls, v: Any) -> Any:
        """bool is an int subclass; refuse it explicitly."""
        if isinstance(v, bool):
            raise ValueError("default_expiry must be an integer number of seconds")
        return v


class MemoryCacheConfig(_BaseCacheConfig):
    """In-process memory cache."""

    engine: Literal["MEMORY"] = "MEMORY"


class _NetworkCacheConfig(_BaseCacheConfig):
    """Options shared by engines that talk to a server."""

    host: str = Field(min_length=1, description="Server hostname")
    cert_path: str | None = Field(default=None, description="CA certificate file; enables TLS when set")
    socket_timeout: float = Field(default=5.0, gt=0, description="Socket timeout in seconds")

    @field_validator("host", mode="before")
    @classmethod
    def strip_host(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("cert_path")
    @classmethod
    def validate_cert_path(cls, v: str | None) -> str | None:
        """Ensure the certificate file exists and is readable."""
        if v is None or v == "":
            return None
        if not os.path.isfile(v) or not os.access(v, os.R_OK):
            raise ValueError(f"certificate file not found or not readable: {v}")
        return v


class RedisCacheConfig(_NetworkCacheConfig):
    """Redis cache server."""

    engine: Literal["REDIS"] = "REDIS"
    port: int = Field(default=6379, ge=1, le=65535)
    username: str | None = Field(default=None, description="ACL username")
    password: SecretStr | None = Field(default=None, description="Password (never logged)")
    db: int = Field(default=0, ge=0, description="Database index")
    max_connections: int = Field(default=10, ge=1, description="Connection pool size")

    @field_validator("username", "password", mode="before")
    @classmethod
    def blank_as_none(cls, v: Any) -> Any:
        """Empty credentials are treated as absent."""
        if isinstance(v, str) and v == "":
            return None
        return v


class MemcachedCacheConfig(_NetworkCacheConfig):
    """Memcached cache server."""

    engine: Literal["MEMCACHED"] = "MEMCACHED"
    port: int = Field(default=11211, ge=1, le=65535)
    max_pool_size: int = Field(default=10, ge=1, description="Client pool size")


CacheConfig = Annotated[
    MemoryCacheConfig | RedisCacheConfig | MemcachedCacheConfig,
    Field(discriminator="engine"),
]

_config_adapter: TypeAdapter[Any] = TypeAdapter(CacheConfig)


def parse_cache_config(name: str, raw: Mapping[str, Any]) -> MemoryCacheConfig | RedisCacheConfig | MemcachedCacheConfig:
    """
    Validate a raw option mapping into a typed cache configuration.

    Args:
        name: Cache instance name (for error attribution)
        raw: Option mapping; ``engine`` is required and case-insensitive

    Returns:
        The engine-specific configuration model

    Raises:
        UnsupportedError: If ``engine`` is missing or not a known engine
        ConfigurationError: If any option fails validation
    """
    options = dict(raw)
    engine = options.get("engine")
    normalized = engine.strip().upper() if isinstance(engine, str) else engine
    if normalized not in SUPPORTED_ENGINES:
        raise UnsupportedError(engine, instance_name=name, supported=SUPPORTED_ENGINES)
    options["engine"] = normalized

    try:
        return _config_adapter.validate_python(options)
    except ValidationError as e:
        first = e.errors()[0]
        loc = [str(part) for part in first.get("loc", ()) if str(part) != normalized]
        config_key = ".".join(loc) or None
        config_value = options.get(loc[0]) if loc else None
        if config_key == "password":
            config_value = "***"
        raise ConfigurationError(
            f"Invalid configuration for cache '{name}': {first.get('msg')}",
            engine=normalized,
            instance_name=name,
            config_key=config_key,
            config_value=config_value,
            details={"validation_errors": [err.get("msg") for err in e.errors()]},
        ) from e
