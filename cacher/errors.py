"""
Cacher — Core Error Types

Defines the exception hierarchy raised by the caching layer.
All exceptions inherit from CacheError so callers can catch the whole family,
and every instance carries the structured metadata an operator needs to
attribute a failure (engine, instance name, operation, key, config option)
without parsing the free-text message.
"""

from datetime import UTC, datetime
from typing import Any

# Metadata fields rendered into the log line, in order.
_LINE_FIELDS: tuple[tuple[str, str], ...] = (
    ("engine", "engine"),
    ("instance_name", "instance"),
    ("operation", "operation"),
    ("key", "key"),
    ("config_key", "config_key"),
    ("config_value", "config_value"),
)


class CacheError(Exception):
    """Base exception for all caching errors."""

    def __init__(
        self,
        message: str,
        *,
        engine: str | None = None,
        instance_name: str | None = None,
        operation: str | None = None,
        key: str | None = None,
        config_key: str | None = None,
        config_value: Any = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.timestamp = datetime.now(UTC)
        self.engine = engine
        self.instance_name = instance_name
        self.operation = operation
        self.key = key
        self.config_key = config_key
        self.config_value = config_value
        self.details = details or {}

    @property
    def metadata(self) -> dict[str, Any]:
        """Structured attribution fields; unset fields are omitted."""
        meta: dict[str, Any] = {}
        for attr, _ in _LINE_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                meta[attr] = value
        return meta

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "metadata": self.metadata,
            "details": self.details,
        }

    def log_line(self) -> str:
        """Render a single log-friendly line."""
        stamp = self.timestamp.isoformat().replace("+00:00", "Z")
        parts = [f"[{stamp}] {self.__class__.__name__}"]
        for attr, label in _LINE_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                parts.append(f"{label}={value!r}" if attr == "config_value" else f"{label}={value}")
        return f"{' '.join(parts)}: {self.message}"

    def __str__(self) -> str:
        return self.log_line()


class ConfigurationError(CacheError):
    """Raised when a cache option is invalid or missing (bad expiry, missing host, ...)."""


class CacheConnectionError(CacheError):
    """Raised when the backend link cannot be established or maintained."""

    def __init__(
        self,
        engine: str,
        instance_name: str,
        *,
        host: str | None = None,
        port: int | None = None,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        target = f" at {host}:{port}" if host is not None else ""
        message = f"Failed to connect to {engine} cache backend{target}"
        if reason:
            message += f" ({reason})"
        error_details = details or {}
        if host is not None:
            error_details.update({"host": host, "port": port})
        super().__init__(
            message,
            engine=engine,
            instance_name=instance_name,
            operation="INIT",
            details=error_details,
        )


class CacheOperationError(CacheError):
    """Raised when a has/get/set/delete/clear call fails on a live connection."""


class NotFoundError(CacheError):
    """Raised when a registry lookup names an unregistered cache."""

    def __init__(self, instance_name: str):
        super().__init__(f"Cache not registered: {instance_name}", instance_name=instance_name)


class DuplicateError(CacheError):
    """Raised when a name is re-registered with a different configuration."""

    def __init__(self, instance_name: str, engine: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(
            f"Cache '{instance_name}' is already registered with a different configuration",
            engine=engine,
            instance_name=instance_name,
            details=details,
        )


class UnsupportedError(CacheError):
    """Raised when a configuration names an unknown engine kind."""

    def __init__(self, engine: Any, instance_name: str | None = None, supported: list[str] | None = None):
        super().__init__(
            f"Unknown or unsupported cache engine: {engine!r}",
            engine=str(engine),
            instance_name=instance_name,
            config_key="engine",
            config_value=engine,
            details={"supported": supported or []},
        )
