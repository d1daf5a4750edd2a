"""
Cacher — Cache Interface

Defines the contract every cache exposes and the primitives each backend
engine must implement.

BaseCache owns everything that must behave identically across engines:
- key normalization and namespacing ("<name>:<key>")
- expiry resolution and bounds checking
- lazy, single-flight initialization with fail-fast memoization of a
  connection failure
- wrapping of foreign exceptions into CacheOperationError

Engines only implement the underscore-prefixed primitives.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any, ClassVar

from ..config.schemas import MAX_EXPIRY, is_valid_expiry
from ..errors import CacheConnectionError, CacheError, CacheOperationError, ConfigurationError
from .entry import CacheEntry

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


class CacheState(str, Enum):
    """Lifecycle state of a cache instance."""

    INIT = "INIT"
    READY = "READY"
    FAILED = "FAILED"
    CLOSED = "CLOSED"


def normalize_name(name: Any) -> str:
    """Trim and lowercase a cache name; empty names are rejected."""
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(
            "Cache name must be a non-empty string",
            config_key="name",
            config_value=name,
        )
    return name.strip().lower()


class BaseCache(ABC):
    """
    Abstract base class for cache engines.

    All public operations are coroutines so callers can treat every engine
    interchangeably, including the in-memory one whose primitives never
    actually suspend.
    """

    ENGINE: ClassVar[str]

    def __init__(self, name: str, config: Any):
        """
        Args:
            name: Cache instance name; normalized and used as key namespace
            config: Validated engine configuration
        """
        self._name = normalize_name(name)
        self._config = config
        self._state = CacheState.INIT
        self._failure: CacheError | None = None
        self._init_lock = asyncio.Lock()

        # Stats
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0

    # ------------ Properties ------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def engine(self) -> str:
        return self.ENGINE

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def config(self) -> Any:
        return self._config

    @property
    def default_expiry(self) -> int:
        return self._config.default_expiry

    # ------------ Lifecycle ------------

    async def init(self) -> None:
        """
        Open the backend connection if not already open.

        Concurrent callers share one attempt: late arrivals wait on the lock
        and then observe READY or the memoized failure. A failed attempt is
        not retried until finalize() is called.

        Raises:
            CacheConnectionError: If the backend cannot be reached
        """
        if self._state is CacheState.READY:
            return

        async with self._init_lock:
            if self._state is CacheState.READY:
                return
            if self._failure is not None:
                raise self._failure

            try:
                await self._open()
            except CacheError as e:
                self._mark_failed(e)
                raise
            except Exception as e:
                error = self._connection_error(e)
                self._mark_failed(error)
                raise error from e

            self._state = CacheState.READY
            logger.debug(f"Cache '{self._name}' ready", extra={"cache_name": self._name, "engine": self.ENGINE})

    async def finalize(self) -> None:
        """Close the backend connection. Idempotent; also clears a memoized failure."""
        async with self._init_lock:
            if self._state is CacheState.READY:
                try:
                    await self._close()
                except Exception as e:
                    logger.error(
                        f"Error closing cache '{self._name}': {e}",
                        extra={"cache_name": self._name, "engine": self.ENGINE, "error": str(e)},
                        exc_info=True,
                    )
                    raise CacheOperationError(
                        f"Failed to close cache backend: {e}",
                        engine=self.ENGINE,
                        instance_name=self._name,
                        operation="FINALIZE",
                    ) from e
                finally:
                    self._state = CacheState.CLOSED
            elif self._state is CacheState.FAILED:
                self._state = CacheState.INIT
            self._failure = None

    async def close(self) -> None:
        """Alias for finalize()."""
        await self.finalize()

    async def __aenter__(self) -> "BaseCache":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.finalize()

    # ------------ Public operations ------------

    async def has(self, key: str) -> bool:
        """Check if a non-expired entry exists. Never renews a window entry."""
        cache_key = self._make_key(key)
        await self.init()
        with self._wrap_errors("HAS", key):
            return await self._exists(cache_key)

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a value from the cache.

        Window entries have their expiry renewed, but only after the stored
        record decoded successfully.

        Args:
            key: Cache key
            default: Returned when the key is missing or expired

        Returns:
            The cached value, or ``default``
        """
        cache_key = self._make_key(key)
        await self.init()
        with self._wrap_errors("GET", key):
            raw = await self._read(cache_key)
            if raw is None:
                self._misses += 1
                return default

            entry = CacheEntry.decode(raw)
            if entry.renews_on_read:
                await self._renew(cache_key, entry)

        self._hits += 1
        return entry.data

    async def set(
        self,
        key: str,
        value: Any,
        *,
        expiry: int | None = None,
        window: bool | None = None,
    ) -> None:
        """
        Store a value in the cache.

        Args:
            key: Cache key
            value: JSON-serializable value
            expiry: TTL in seconds, 0 = never (None = config default_expiry)
            window: Renew the TTL on every read (None = False)

        Raises:
            ConfigurationError: If the resolved expiry is outside [0, MAX_EXPIRY]
            CacheOperationError: If the value cannot be serialized or stored
        """
        cache_key = self._make_key(key)
        resolved = self.default_expiry if expiry is None else expiry
        if not is_valid_expiry(resolved):
            raise ConfigurationError(
                f"Cache value expiry must be an integer between 0 and {MAX_EXPIRY}. "
                f"(Key - {key}, Expiry - {resolved})",
                engine=self.ENGINE,
                instance_name=self._name,
                operation="SET",
                key=self._clean_key(key),
                config_key="expiry",
                config_value=resolved,
            )

        await self.init()
        with self._wrap_errors("SET", key):
            entry = CacheEntry(data=value, expiry=resolved, window=False if window is None else bool(window))
            await self._write(cache_key, entry.encode(), entry)
        self._sets += 1

    async def delete(self, key: str) -> None:
        """Delete a key. Deleting a missing key is not an error."""
        cache_key = self._make_key(key)
        await self.init()
        with self._wrap_errors("DELETE", key):
            if await self._remove(cache_key):
                self._deletes += 1

    async def clear(self) -> None:
        """Remove every entry in this cache's namespace, and nothing outside it."""
        await self.init()
        with self._wrap_errors("CLEAR"):
            removed = await self._clear_namespace()
        self._deletes += removed
        logger.info(
            f"Cleared {removed} entries from cache '{self._name}'",
            extra={"cache_name": self._name, "engine": self.ENGINE, "removed": removed},
        )

    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0
        stats: dict[str, Any] = {
            "engine": self.ENGINE,
            "name": self._name,
            "state": self._state.value,
            "default_expiry": self.default_expiry,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
            "sets": self._sets,
            "deletes": self._deletes,
        }
        stats.update(self._extra_stats())
        return stats

    # ------------ Helpers ------------

    @staticmethod
    def _clean_key(key: Any) -> str:
        if not isinstance(key, str) or not key.strip():
            raise ConfigurationError(
                "Cache key must be a non-empty string",
                config_key="key",
                config_value=key,
            )
        return key.strip().lower()

    def _make_key(self, key: Any) -> str:
        """Create namespaced cache key."""
        try:
            clean = self._clean_key(key)
        except ConfigurationError as e:
            e.engine = self.ENGINE
            e.instance_name = self._name
            raise
        return f"{self._name}{KEY_SEPARATOR}{clean}"

    @contextmanager
    def _wrap_errors(self, operation: str, key: str | None = None) -> Iterator[None]:
        """Re-raise foreign exceptions as CacheOperationError; taxonomy errors pass through."""
        try:
            yield
        except CacheError:
            raise
        except Exception as e:
            clean_key = key.strip().lower() if isinstance(key, str) else None
            logger.error(
                f"Cache operation {operation} failed on '{self._name}': {e}",
                extra={
                    "cache_name": self._name,
                    "engine": self.ENGINE,
                    "operation": operation,
                    "key": clean_key,
                    "error": str(e),
                },
                exc_info=True,
            )
            raise CacheOperationError(
                f"{operation} failed: {e}",
                engine=self.ENGINE,
                instance_name=self._name,
                operation=operation,
                key=clean_key,
                details={"error_type": type(e).__name__},
            ) from e

    def _connection_error(self, cause: Exception) -> CacheConnectionError:
        return CacheConnectionError(
            self.ENGINE,
            self._name,
            host=getattr(self._config, "host", None),
            port=getattr(self._config, "port", None),
            reason=str(cause) or type(cause).__name__,
        )

    def _mark_failed(self, error: CacheError) -> None:
        self._state = CacheState.FAILED
        self._failure = error
        logger.error(
            f"Cache '{self._name}' failed to initialize: {error.message}",
            extra={"cache_name": self._name, "engine": self.ENGINE, "error": error.message},
        )

    def _extra_stats(self) -> dict[str, Any]:
        """Engine-specific additions to get_stats()."""
        return {}

    # ------------ Engine primitives ------------

    async def _open(self) -> None:
        """Establish the backend connection. Default: nothing to open."""

    async def _close(self) -> None:
        """Release the backend connection. Default: nothing to release."""

    @abstractmethod
    async def _read(self, key: str) -> str | bytes | None:
        """Return the raw stored record, or None if missing/expired."""

    @abstractmethod
    async def _write(self, key: str, record: str, entry: CacheEntry) -> None:
        """Store a serialized record with the entry's expiry (0 = no TTL)."""

    @abstractmethod
    async def _renew(self, key: str, entry: CacheEntry) -> None:
        """Reset the TTL of an existing key to ``entry.expiry``."""

    @abstractmethod
    async def _exists(self, key: str) -> bool:
        """True if the key exists and has not expired."""

    @abstractmethod
    async def _remove(self, key: str) -> bool:
        """Delete a key; True if something was removed."""

    @abstractmethod
    async def _clear_namespace(self) -> int:
        """Delete every key under "<name>:"; return how many were removed."""
