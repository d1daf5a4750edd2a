"""
Cacher — Memcached Cache Backend

Memcached cache engine built on pymemcache (a synchronous client).

- Uses `asyncio.to_thread` for every client call (no blocking of the event loop).
- Server-side TTL via the storage command's exptime (0 = no expiry).
- Window renewal via TOUCH after the record decoded.
- Keys follow the Memcached protocol: at most 250 bytes for the full
  "<name>:<key>" form, with no whitespace or NUL bytes. Invalid keys
  raise ConfigurationError before any I/O.
- Memcached cannot enumerate keys, so each namespace keeps an index record
  at "<name>@keys": one key per line, grown with the atomic APPEND command.
  Each instance appends a key once per index epoch ("<name>@epoch"); the epoch
  changes whenever the index is cleared, rebuilt or found missing.
  When the index reaches the server's item size limit it is compacted down to
  the keys that still hold a value. A write whose key cannot be indexed is
  rolled back and fails with CacheOperationError.
  clear() reads the index, deletes the listed keys, then drops the index.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import uuid
from typing import Any

from pymemcache.client.base import PooledClient, check_key_helper
from pymemcache.exceptions import MemcacheIllegalInputError, MemcacheServerError

from ...config.schemas import MemcachedCacheConfig
from ...errors import CacheConnectionError, ConfigurationError
from ..entry import CacheEntry
from ..interface import BaseCache

logger = logging.getLogger(__name__)

INDEX_SUFFIX = "@keys"
EPOCH_SUFFIX = "@epoch"


class MemcachedCache(BaseCache):
    """
    Memcached cache engine.

    Notes:
    - clear() is not atomic: a key written by a concurrent caller while the
      index is being processed may or may not survive.
    - If the server evicts the index record, keys written before the eviction
      are no longer reachable by clear() until they are written again, and
      otherwise age out via their TTL.
    """

    ENGINE = "MEMCACHED"

    # Keys per get_many/delete_many round trip
    INDEX_BATCH_SIZE = 100

    def __init__(self, name: str, config: MemcachedCacheConfig) -> None:
        super().__init__(name, config)
        self._client: PooledClient | None = None
        # Keys this instance has appended to the index during self._epoch
        self._indexed: set[str] = set()
        self._epoch: bytes | None = None

        for record_key in (self.index_key, self.epoch_key):
            try:
                check_key_helper(record_key, allow_unicode_keys=True)
            except MemcacheIllegalInputError as e:
                raise ConfigurationError(
                    f"Cache name is not usable as a Memcached key prefix: {e}",
                    engine=self.ENGINE,
                    instance_name=self.name,
                    config_key="name",
                    config_value=name,
                ) from e

    @property
    def index_key(self) -> str:
        return f"{self.name}{INDEX_SUFFIX}"

    @property
    def epoch_key(self) -> str:
        return f"{self.name}{EPOCH_SUFFIX}"

    def _make_key(self, key: Any) -> str:
        cache_key = super()._make_key(key)
        try:
            check_key_helper(cache_key, allow_unicode_keys=True)
        except MemcacheIllegalInputError as e:
            raise ConfigurationError(
                f"Cache key is not a valid Memcached key (max 250 bytes with the "
                f"'{self.name}:' prefix, no whitespace or NUL): {e}",
                engine=self.ENGINE,
                instance_name=self.name,
                key=self._clean_key(key),
                config_key="key",
                config_value=key,
            ) from e
        return cache_key

    # ------------ Connection ------------

    def _build_client(self) -> PooledClient:
        cfg: MemcachedCacheConfig = self.config
        tls_context = ssl.create_default_context(cafile=cfg.cert_path) if cfg.cert_path else None
        return PooledClient(
            (cfg.host, cfg.port),
            connect_timeout=cfg.socket_timeout,
            timeout=cfg.socket_timeout,
            max_pool_size=cfg.max_pool_size,
            allow_unicode_keys=True,
            default_noreply=False,
            tls_context=tls_context,
        )

    async def _open(self) -> None:
        client = self._build_client()
        try:
            await asyncio.to_thread(client.version)
        except Exception:
            await self._discard(client)
            raise
        self._client = client
        logger.info(
            f"Connected Memcached cache '{self.name}'",
            extra={"cache_name": self.name, "host": self.config.host, "port": self.config.port},
        )

    async def _close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await asyncio.to_thread(client.close)
            logger.info(f"Closed Memcached cache backend '{self.name}'")

    async def _discard(self, client: PooledClient) -> None:
        try:
            await asyncio.to_thread(client.close)
        except Exception as e:
            logger.warning(f"Error disconnecting Memcached client: {e}", extra={"error": str(e)})

    @property
    def client(self) -> PooledClient:
        if self._client is None:
            raise CacheConnectionError(
                self.ENGINE,
                self.name,
                host=self.config.host,
                port=self.config.port,
                reason="not connected",
            )
        return self._client

    # ------------ Primitives ------------

    async def _read(self, key: str) -> str | None:
        raw = await asyncio.to_thread(self.client.get, key)
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    async def _write(self, key: str, record: str, entry: CacheEntry) -> None:
        stored = await asyncio.to_thread(self.client.set, key, record.encode("utf-8"), entry.expiry, False)
        if not stored:
            raise RuntimeError(f"Memcached did not store key '{key}'")
        try:
            await self._track(key)
        except Exception:
            # clear() could not reach an unindexed value
            await asyncio.to_thread(self.client.delete, key, False)
            raise

    async def _renew(self, key: str, entry: CacheEntry) -> None:
        await asyncio.to_thread(self.client.touch, key, entry.expiry, False)

    async def _exists(self, key: str) -> bool:
        return await asyncio.to_thread(self.client.get, key) is not None

    async def _remove(self, key: str) -> bool:
        return bool(await asyncio.to_thread(self.client.delete, key, False))

    async def _clear_namespace(self) -> int:
        client = self.client
        raw = await asyncio.to_thread(client.get, self.index_key)
        keys = self._parse_index(raw)
        for start in range(0, len(keys), self.INDEX_BATCH_SIZE):
            await asyncio.to_thread(client.delete_many, keys[start : start + self.INDEX_BATCH_SIZE], False)
        await asyncio.to_thread(client.delete, self.index_key, False)
        await self._new_epoch()
        return len(keys)

    # ------------ Key index ------------

    async def _track(self, key: str) -> None:
        """
        Record key in the namespace index unless this instance already did so
        in the current epoch.

        Raises:
            MemcacheServerError: Index is full of live keys
            RuntimeError: Index could be neither appended to nor created
        """
        await self._sync_epoch()
        if key in self._indexed:
            return

        client = self.client
        line = f"{key}\n".encode()
        try:
            appended = await asyncio.to_thread(client.append, self.index_key, line, 0, False)
        except MemcacheServerError as e:
            logger.warning(
                f"Key index for cache '{self.name}' reached the item size limit, compacting: {e}",
                extra={"cache_name": self.name, "error": str(e)},
            )
            await self._compact_index()
            if key in self._indexed:
                return
            appended = await asyncio.to_thread(client.append, self.index_key, line, 0, False)

        if not appended:
            if await asyncio.to_thread(client.add, self.index_key, line, 0, False):
                if self._indexed:
                    # Index vanished under us; make every instance re-index its keys
                    logger.warning(
                        f"Key index for cache '{self.name}' was missing and has been recreated",
                        extra={"cache_name": self.name},
                    )
                    await self._new_epoch()
            elif not await asyncio.to_thread(client.append, self.index_key, line, 0, False):
                raise RuntimeError(f"Could not record key '{key}' in index '{self.index_key}'")

        self._indexed.add(key)

    async def _sync_epoch(self) -> None:
        """Forget locally indexed keys when the shared epoch has moved on."""
        client = self.client
        epoch = await asyncio.to_thread(client.get, self.epoch_key)
        if epoch is None:
            await asyncio.to_thread(client.add, self.epoch_key, uuid.uuid4().hex.encode(), 0, False)
            epoch = await asyncio.to_thread(client.get, self.epoch_key)
        if epoch != self._epoch:
            self._indexed.clear()
            self._epoch = epoch

    async def _new_epoch(self, indexed: list[str] | None = None) -> None:
        epoch = uuid.uuid4().hex.encode()
        await asyncio.to_thread(self.client.set, self.epoch_key, epoch, 0, False)
        self._epoch = epoch
        self._indexed = set(indexed or ())

    async def _compact_index(self) -> None:
        """Rewrite the index (CAS) with only the listed keys that still hold a value."""
        client = self.client
        raw, token = await asyncio.to_thread(client.gets, self.index_key)
        if raw is None:
            return

        listed = self._parse_index(raw)
        live: list[str] = []
        for start in range(0, len(listed), self.INDEX_BATCH_SIZE):
            batch = listed[start : start + self.INDEX_BATCH_SIZE]
            found = await asyncio.to_thread(client.get_many, batch)
            live.extend(k for k in batch if k in found)

        body = "".join(f"{k}\n" for k in live).encode()
        if not await asyncio.to_thread(client.cas, self.index_key, body, token, 0, False):
            logger.debug(f"Key index for cache '{self.name}' changed during compaction")
            return

        # Dropped keys may still be in other instances' local sets
        await self._new_epoch(live)
        logger.info(
            f"Compacted key index for cache '{self.name}': {len(listed)} -> {len(live)} keys",
            extra={"cache_name": self.name, "listed": len(listed), "live": len(live)},
        )

    def _parse_index(self, raw: bytes | str | None) -> list[str]:
        if raw is None:
            return []
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        return list(dict.fromkeys(line for line in text.split("\n") if line))

    def _extra_stats(self) -> dict[str, Any]:
        return {"host": self.config.host, "port": self.config.port}
