"""
Cacher — Redis Cache Backend

Asynchronous Redis cache engine with:
- JSON wire records stored under "<name>:<key>"
- Server-side TTL via SET ... EX (no TTL when expiry is 0)
- Window renewal via EXPIRE after the record decoded
- Namespace clear via SCAN MATCH + batched DEL

Requires: redis>=5.0.1 with asyncio support (Redis.aclose)

Example:
    cache = RedisCache("users", RedisCacheConfig(host="localhost"))
    await cache.set("u1", {"id": 1}, expiry=60)
    val = await cache.get("u1")
"""

from __future__ import annotations

import logging
import re
from typing import Any

from redis.asyncio import Redis

from ...config.schemas import RedisCacheConfig
from ...errors import CacheConnectionError
from ..entry import CacheEntry
from ..interface import KEY_SEPARATOR, BaseCache

logger = logging.getLogger(__name__)

_GLOB_SPECIALS = re.compile(r"([*?\[\]\\])")


def escape_pattern(text: str) -> str:
    """Escape Redis glob metacharacters so a name matches only itself."""
    return _GLOB_SPECIALS.sub(r"\\\1", text)


class RedisCache(BaseCache):
    """
    Redis cache engine.

    Notes:
    - One client (and its connection pool) per cache instance; caches that
      point at the same server are isolated by key prefix only.
    - clear() is not atomic: a key written by a concurrent caller while the
      SCAN is running may or may not survive.
    """

    ENGINE = "REDIS"
    CLEAR_BATCH_SIZE = 500

    def __init__(self, name: str, config: RedisCacheConfig) -> None:
        super().__init__(name, config)
        self._client: Redis | None = None

    # ------------ Connection ------------

    def _build_client(self) -> Redis:
        cfg: RedisCacheConfig = self.config
        kwargs: dict[str, Any] = {
            "host": cfg.host,
            "port": cfg.port,
            "db": cfg.db,
            "username": cfg.username,
            "password": cfg.password.get_secret_value() if cfg.password else None,
            "max_connections": cfg.max_connections,
            "socket_timeout": cfg.socket_timeout,
            "socket_connect_timeout": cfg.socket_timeout,
            "decode_responses": True,
        }
        if cfg.cert_path:
            kwargs.update(ssl=True, ssl_ca_certs=cfg.cert_path)
        return Redis(**kwargs)

    async def _open(self) -> None:
        client = self._build_client()
        try:
            await client.ping()
        except Exception:
            await self._discard(client)
            raise
        self._client = client
        logger.info(
            f"Connected Redis cache '{self.name}'",
            extra={"cache_name": self.name, "host": self.config.host, "port": self.config.port, "db": self.config.db},
        )

    async def _close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
            logger.info(f"Closed Redis cache backend '{self.name}'")

    async def _discard(self, client: Redis) -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error disconnecting Redis client: {e}", extra={"error": str(e)})

    @property
    def client(self) -> Redis:
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
        return await self.client.get(key)

    async def _write(self, key: str, record: str, entry: CacheEntry) -> None:
        await self.client.set(key, record, ex=entry.expiry if entry.expiry > 0 else None)

    async def _renew(self, key: str, entry: CacheEntry) -> None:
        await self.client.expire(key, entry.expiry)

    async def _exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def _remove(self, key: str) -> bool:
        return bool(await self.client.delete(key))

    async def _clear_namespace(self) -> int:
        client = self.client
        pattern = f"{escape_pattern(self.name)}{KEY_SEPARATOR}*"
        removed = 0
        batch: list[str] = []

        async for key in client.scan_iter(match=pattern, count=self.CLEAR_BATCH_SIZE):
            batch.append(key)
            if len(batch) >= self.CLEAR_BATCH_SIZE:
                removed += await client.delete(*batch)
                batch = []
        if batch:
            removed += await client.delete(*batch)

        return removed

    def _extra_stats(self) -> dict[str, Any]:
        return {"host": self.config.host, "port": self.config.port, "db": self.config.db}
