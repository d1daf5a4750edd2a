"""
Cacher — Test Configuration and Shared Fixtures

Provides pytest configuration, in-process stand-ins for the Redis and
Memcached clients, and shared fixtures for unit and integration tests.
"""

import fnmatch
import os
import re
import time
from collections.abc import AsyncIterator
from typing import Any

import pytest
from pymemcache.client.base import check_key_helper
from pymemcache.exceptions import MemcacheServerError

from cacher.cache import CacheRegistry

# Set test environment
os.environ["LOG_LEVEL"] = "DEBUG"


# ------------ Redis stand-in ------------


class FakeRedisServer:
    """Shared keyspace for FakeRedis clients; TTLs tracked with a monotonic clock."""

    def __init__(self) -> None:
        self.data: dict[str, tuple[str, float | None]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.clients: list["FakeRedis"] = []
        self.fail_connect = False

    def live(self, key: str) -> str | None:
        item = self.data.get(key)
        if item is None:
            return None
        value, deadline = item
        if deadline is not None and time.monotonic() >= deadline:
            del self.data[key]
            return None
        return value

    def ttl(self, key: str) -> float | None:
        item = self.data.get(key)
        if item is None or item[1] is None:
            return None
        return item[1] - time.monotonic()


class FakeRedis:
    """Subset of redis.asyncio.Redis used by RedisCache."""

    def __init__(self, server: FakeRedisServer, **kwargs: Any) -> None:
        self.server = server
        self.kwargs = kwargs
        self.closed = False
        server.clients.append(self)

    async def ping(self) -> bool:
        self.server.calls.append(("ping", ()))
        if self.server.fail_connect:
            raise ConnectionRefusedError("Connection refused")
        return True

    async def get(self, key: str) -> str | None:
        self.server.calls.append(("get", (key,)))
        return self.server.live(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.server.calls.append(("set", (key, value, ex)))
        self.server.data[key] = (value, time.monotonic() + ex if ex else None)
        return True

    async def expire(self, key: str, seconds: int) -> bool:
        self.server.calls.append(("expire", (key, seconds)))
        value = self.server.live(key)
        if value is None:
            return False
        self.server.data[key] = (value, time.monotonic() + seconds)
        return True

    async def exists(self, *keys: str) -> int:
        self.server.calls.append(("exists", keys))
        return sum(1 for k in keys if self.server.live(k) is not None)

    async def delete(self, *keys: str) -> int:
        self.server.calls.append(("delete", keys))
        removed = 0
        for k in keys:
            if self.server.live(k) is not None:
                del self.server.data[k]
                removed += 1
        return removed

    async def scan_iter(self, match: str | None = None, count: int | None = None) -> AsyncIterator[str]:
        self.server.calls.append(("scan_iter", (match, count)))
        # Redis escapes with backslash; fnmatch needs single-character sets
        pattern = re.sub(r"\\(.)", r"[\1]", match) if match is not None else None
        for key in list(self.server.data):
            if self.server.live(key) is not None and (pattern is None or fnmatch.fnmatchcase(key, pattern)):
                yield key

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis_server(monkeypatch: pytest.MonkeyPatch) -> FakeRedisServer:
    """Patch RedisCache to build FakeRedis clients that share one keyspace."""
    server = FakeRedisServer()
    monkeypatch.setattr("cacher.cache.backends.redis.Redis", lambda **kwargs: FakeRedis(server, **kwargs))
    return server


# ------------ Memcached stand-in ------------


class FakeMemcachedServer:
    """Shared keyspace for FakeMemcached clients, with Memcached's item size limit."""

    def __init__(self) -> None:
        self.data: dict[str, tuple[bytes, float | None]] = {}
        self.versions: dict[str, int] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.clients: list["FakeMemcached"] = []
        self.fail_connect = False
        self.max_item_size = 1024 * 1024

    def live(self, key: str) -> bytes | None:
        item = self.data.get(key)
        if item is None:
            return None
        value, deadline = item
        if deadline is not None and time.monotonic() >= deadline:
            del self.data[key]
            return None
        return value

    def store(self, key: str, value: bytes, expire: int | float | None) -> None:
        if len(value) > self.max_item_size:
            raise MemcacheServerError(b"object too large for cache")
        self.data[key] = (value, time.monotonic() + expire if expire else None)
        self.versions[key] = self.versions.get(key, 0) + 1


class FakeMemcached:
    """Subset of pymemcache's PooledClient used by MemcachedCache."""

    def __init__(self, server: FakeMemcachedServer, address: tuple[str, int], **kwargs: Any) -> None:
        self.server = server
        self.address = address
        self.kwargs = kwargs
        self.closed = False
        server.clients.append(self)

    def _check(self, key: str) -> None:
        check_key_helper(key, self.kwargs.get("allow_unicode_keys", False))

    def version(self) -> bytes:
        self.server.calls.append(("version", ()))
        if self.server.fail_connect:
            raise ConnectionRefusedError("Connection refused")
        return b"1.6.21"

    def get(self, key: str, default: Any = None) -> bytes | None:
        self._check(key)
        self.server.calls.append(("get", (key,)))
        value = self.server.live(key)
        return default if value is None else value

    def get_many(self, keys: list[str]) -> dict[str, bytes]:
        for key in keys:
            self._check(key)
        self.server.calls.append(("get_many", (tuple(keys),)))
        found = {key: self.server.live(key) for key in keys}
        return {key: value for key, value in found.items() if value is not None}

    def gets(self, key: str) -> tuple[bytes | None, bytes | None]:
        self._check(key)
        self.server.calls.append(("gets", (key,)))
        value = self.server.live(key)
        if value is None:
            return None, None
        return value, str(self.server.versions[key]).encode()

    def set(self, key: str, value: bytes, expire: int = 0, noreply: bool | None = None) -> bool:
        self._check(key)
        self.server.calls.append(("set", (key, value, expire)))
        self.server.store(key, value, expire)
        return True

    def add(self, key: str, value: bytes, expire: int = 0, noreply: bool | None = None) -> bool:
        self._check(key)
        self.server.calls.append(("add", (key, value, expire)))
        if self.server.live(key) is not None:
            return False
        self.server.store(key, value, expire)
        return True

    def append(self, key: str, value: bytes, expire: int = 0, noreply: bool | None = None) -> bool:
        self._check(key)
        self.server.calls.append(("append", (key, value)))
        current = self.server.live(key)
        if current is None:
            return False
        deadline = self.server.data[key][1]
        remaining = None if deadline is None else deadline - time.monotonic()
        self.server.store(key, current + value, remaining)
        return True

    def cas(self, key: str, value: bytes, cas: bytes, expire: int = 0, noreply: bool = False) -> bool | None:
        self._check(key)
        self.server.calls.append(("cas", (key, value, cas)))
        if self.server.live(key) is None:
            return None
        if str(self.server.versions[key]).encode() != cas:
            return False
        self.server.store(key, value, expire)
        return True

    def touch(self, key: str, expire: int = 0, noreply: bool | None = None) -> bool:
        self._check(key)
        self.server.calls.append(("touch", (key, expire)))
        value = self.server.live(key)
        if value is None:
            return False
        self.server.store(key, value, expire)
        return True

    def delete(self, key: str, noreply: bool | None = None) -> bool:
        self._check(key)
        self.server.calls.append(("delete", (key,)))
        if self.server.live(key) is None:
            return False
        del self.server.data[key]
        return True

    def delete_many(self, keys: list[str], noreply: bool | None = None) -> bool:
        for key in keys:
            self._check(key)
        self.server.calls.append(("delete_many", (tuple(keys),)))
        for key in keys:
            self.server.data.pop(key, None)
        return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_memcached_server(monkeypatch: pytest.MonkeyPatch) -> FakeMemcachedServer:
    """Patch MemcachedCache to build FakeMemcached clients that share one keyspace."""
    server = FakeMemcachedServer()
    monkeypatch.setattr(
        "cacher.cache.backends.memcached.PooledClient",
        lambda address, **kwargs: FakeMemcached(server, address, **kwargs),
    )
    return server


# ------------ Shared fixtures ------------


@pytest.fixture
async def registry() -> AsyncIterator[CacheRegistry]:
    """Fresh registry, closed after each test."""
    reg = CacheRegistry()
    yield reg
    await reg.close_all()


@pytest.fixture
def sample_cache_data() -> dict[str, Any]:
    """Sample data for cache testing."""
    return {
        "simple_string": "hello",
        "simple_int": 42,
        "simple_float": 3.14,
        "simple_bool": True,
        "simple_none": None,
        "complex_dict": {
            "nested": {
                "key": "value",
                "number": 123,
                "list": [1, 2, 3],
            }
        },
        "complex_list": [
            {"id": 1, "name": "Alice"},
            {"id": 2, "name": "Bob"},
        ],
    }
