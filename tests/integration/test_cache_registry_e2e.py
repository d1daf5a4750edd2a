"""
Cacher — Registry End-to-End Tests

Drives every engine through the registry and the public cache contract.
Network engines run against the in-process client stand-ins from conftest.
"""

import asyncio
from typing import Any

import pytest

from cacher.cache import CacheRegistry
from cacher.errors import ConfigurationError, DuplicateError, UnsupportedError

ENGINE_OPTIONS: dict[str, dict[str, Any]] = {
    "MEMORY": {"engine": "MEMORY"},
    "REDIS": {"engine": "REDIS", "host": "localhost"},
    "MEMCACHED": {"engine": "MEMCACHED", "host": "localhost"},
}


@pytest.fixture(params=list(ENGINE_OPTIONS))
def engine(request: pytest.FixtureRequest) -> str:
    """Engine under test; patches in the matching client stand-in."""
    if request.param == "REDIS":
        request.getfixturevalue("fake_redis_server")
    elif request.param == "MEMCACHED":
        request.getfixturevalue("fake_memcached_server")
    return request.param


def declare(registry: CacheRegistry, name: str, engine: str, **options: Any) -> None:
    registry.register(name, {**ENGINE_OPTIONS[engine], **options})


async def test_sessions_scenario(registry: CacheRegistry) -> None:
    """A memory cache declared with a default expiry, used without per-call options."""
    registry.register("sessions", {"engine": "MEMORY", "default_expiry": 300})
    sessions = registry.get("sessions")

    await sessions.set("u1", {"id": 1})
    assert await sessions.get("u1") == {"id": 1}
    assert await sessions.has("missing") is False

    await sessions.delete("u1")
    assert await sessions.has("u1") is False


class TestContractAcrossEngines:
    """Properties every engine must satisfy."""

    async def test_round_trip(self, registry: CacheRegistry, engine: str, sample_cache_data: dict[str, Any]) -> None:
        declare(registry, "values", engine)
        cache = registry.get("values")

        for key, value in sample_cache_data.items():
            await cache.set(key, value)
        for key, value in sample_cache_data.items():
            assert await cache.get(key, default="<missing>") == value

    async def test_namespace_isolation(self, registry: CacheRegistry, engine: str) -> None:
        declare(registry, "a", engine)
        declare(registry, "b", engine)
        a = registry.get("a")
        b = registry.get("b")

        await a.set("x", 1)

        assert await a.has("x") is True
        assert await b.has("x") is False

    async def test_idempotent_delete(self, registry: CacheRegistry, engine: str) -> None:
        declare(registry, "del", engine)
        cache = registry.get("del")

        await cache.delete("never-set")
        await cache.set("k", "v")
        await cache.delete("k")
        await cache.delete("k")
        assert await cache.has("k") is False

    async def test_clear_scoping(self, registry: CacheRegistry, engine: str) -> None:
        declare(registry, "users", engine)
        declare(registry, "users_archive", engine)
        users = registry.get("users")
        archive = registry.get("users_archive")

        for i in range(3):
            await users.set(f"k{i}", i)
        await archive.set("k0", "kept")

        await users.clear()

        for i in range(3):
            assert await users.has(f"k{i}") is False
        assert await archive.get("k0") == "kept"

    async def test_expiry(self, registry: CacheRegistry, engine: str) -> None:
        declare(registry, "ttl", engine)
        cache = registry.get("ttl")

        await cache.set("k", "v", expiry=1)
        assert await cache.get("k") == "v"

        await asyncio.sleep(1.1)
        assert await cache.get("k") is None

    @pytest.mark.parametrize("expiry", [-1, 216001])
    async def test_expiry_out_of_bounds(self, registry: CacheRegistry, engine: str, expiry: int) -> None:
        declare(registry, "bounds", engine)
        cache = registry.get("bounds")

        with pytest.raises(ConfigurationError):
            await cache.set("k", "v", expiry=expiry)

    @pytest.mark.parametrize("expiry", [0, 216000])
    async def test_expiry_bounds_accepted(self, registry: CacheRegistry, engine: str, expiry: int) -> None:
        declare(registry, "bounds", engine)
        cache = registry.get("bounds")

        await cache.set("k", "v", expiry=expiry)
        assert await cache.get("k") == "v"


async def test_window_renewal(registry: CacheRegistry) -> None:
    """Reads at 1.5s and 3s keep a 2s window entry alive; 2s without a read expires it."""
    registry.register("window", {"engine": "MEMORY"})
    cache = registry.get("window")

    await cache.set("k", "v", expiry=2, window=True)

    await asyncio.sleep(1.5)
    assert await cache.get("k") == "v"
    await asyncio.sleep(1.5)
    assert await cache.get("k") == "v"

    await asyncio.sleep(2.1)
    assert await cache.get("k") is None


async def test_duplicate_registration(registry: CacheRegistry) -> None:
    registry.register("n", {"engine": "MEMORY", "default_expiry": 60})
    registry.register("n", {"engine": "MEMORY", "default_expiry": 60})

    with pytest.raises(DuplicateError):
        registry.register("n", {"engine": "REDIS", "host": "localhost"})


async def test_unknown_engine(registry: CacheRegistry) -> None:
    with pytest.raises(UnsupportedError):
        registry.register("bogus", {"engine": "BOGUS"})
