"""
Cacher — Memory Cache Backend

In-process cache engine. Entries live in a MemoryStore; expiry is driven by
one event-loop timer per key.

A single MemoryStore may be shared by several MemoryCache instances (the
registry does this), in which case caches are isolated purely by their key
prefix, the same way network engines share one server.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ...config.schemas import MemoryCacheConfig
from ..entry import CacheEntry
from ..interface import KEY_SEPARATOR, BaseCache

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    """Stored record plus its pending expiry timer."""

    record: str
    deadline: float | None = None
    handle: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None


class MemoryStore:
    """
    Key -> (record, timer) map with cancel-before-reschedule expiry.

    Every write or renewal cancels the key's existing timer before scheduling
    a new one, so a stale timer can never delete a newer entry.
    """

    def __init__(self) -> None:
        self._slots: dict[str, _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, key: str) -> bool:
        return self._live_slot(key) is not None

    def read(self, key: str) -> str | None:
        slot = self._live_slot(key)
        return slot.record if slot is not None else None

    def write(self, key: str, record: str, expiry: int) -> None:
        previous = self._slots.get(key)
        if previous is not None:
            previous.cancel()

        slot = _Slot(record=record)
        self._slots[key] = slot
        if expiry > 0:
            self._schedule(key, slot, expiry)

    def renew(self, key: str, expiry: int) -> bool:
        slot = self._live_slot(key)
        if slot is None or expiry <= 0:
            return False
        slot.cancel()
        self._schedule(key, slot, expiry)
        return True

    def remove(self, key: str) -> bool:
        slot = self._slots.pop(key, None)
        if slot is None:
            return False
        slot.cancel()
        return True

    def remove_prefix(self, prefix: str) -> int:
        """Cancel the timers of every key under ``prefix``, then drop those keys."""
        keys = [k for k in self._slots if k.startswith(prefix)]
        for key in keys:
            self._slots[key].cancel()
        for key in keys:
            del self._slots[key]
        return len(keys)

    def count_prefix(self, prefix: str) -> int:
        return sum(1 for k in self._slots if k.startswith(prefix))

    def _schedule(self, key: str, slot: _Slot, expiry: int) -> None:
        loop = asyncio.get_running_loop()
        slot.deadline = loop.time() + expiry
        slot.handle = loop.call_later(expiry, self._expire, key, slot)

    def _expire(self, key: str, slot: _Slot) -> None:
        # Only drop the slot this timer was scheduled for.
        if self._slots.get(key) is slot:
            del self._slots[key]
            logger.debug(f"Expired key from memory store: {key}")

    def _live_slot(self, key: str) -> _Slot | None:
        """Slot for key, evicting it if its deadline passed before the timer ran."""
        slot = self._slots.get(key)
        if slot is None:
            return None
        if slot.deadline is not None and asyncio.get_running_loop().time() >= slot.deadline:
            self.remove(key)
            return None
        return slot


class MemoryCache(BaseCache):
    """
    In-memory cache engine.

    Features:
    - Per-key TTL via event-loop timers
    - Sliding (window) expiry renewed on read
    - Namespace-scoped clear on a shared store
    """

    ENGINE = "MEMORY"

    def __init__(self, name: str, config: MemoryCacheConfig, store: MemoryStore | None = None):
        """
        Args:
            name: Cache instance name
            config: Memory engine configuration
            store: Shared store (a private one is created when omitted)
        """
        super().__init__(name, config)
        self._store = store if store is not None else MemoryStore()

    @property
    def store(self) -> MemoryStore:
        return self._store

    async def _read(self, key: str) -> str | None:
        return self._store.read(key)

    async def _write(self, key: str, record: str, entry: CacheEntry) -> None:
        self._store.write(key, record, entry.expiry)

    async def _renew(self, key: str, entry: CacheEntry) -> None:
        self._store.renew(key, entry.expiry)

    async def _exists(self, key: str) -> bool:
        return key in self._store

    async def _remove(self, key: str) -> bool:
        return self._store.remove(key)

    async def _clear_namespace(self) -> int:
        return self._store.remove_prefix(f"{self.name}{KEY_SEPARATOR}")

    def _extra_stats(self) -> dict[str, Any]:
        return {"size": self._store.count_prefix(f"{self.name}{KEY_SEPARATOR}")}
