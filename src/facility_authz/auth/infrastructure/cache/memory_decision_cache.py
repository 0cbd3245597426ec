"""
In-process decision cache with TTL expiry and LRU eviction.
"""
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Set

from ....config.constants import CacheTTL
from ...domain.protocols.cache_protocols import CacheEntry, DecisionCacheKey
from ...domain.value_objects.decision import PermissionDecision


logger = logging.getLogger(__name__)


class MemoryDecisionCache:
    """
    Thread-safe in-memory implementation of ``DecisionCacheProtocol``.

    Entries are never served past their expiry; when full, the least recently
    used entry is evicted.

    Args:
        max_entries: Capacity before LRU eviction
        default_ttl: TTL used when ``set`` gets a non-positive ttl
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        max_entries: int = 10000,
        default_ttl: int = CacheTTL.DECISIONS_DEFAULT,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._entries: "OrderedDict[DecisionCacheKey, CacheEntry]" = OrderedDict()
        self._by_principal: Dict[str, Set[DecisionCacheKey]] = {}
        self._lock = threading.RLock()
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def _remove(self, key: DecisionCacheKey) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        keys = self._by_principal.get(key.principal_id)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._by_principal[key.principal_id]
        return True

    async def get(self, key: DecisionCacheKey) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= self._clock():
                self._remove(key)
                self._expirations += 1
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry

    async def set(self, key: DecisionCacheKey, decision: PermissionDecision, ttl: int) -> None:
        ttl = ttl if ttl and ttl > 0 else self._default_ttl
        with self._lock:
            self._remove(key)
            self._entries[key] = CacheEntry(key=key, decision=decision, expires_at=self._clock() + ttl)
            self._by_principal.setdefault(key.principal_id, set()).add(key)
            while len(self._entries) > self._max_entries:
                oldest = next(iter(self._entries))
                self._remove(oldest)
                self._evictions += 1

    async def delete(self, key: DecisionCacheKey) -> bool:
        with self._lock:
            return self._remove(key)

    async def invalidate_principal(self, principal_id: str) -> int:
        with self._lock:
            keys = list(self._by_principal.get(principal_id, ()))
            for key in keys:
                self._remove(key)
        if keys:
            logger.debug(f"Invalidated {len(keys)} cached decisions for principal {principal_id}")
        return len(keys)

    async def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._by_principal.clear()
        return count

    async def purge_expired(self) -> int:
        """Drop every expired entry. Returns count of removed entries."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                self._remove(key)
            self._expirations += len(expired)
        return len(expired)

    async def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "backend": "memory",
                "size": len(self._entries),
                "max_entries": self._max_entries,
                "principals": len(self._by_principal),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }

    async def close(self) -> None:
        await self.clear()

    def __len__(self) -> int:
        return len(self._entries)
