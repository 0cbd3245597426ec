"""
Redis decision cache for clustered deployments.

Decisions are stored as JSON with a server-side TTL; a per-principal set of
keys supports eager invalidation on role changes.
"""
import json
import logging
import time
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ....core.exceptions import CacheCorruptionError
from ...domain.protocols.cache_protocols import CacheEntry, DecisionCacheKey, escape_key_part
from ...domain.value_objects.decision import PermissionDecision


logger = logging.getLogger(__name__)


class RedisDecisionCache:
    """
    Redis implementation of ``DecisionCacheProtocol``.

    Connection failures are logged and treated as misses, so an unavailable
    Redis costs recomputation, never a wrong decision.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "facility_authz"):
        self._redis = redis_client
        self._key_prefix = key_prefix
        self._hits = 0
        self._misses = 0
        self._errors = 0

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "facility_authz") -> "RedisDecisionCache":
        return cls(redis.from_url(url), key_prefix=key_prefix)

    def _decision_key(self, key: DecisionCacheKey) -> str:
        return f"{self._key_prefix}:decision:{key.to_string()}"

    def _principal_key(self, principal_id: str) -> str:
        return f"{self._key_prefix}:principal:{escape_key_part(principal_id)}"

    async def get(self, key: DecisionCacheKey) -> Optional[CacheEntry]:
        full_key = self._decision_key(key)
        try:
            result = await self._redis.get(full_key)
        except RedisError as e:
            self._errors += 1
            logger.warning(f"Failed to get cached decision: {e}")
            return None

        if result is None:
            self._misses += 1
            return None

        try:
            raw = result.decode() if isinstance(result, bytes) else result
            payload = json.loads(raw)
            decision = PermissionDecision.from_cache_value(payload["decision"])
            expires_at = float(payload["expires_at"])
        except (ValueError, KeyError, TypeError) as e:
            raise CacheCorruptionError(
                f"Undecodable cached decision at {full_key}",
                details={"key": full_key, "error": str(e)}
            )

        self._hits += 1
        return CacheEntry(key=key, decision=decision, expires_at=expires_at)

    async def set(self, key: DecisionCacheKey, decision: PermissionDecision, ttl: int) -> None:
        full_key = self._decision_key(key)
        principal_key = self._principal_key(key.principal_id)
        try:
            data = json.dumps({
                "expires_at": time.time() + ttl,
                "decision": decision.to_cache_value(),
            })
            await self._redis.setex(full_key, ttl, data)
            await self._redis.sadd(principal_key, full_key)
            await self._redis.expire(principal_key, ttl)
        except RedisError as e:
            self._errors += 1
            logger.warning(f"Failed to cache decision: {e}")

    async def delete(self, key: DecisionCacheKey) -> bool:
        full_key = self._decision_key(key)
        try:
            removed = await self._redis.delete(full_key)
            await self._redis.srem(self._principal_key(key.principal_id), full_key)
            return bool(removed)
        except RedisError as e:
            self._errors += 1
            logger.warning(f"Failed to delete cached decision: {e}")
            return False

    async def invalidate_principal(self, principal_id: str) -> int:
        principal_key = self._principal_key(principal_id)
        try:
            members = await self._redis.smembers(principal_key)
            keys = [m.decode() if isinstance(m, bytes) else m for m in members]
            removed = await self._redis.delete(*keys) if keys else 0
            await self._redis.delete(principal_key)
        except RedisError as e:
            self._errors += 1
            logger.warning(f"Failed to invalidate cached decisions for {principal_id}: {e}")
            return 0

        if removed:
            logger.debug(f"Invalidated {removed} cached decisions for principal {principal_id}")
        return int(removed)

    async def clear(self) -> int:
        removed = 0
        try:
            keys = []
            async for key in self._redis.scan_iter(match=f"{self._key_prefix}:*"):
                keys.append(key)
            if keys:
                removed = await self._redis.delete(*keys)
        except RedisError as e:
            self._errors += 1
            logger.warning(f"Failed to clear decision cache: {e}")
        return int(removed)

    async def stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "backend": "redis",
            "key_prefix": self._key_prefix,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            "errors": self._errors,
        }

    async def close(self) -> None:
        await self._redis.aclose()
