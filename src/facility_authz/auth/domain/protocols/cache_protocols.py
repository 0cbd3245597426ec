"""
Cache protocol interfaces for the decision cache.

The validator depends on this contract only, so the in-process cache can be
swapped for a distributed one in clustered deployments.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable
from urllib.parse import quote

from ..value_objects.decision import PermissionDecision


def escape_key_part(value: Optional[str]) -> str:
    """Percent-encode one key segment; empty values become ``-``."""
    if not value:
        return "-"
    escaped = quote(value, safe="")
    return "%2D" if escaped == "-" else escaped


@dataclass(frozen=True)
class DecisionCacheKey:
    """Key of a cached decision."""
    principal_id: str
    resource: str
    operation: str
    facility_id: Optional[str] = None
    context_digest: str = ""

    def to_string(self) -> str:
        return ":".join(escape_key_part(part) for part in (
            self.principal_id,
            self.resource,
            self.operation,
            self.facility_id,
            self.context_digest,
        ))


@dataclass(frozen=True)
class CacheEntry:
    """Cached decision with its absolute expiry timestamp."""
    key: DecisionCacheKey
    decision: PermissionDecision
    expires_at: float

    @property
    def config_version(self) -> int:
        return self.decision.config_version


@runtime_checkable
class DecisionCacheProtocol(Protocol):
    """Protocol for TTL-evicting permission decision caches."""

    async def get(self, key: DecisionCacheKey) -> Optional[CacheEntry]:
        """Get a live entry, ``None`` when missing or expired.

        Raises ``CacheCorruptionError`` when a stored value cannot be decoded.
        """
        ...

    async def set(self, key: DecisionCacheKey, decision: PermissionDecision, ttl: int) -> None:
        """Store a decision for ``ttl`` seconds."""
        ...

    async def delete(self, key: DecisionCacheKey) -> bool:
        """Remove one entry."""
        ...

    async def invalidate_principal(self, principal_id: str) -> int:
        """Remove every entry of a principal. Returns count of removed entries."""
        ...

    async def clear(self) -> int:
        """Remove every entry. Returns count of removed entries."""
        ...

    async def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        ...

    async def close(self) -> None:
        """Release resources held by the cache."""
        ...
