"""Decision cache implementations."""

from .memory_decision_cache import MemoryDecisionCache
from .redis_decision_cache import RedisDecisionCache

__all__ = ["MemoryDecisionCache", "RedisDecisionCache"]
