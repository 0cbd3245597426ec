"""
Infrastructure adapters: configuration loading, decision caches and audit sinks.
"""

from .audit import LoggingAuditSink
from .cache import MemoryDecisionCache, RedisDecisionCache
from .configuration import (
    ConfigurationLoader,
    ConfigurationSnapshot,
    JsonDirectoryConfigurationSource,
    MappingConfigurationSource,
    packaged_defaults_source,
)

__all__ = [
    "LoggingAuditSink",
    "MemoryDecisionCache",
    "RedisDecisionCache",
    "ConfigurationLoader",
    "ConfigurationSnapshot",
    "JsonDirectoryConfigurationSource",
    "MappingConfigurationSource",
    "packaged_defaults_source",
]
