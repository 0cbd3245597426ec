"""Configuration sources, snapshot building and the configuration loader."""

from .loader import ConfigurationLoader, ReloadListener
from .snapshot import ConfigurationSnapshot, build_snapshot
from .sources import (
    JsonDirectoryConfigurationSource,
    MappingConfigurationSource,
    packaged_defaults_path,
    packaged_defaults_source,
)

__all__ = [
    "ConfigurationLoader",
    "ReloadListener",
    "ConfigurationSnapshot",
    "build_snapshot",
    "JsonDirectoryConfigurationSource",
    "MappingConfigurationSource",
    "packaged_defaults_path",
    "packaged_defaults_source",
]
