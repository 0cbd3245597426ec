"""Configuration module for facility-authz.

Constants, runtime settings and logging configuration.
"""

from .constants import (
    RoleName,
    Operation,
    ResourceKind,
    DataAccess,
    DecisionScope,
    DenialCode,
    AclOperation,
    DecisionReasons,
    ConfigNames,
    CacheTTL,
    TeamDefaults,
    QueryDefaults,
)
from .settings import AuthzSettings, get_settings
from .logging_config import setup_logging, get_logger, AUDIT_LOGGER_NAME

__all__ = [
    "RoleName",
    "Operation",
    "ResourceKind",
    "DataAccess",
    "DecisionScope",
    "DenialCode",
    "AclOperation",
    "DecisionReasons",
    "ConfigNames",
    "CacheTTL",
    "TeamDefaults",
    "QueryDefaults",
    "AuthzSettings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "AUDIT_LOGGER_NAME",
]
