"""
Protocol interfaces of the authorization domain.

Contracts for caching and for the external collaborators.
"""

from .cache_protocols import DecisionCacheKey, CacheEntry, DecisionCacheProtocol
from .service_protocols import (
    IdentityProviderProtocol,
    ConfigurationSourceProtocol,
    DataSourceProtocol,
    AuditSinkProtocol,
)

__all__ = [
    # Cache protocols
    "DecisionCacheKey",
    "CacheEntry",
    "DecisionCacheProtocol",

    # Collaborator protocols
    "IdentityProviderProtocol",
    "ConfigurationSourceProtocol",
    "DataSourceProtocol",
    "AuditSinkProtocol",
]
