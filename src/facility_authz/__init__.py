"""
facility-authz - facility-scoped RBAC authorization engine.

Hierarchical roles combined with facility (tenant) isolation, document ACL
generation, secure query construction and a cached, hot-reloadable
configuration layer.

Logging is not configured on import; call ``setup_logging()`` at startup.
"""

from .__version__ import __version__

from .config import (
    RoleName,
    Operation,
    DecisionScope,
    DenialCode,
    AuthzSettings,
    get_settings,
    setup_logging,
)
from .core.exceptions import (
    FacilityAuthzError,
    ConfigurationError,
    InvalidContextError,
    UnknownRoleError,
    UnknownResourceError,
    AuthorizationError,
    PermissionDeniedError,
    AccessDeniedError,
    FacilityMismatchError,
    RoleAssignmentError,
    CacheCorruptionError,
)
from .auth.domain.entities import AclEntry, CollectionSecurityConfig, Role
from .auth.domain.value_objects import (
    Principal,
    ResourceContext,
    PermissionDecision,
    AuditEvent,
    QueryFilter,
    SecureQuery,
    QueryPage,
)
from .auth.application.services import (
    RoleHierarchy,
    FacilityScopeResolver,
    ConditionRegistry,
    PermissionValidator,
    DocumentSecurityGenerator,
    SecuredDocument,
    SecureQueryBuilder,
    RoleAssignmentService,
    RoleAssignmentResult,
)
from .auth.infrastructure import (
    ConfigurationLoader,
    ConfigurationSnapshot,
    JsonDirectoryConfigurationSource,
    MappingConfigurationSource,
    packaged_defaults_source,
    MemoryDecisionCache,
    RedisDecisionCache,
    LoggingAuditSink,
)
from .context import AuthorizationContext

__all__ = [
    "__version__",
    # Config
    "RoleName",
    "Operation",
    "DecisionScope",
    "DenialCode",
    "AuthzSettings",
    "get_settings",
    "setup_logging",
    # Exceptions
    "FacilityAuthzError",
    "ConfigurationError",
    "InvalidContextError",
    "UnknownRoleError",
    "UnknownResourceError",
    "AuthorizationError",
    "PermissionDeniedError",
    "AccessDeniedError",
    "FacilityMismatchError",
    "RoleAssignmentError",
    "CacheCorruptionError",
    # Domain
    "AclEntry",
    "CollectionSecurityConfig",
    "Role",
    "Principal",
    "ResourceContext",
    "PermissionDecision",
    "AuditEvent",
    "QueryFilter",
    "SecureQuery",
    "QueryPage",
    # Services
    "RoleHierarchy",
    "FacilityScopeResolver",
    "ConditionRegistry",
    "PermissionValidator",
    "DocumentSecurityGenerator",
    "SecuredDocument",
    "SecureQueryBuilder",
    "RoleAssignmentService",
    "RoleAssignmentResult",
    # Infrastructure
    "ConfigurationLoader",
    "ConfigurationSnapshot",
    "JsonDirectoryConfigurationSource",
    "MappingConfigurationSource",
    "packaged_defaults_source",
    "MemoryDecisionCache",
    "RedisDecisionCache",
    "LoggingAuditSink",
    # Context
    "AuthorizationContext",
]
