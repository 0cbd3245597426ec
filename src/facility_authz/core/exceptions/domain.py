"""Domain-specific exceptions for facility-authz.

Only structural failures are raised to callers of ``check_permission``; the
remaining classes name denial categories and are raised by the helpers that
build principals, documents and queries.
"""

from .base import FacilityAuthzError


# Configuration Errors
class ConfigurationError(FacilityAuthzError):
    """Raised when configuration is missing, unavailable or invalid."""
    pass


class ConfigurationSourceError(ConfigurationError):
    """Raised when the configuration source cannot be read."""
    pass


# Context Errors
class InvalidContextError(FacilityAuthzError):
    """Raised when a principal or resource context is malformed."""
    pass


class UnknownRoleError(InvalidContextError):
    """Raised when a role name is not part of the role enumeration."""
    pass


class UnknownResourceError(FacilityAuthzError):
    """Raised when a resource has no security configuration."""
    pass


# Authorization Errors
class AuthorizationError(FacilityAuthzError):
    """Base class for authorization failures."""
    pass


class PermissionDeniedError(AuthorizationError):
    """Raised when a principal lacks a permission required by an operation."""
    pass


class AccessDeniedError(PermissionDeniedError):
    """Raised when a helper (ACL generation, secure queries) is denied access."""
    pass


class FacilityMismatchError(AuthorizationError):
    """Raised when a request targets a facility outside the principal's set."""
    pass


class RoleAssignmentError(AuthorizationError):
    """Raised when a role assignment is rejected."""
    pass


# Cache Errors
class CacheError(FacilityAuthzError):
    """Cache operation error."""
    pass


class CacheCorruptionError(CacheError):
    """Raised when a cached decision cannot be trusted."""
    pass
