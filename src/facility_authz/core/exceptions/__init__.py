"""Exceptions module for facility-authz.

This module provides the complete exception hierarchy for facility-authz.
"""

from .base import FacilityAuthzError

from .domain import (
    # Configuration Errors
    ConfigurationError,
    ConfigurationSourceError,

    # Context Errors
    InvalidContextError,
    UnknownRoleError,
    UnknownResourceError,

    # Authorization Errors
    AuthorizationError,
    PermissionDeniedError,
    AccessDeniedError,
    FacilityMismatchError,
    RoleAssignmentError,

    # Cache Errors
    CacheError,
    CacheCorruptionError,
)

from .http_mapping import HTTP_STATUS_MAP, create_error_response, get_http_status_code

__all__ = [
    "FacilityAuthzError",
    "get_http_status_code",
    "create_error_response",
    "ConfigurationError",
    "ConfigurationSourceError",
    "InvalidContextError",
    "UnknownRoleError",
    "UnknownResourceError",
    "AuthorizationError",
    "PermissionDeniedError",
    "AccessDeniedError",
    "FacilityMismatchError",
    "RoleAssignmentError",
    "CacheError",
    "CacheCorruptionError",
    "HTTP_STATUS_MAP",
]
