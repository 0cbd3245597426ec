"""
Authorization value objects.

Immutable types describing principals, contexts, decisions and queries.
"""

from .principal import Principal
from .resource import split_resource, normalize_resource, resource_name
from .resource_context import ResourceContext
from .decision import PermissionDecision
from .audit import AuditEvent
from .query import QueryOperator, QueryFilter, SecureQuery, QueryPage

__all__ = [
    "Principal",
    "split_resource",
    "normalize_resource",
    "resource_name",
    "ResourceContext",
    "PermissionDecision",
    "AuditEvent",
    "QueryOperator",
    "QueryFilter",
    "SecureQuery",
    "QueryPage",
]
