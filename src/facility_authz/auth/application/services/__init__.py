"""
Authorization application services.

Role hierarchy, facility scoping, condition predicates, the permission
validator and the services built on top of it.
"""

from .role_hierarchy import RoleHierarchy
from .facility_scope import FacilityScopeResolver
from .conditions import ConditionRegistry, ConditionPredicate, BUILTIN_CONDITIONS
from .permission_validator import PermissionValidator
from .document_security import DocumentSecurityGenerator, SecuredDocument
from .secure_query_builder import SecureQueryBuilder, coerce_filters
from .role_service import RoleAssignmentService, RoleAssignmentResult

__all__ = [
    "RoleHierarchy",
    "FacilityScopeResolver",
    "ConditionRegistry",
    "ConditionPredicate",
    "BUILTIN_CONDITIONS",
    "PermissionValidator",
    "DocumentSecurityGenerator",
    "SecuredDocument",
    "SecureQueryBuilder",
    "coerce_filters",
    "RoleAssignmentService",
    "RoleAssignmentResult",
]
