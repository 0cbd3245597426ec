"""
Authorization domain entities.

Immutable entities built by the configuration loader.
"""

from .role import Role
from .rule import PermissionGrant, PermissionRule, RuleTable
from .collection import FieldRule, CollectionSecurityConfig
from .team import TeamSettings
from .acl import AclEntry, Grantee

__all__ = [
    # Role entities
    "Role",

    # Rule entities
    "PermissionGrant",
    "PermissionRule",
    "RuleTable",

    # Resource security entities
    "FieldRule",
    "CollectionSecurityConfig",
    "TeamSettings",

    # ACL entities
    "AclEntry",
    "Grantee",
]
