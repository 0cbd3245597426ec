"""Constants and enums for facility-authz.

This module defines the closed enumerations (roles, operations, scopes,
denial codes) and the configuration values shared by every component.
"""

from enum import Enum
from typing import Final, FrozenSet


class RoleName(str, Enum):
    """Closed set of roles known to the engine."""

    ADMINISTRATOR = "administrator"
    SUPERVISOR = "supervisor"
    DOCTOR = "doctor"
    USER = "user"

    @classmethod
    def parse(cls, value: str) -> "RoleName":
        """Parse a role name case-insensitively."""
        return cls(str(value).strip().lower())


class Operation(str, Enum):
    """Operations a principal can request on a resource."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"

    @classmethod
    def parse(cls, value: str) -> "Operation":
        """Parse an operation name case-insensitively."""
        return cls(str(value).strip().lower())


class ResourceKind(str, Enum):
    """Resource families addressed as ``<kind>.<name>``."""

    COLLECTIONS = "collections"
    STORAGE = "storage"
    FUNCTIONS = "functions"


# Explicit operation sets a "*" expands to, per resource kind
KIND_OPERATIONS: Final[dict] = {
    ResourceKind.COLLECTIONS: frozenset(
        {Operation.CREATE, Operation.READ, Operation.UPDATE, Operation.DELETE}
    ),
    ResourceKind.STORAGE: frozenset(
        {Operation.CREATE, Operation.READ, Operation.UPDATE, Operation.DELETE}
    ),
    ResourceKind.FUNCTIONS: frozenset({Operation.EXECUTE}),
}

WILDCARD: Final[str] = "*"


class DataAccess(str, Enum):
    """Data visibility of a role."""

    ALL_FACILITIES = "all_facilities"
    FACILITY_ONLY = "facility_only"


class DecisionScope(str, Enum):
    """Scope attached to a permission decision."""

    ALL_FACILITIES = "all_facilities"
    FACILITY_ONLY = "facility_only"
    GLOBAL = "global"
    NONE = "none"


class DenialCode(str, Enum):
    """Machine-readable outcome of a permission decision."""

    GRANTED = "granted"
    NO_MATCHING_RULE = "no_matching_rule"
    UNKNOWN_RESOURCE = "unknown_resource"
    UNKNOWN_ROLE = "unknown_role"
    FACILITY_MISMATCH = "facility_mismatch"
    CONDITION_FAILED = "condition_failed"
    INVALID_CONTEXT = "invalid_context"
    CONFIGURATION_ERROR = "configuration_error"


class AclOperation(str, Enum):
    """Operations recorded on a document ACL entry."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"


class DecisionReasons:
    """Decision reasons returned to callers.

    These are deliberately coarse so that a denial never reveals anything about
    another facility's data.
    """

    GRANTED: Final[str] = "Permission granted"
    ADMINISTRATOR: Final[str] = "Administrator access"
    NO_MATCHING_RULE: Final[str] = "no matching rule"
    FACILITY_RESTRICTION: Final[str] = "Facility access restriction"
    CONDITION_FAILED: Final[str] = "Access condition not satisfied"
    INVALID_CONTEXT: Final[str] = "Invalid principal or resource context"
    CONFIGURATION_ERROR: Final[str] = "Authorization configuration unavailable"


class ConfigNames:
    """Names of the configuration documents handled by the loader."""

    ROLES: Final[str] = "roles"
    COLLECTIONS: Final[str] = "collections"
    TEAMS: Final[str] = "teams"

    ALL: Final[tuple] = ("roles", "collections", "teams")


class CacheTTL:
    """Cache TTL values in seconds."""

    DECISIONS_DEFAULT: Final[int] = 300      # 5 minutes
    DECISIONS_MAX: Final[int] = 3600         # 1 hour


class TeamDefaults:
    """Default team naming used for ACL grantees."""

    GLOBAL_ADMIN_TEAM: Final[str] = "global-admin-team"
    FACILITY_TEAM_PATTERN: Final[str] = "facility-{facility_id}-team"


class QueryDefaults:
    """Paging defaults for secure queries."""

    DEFAULT_LIMIT: Final[int] = 25
    MAX_LIMIT: Final[int] = 100


# Document fields that may carry the facility identifier
FACILITY_FIELDS: Final[FrozenSet[str]] = frozenset({"facilityId", "facility_id"})

# Roles treated as clinical staff by the ``clinical_access`` condition
CLINICAL_ROLES: Final[FrozenSet[RoleName]] = frozenset(
    {RoleName.DOCTOR, RoleName.SUPERVISOR, RoleName.ADMINISTRATOR}
)
