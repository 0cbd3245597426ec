"""
Permission rule entities.

A ``PermissionRule`` answers, for one (resource, operation) pair, which roles
are allowed and under which conditions. Roles without a grant are denied.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterator, Mapping, Optional, Tuple

from ....config.constants import RoleName, Operation


@dataclass(frozen=True)
class PermissionGrant:
    """Grant of one operation on one resource to one role."""
    role: RoleName
    conditions: Tuple[str, ...] = ()
    facility_scoped: bool = True

    @property
    def is_conditional(self) -> bool:
        return bool(self.conditions)


@dataclass(frozen=True)
class PermissionRule:
    """All grants for a (resource, operation) pair."""
    resource: str
    operation: Operation
    grants: Mapping[RoleName, PermissionGrant] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "grants", MappingProxyType(dict(self.grants)))

    def grant_for(self, role: RoleName) -> Optional[PermissionGrant]:
        """Get the grant for a role, ``None`` when the role is denied."""
        return self.grants.get(role)

    def is_allowed(self, role: RoleName) -> bool:
        return role in self.grants

    @property
    def allowed_roles(self) -> FrozenSet[RoleName]:
        return frozenset(self.grants)


class RuleTable:
    """Immutable lookup table of rules indexed by (resource, operation)."""

    def __init__(self, rules: Mapping[Tuple[str, Operation], PermissionRule]):
        self._rules: Mapping[Tuple[str, Operation], PermissionRule] = MappingProxyType(dict(rules))
        resources: Dict[str, set] = {}
        for resource, operation in self._rules:
            resources.setdefault(resource, set()).add(operation)
        self._operations = MappingProxyType(
            {resource: frozenset(ops) for resource, ops in resources.items()}
        )

    def get(self, resource: str, operation: Operation) -> Optional[PermissionRule]:
        return self._rules.get((resource, operation))

    def operations(self, resource: str) -> FrozenSet[Operation]:
        """Operations granted to at least one role on a resource."""
        return self._operations.get(resource, frozenset())

    @property
    def resources(self) -> FrozenSet[str]:
        return frozenset(self._operations)

    def __iter__(self) -> Iterator[PermissionRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, key: Tuple[str, Operation]) -> bool:
        return key in self._rules
