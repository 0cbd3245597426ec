"""
Role entity - authorization role with hierarchy level.

Roles are built by the configuration loader and never mutated afterwards.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from ....config.constants import RoleName, Operation, DataAccess


@dataclass(frozen=True)
class Role:
    """
    Core role entity.

    ``permissions`` holds the effective operations per resource, including
    operations inherited from lower roles.
    """
    name: RoleName
    level: int
    description: str = ""
    data_access: DataAccess = DataAccess.FACILITY_ONLY
    permissions: Mapping[str, FrozenSet[Operation]] = field(default_factory=dict)
    special_permissions: FrozenSet[str] = frozenset()
    inherits: Tuple[RoleName, ...] = ()

    def __post_init__(self):
        """Freeze the permission mapping."""
        object.__setattr__(
            self,
            "permissions",
            MappingProxyType({res: frozenset(ops) for res, ops in self.permissions.items()})
        )
        object.__setattr__(self, "special_permissions", frozenset(self.special_permissions))

    @property
    def facility_scoped(self) -> bool:
        """Whether principals holding this role are confined to their facilities."""
        return self.data_access == DataAccess.FACILITY_ONLY

    def operations_for(self, resource: str) -> FrozenSet[Operation]:
        """Operations this role grants on a resource."""
        return self.permissions.get(resource, frozenset())

    def allows(self, resource: str, operation: Operation) -> bool:
        """Check if the role grants an operation on a resource."""
        return operation in self.operations_for(resource)

    def has_special_permission(self, code: str) -> bool:
        return code in self.special_permissions

    def __str__(self) -> str:
        return self.name.value

    def __repr__(self) -> str:
        return f"Role(name='{self.name.value}', level={self.level}, resources={len(self.permissions)})"
