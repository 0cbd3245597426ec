"""
Role hierarchy - total order over the configured roles.

Built once per configuration snapshot and immutable afterwards.
"""
import logging
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from ....config.constants import RoleName
from ....core.exceptions import ConfigurationError, UnknownRoleError
from ...domain.entities.role import Role
from ...domain.value_objects.principal import Principal


logger = logging.getLogger(__name__)


class RoleHierarchy:
    """
    Strict total order over roles by level (higher level = more privilege).

    Exactly one role is maximal; it is the administrator-equivalent role and
    bypasses facility scoping.
    """

    def __init__(self, roles: Mapping[RoleName, Role]):
        if not roles:
            raise ConfigurationError("Role hierarchy requires at least one role")

        levels = {}
        for role in roles.values():
            if role.level in levels:
                raise ConfigurationError(
                    f"Roles '{levels[role.level].value}' and '{role.name.value}' share level {role.level}",
                    details={"level": role.level}
                )
            levels[role.level] = role.name

        self._roles: Mapping[RoleName, Role] = MappingProxyType(dict(roles))
        self._ordered: Tuple[RoleName, ...] = tuple(
            sorted(self._roles, key=lambda name: self._roles[name].level, reverse=True)
        )

    @property
    def roles(self) -> Mapping[RoleName, Role]:
        return self._roles

    @property
    def maximal_role(self) -> RoleName:
        """The administrator-equivalent role."""
        return self._ordered[0]

    def role(self, name: RoleName) -> Role:
        """Get a role definition."""
        try:
            return self._roles[name]
        except KeyError:
            raise UnknownRoleError(f"Role not configured: {name}", details={"role": str(name)})

    def level(self, name: RoleName) -> int:
        return self.role(name).level

    def has_higher_or_equal_role(self, role_a: RoleName, role_b: RoleName) -> bool:
        """Check if ``role_a`` is at or above ``role_b``."""
        return self.level(role_a) >= self.level(role_b)

    def is_higher(self, role_a: RoleName, role_b: RoleName) -> bool:
        """Check if ``role_a`` is strictly above ``role_b``."""
        return self.level(role_a) > self.level(role_b)

    def is_administrator(self, name: RoleName) -> bool:
        return name == self.maximal_role

    def principal_is_administrator(self, principal: Principal) -> bool:
        return self.maximal_role in principal.roles

    def ordered(self, roles: Optional[Iterable[RoleName]] = None) -> Tuple[RoleName, ...]:
        """Roles sorted from highest to lowest; unknown roles are skipped."""
        if roles is None:
            return self._ordered
        wanted = set(roles)
        unknown = wanted - set(self._roles)
        if unknown:
            logger.warning(f"Ignoring roles missing from configuration: {sorted(r.value for r in unknown)}")
        return tuple(name for name in self._ordered if name in wanted)

    def highest(self, roles: Iterable[RoleName]) -> Optional[RoleName]:
        """Highest configured role among ``roles``."""
        ordered = self.ordered(roles)
        return ordered[0] if ordered else None

    def roles_at_or_above(self, name: RoleName) -> Tuple[RoleName, ...]:
        threshold = self.level(name)
        return tuple(role for role in self._ordered if self._roles[role].level >= threshold)

    def roles_below(self, name: RoleName) -> Tuple[RoleName, ...]:
        threshold = self.level(name)
        return tuple(role for role in self._ordered if self._roles[role].level < threshold)

    def can_assign(self, assigner_roles: Iterable[RoleName], target: RoleName) -> bool:
        """
        Check if a principal holding ``assigner_roles`` may assign ``target``.

        The administrator may assign any role; everyone else only roles
        strictly below their own highest role.
        """
        highest = self.highest(assigner_roles)
        if highest is None:
            return False
        if self.is_administrator(highest):
            return target in self._roles
        return self.is_higher(highest, target)

    def __contains__(self, name: RoleName) -> bool:
        return name in self._roles

    def __len__(self) -> int:
        return len(self._roles)

    def __repr__(self) -> str:
        chain = " > ".join(name.value for name in self._ordered)
        return f"RoleHierarchy({chain})"
