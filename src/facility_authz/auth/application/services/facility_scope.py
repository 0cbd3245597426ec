"""
Facility scope resolution.

Decides whether a resource is tenant (facility) scoped and which facilities a
principal may reach.
"""
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional

from ....core.exceptions import UnknownResourceError

from ...domain.entities.collection import CollectionSecurityConfig
from ...domain.entities.team import TeamSettings
from ...domain.value_objects.principal import Principal
from ...domain.value_objects.resource import normalize_resource
from .role_hierarchy import RoleHierarchy


class FacilityScopeResolver:
    """Resolver built per configuration snapshot."""

    def __init__(
        self,
        collections: Mapping[str, CollectionSecurityConfig],
        hierarchy: RoleHierarchy,
        teams: Optional[TeamSettings] = None
    ):
        self._collections = MappingProxyType(dict(collections))
        self._hierarchy = hierarchy
        self._teams = teams or TeamSettings()

    @property
    def teams(self) -> TeamSettings:
        return self._teams

    def security_config(self, resource: str) -> Optional[CollectionSecurityConfig]:
        return self._collections.get(normalize_resource(resource))

    def require_security_config(self, resource: str) -> CollectionSecurityConfig:
        config = self.security_config(resource)
        if config is None:
            raise UnknownResourceError(
                f"No security configuration for resource: {resource}", details={"resource": resource}
            )
        return config

    def is_known_resource(self, resource: str) -> bool:
        return self.security_config(resource) is not None

    def is_facility_scoped(self, resource: str) -> bool:
        """
        Check if a resource is facility scoped.

        Unconfigured resources count as scoped.
        """
        config = self.security_config(resource)
        return True if config is None else config.facility_scoped

    def is_administrator(self, principal: Principal) -> bool:
        return self._hierarchy.principal_is_administrator(principal)

    def resolve_facilities(self, principal: Principal) -> FrozenSet[str]:
        """Facilities of a principal: explicit ids plus facility team memberships."""
        facilities = set(principal.facility_ids)
        for team_id in principal.team_memberships:
            facility_id = self._teams.parse_facility_id(team_id)
            if facility_id:
                facilities.add(facility_id)
        return frozenset(facilities)

    def can_access_facility(self, principal: Principal, facility_id: Optional[str]) -> bool:
        """True for administrator-equivalent principals or members of the facility."""
        if self.is_administrator(principal):
            return True
        if facility_id is None:
            return False
        return str(facility_id) in self.resolve_facilities(principal)

    def can_access_all(self, principal: Principal, facility_ids: Iterable[str]) -> bool:
        if self.is_administrator(principal):
            return True
        own = self.resolve_facilities(principal)
        return all(str(facility_id) in own for facility_id in facility_ids)
