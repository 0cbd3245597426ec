"""
Principal value object.

Immutable representation of the actor whose access is being decided, as
supplied by the identity/profile store.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from ....config.constants import RoleName
from ....core.exceptions import InvalidContextError, UnknownRoleError


def _as_set(value: Any) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset({value}) if value else frozenset()
    if isinstance(value, int) and not isinstance(value, bool):
        return frozenset({str(value)})
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise InvalidContextError(f"Expected a string or a list, got {type(value).__name__}")
    return frozenset(str(item) for item in value if item not in (None, ""))


def _role_names(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise InvalidContextError(f"Principal roles must be a list, got {type(value).__name__}")
    for item in value:
        if not isinstance(item, str):
            raise InvalidContextError(f"Malformed role entry: {item!r}")
    return list(value)


@dataclass(frozen=True)
class Principal:
    """
    Immutable principal for authorization decisions.

    Holds the identity, roles, facilities and team memberships needed to decide
    access. Facility ids are strings; numeric ids from the profile store are
    converted.
    """
    id: str
    roles: FrozenSet[RoleName]
    facility_ids: FrozenSet[str] = frozenset()
    team_memberships: FrozenSet[str] = frozenset()
    email: Optional[str] = None
    metadata: Dict[str, Any] = field(default=None, compare=False, hash=False)

    def __post_init__(self):
        """Validate and normalize the principal."""
        if not isinstance(self.id, str) or not self.id.strip():
            raise InvalidContextError("Principal id is required")
        if not self.roles:
            raise InvalidContextError("Principal has no roles", details={"principal_id": self.id})

        roles = set()
        for role in self.roles:
            if isinstance(role, RoleName):
                roles.add(role)
                continue
            if not isinstance(role, str):
                raise InvalidContextError(f"Malformed role entry: {role!r}", details={"principal_id": self.id})
            try:
                roles.add(RoleName.parse(role))
            except ValueError:
                raise UnknownRoleError(
                    f"Unknown role: {role}", details={"principal_id": self.id, "role": str(role)}
                )
        object.__setattr__(self, "roles", frozenset(roles))
        object.__setattr__(self, "facility_ids", _as_set(self.facility_ids))
        object.__setattr__(self, "team_memberships", _as_set(self.team_memberships))
        if self.metadata is None:
            object.__setattr__(self, "metadata", {})

    @classmethod
    def from_profile(cls, profile: Mapping[str, Any]) -> "Principal":
        """
        Build a principal from an identity-store record.

        Accepts ``roles`` or ``role``, ``facilityIds``/``facility_ids`` and
        ``facilityId``/``facility_id``, ``teamMemberships``/``teams``.
        """
        if not isinstance(profile, Mapping):
            raise InvalidContextError("Principal profile must be a mapping")

        principal_id = profile.get("id") or profile.get("$id") or profile.get("userId")
        if principal_id is None:
            raise InvalidContextError("Principal profile has no id")

        roles = profile.get("roles")
        if roles is None:
            roles = profile.get("role")
        roles = _role_names(roles)

        facilities = set(_as_set(profile.get("facilityIds") or profile.get("facility_ids")))
        facilities |= _as_set(profile.get("facilityId") or profile.get("facility_id"))

        metadata = profile.get("metadata")
        teams = profile.get("teamMemberships")
        if teams is None:
            teams = profile.get("teams")

        return cls(
            id=str(principal_id),
            roles=frozenset(roles),
            facility_ids=frozenset(facilities),
            team_memberships=_as_set(teams),
            email=profile.get("email"),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    def has_role(self, role: RoleName) -> bool:
        return role in self.roles

    def has_any_role(self, roles: Iterable[RoleName]) -> bool:
        return any(role in self.roles for role in roles)

    def with_roles(self, roles: Iterable[RoleName], facility_ids: Optional[Iterable[str]] = None) -> "Principal":
        """Create a copy with new roles (and optionally facilities)."""
        return Principal(
            id=self.id,
            roles=frozenset(roles),
            facility_ids=frozenset(facility_ids) if facility_ids is not None else self.facility_ids,
            team_memberships=self.team_memberships,
            email=self.email,
            metadata=self.metadata,
        )

    def __str__(self) -> str:
        return f"principal:{self.id}"

    def __repr__(self) -> str:
        roles = ",".join(sorted(role.value for role in self.roles))
        return f"Principal(id='{self.id}', roles='{roles}', facilities={sorted(self.facility_ids)})"
