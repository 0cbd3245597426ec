"""
Role assignment service.

Assigning a role replaces the principal's roles in the identity store and
drops the principal's cached decisions before returning, so the next check
sees the new role.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Union

from ....config.constants import Operation, RoleName
from ....core.exceptions import (
    FacilityMismatchError,
    InvalidContextError,
    PermissionDeniedError,
    RoleAssignmentError,
    UnknownRoleError,
)
from ...domain.protocols.service_protocols import IdentityProviderProtocol
from ...domain.value_objects.principal import Principal
from ...domain.value_objects.resource_context import ResourceContext
from .permission_validator import PermissionValidator


logger = logging.getLogger(__name__)

USERS_RESOURCE = "collections.users"


@dataclass(frozen=True)
class RoleAssignmentResult:
    """Outcome of a successful role assignment."""
    principal_id: str
    role: RoleName
    facility_id: Optional[str]
    previous_roles: FrozenSet[RoleName]
    assigned_by: str
    previous_facility_ids: FrozenSet[str] = frozenset()
    invalidated_entries: int = 0
    assigned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principalId": self.principal_id,
            "role": self.role.value,
            "facilityId": self.facility_id,
            "previousRoles": sorted(role.value for role in self.previous_roles),
            "previousFacilityIds": sorted(self.previous_facility_ids),
            "assignedBy": self.assigned_by,
            "assignedAt": self.assigned_at.isoformat(),
        }


class RoleAssignmentService:
    """Assigns roles while preventing privilege escalation."""

    def __init__(self, validator: PermissionValidator, identity_provider: IdentityProviderProtocol):
        self._validator = validator
        self._identity = identity_provider

    async def assign_role(
        self,
        assigner: Principal,
        principal_id: str,
        role: Union[RoleName, str],
        facility_id: Optional[str] = None
    ) -> RoleAssignmentResult:
        """
        Assign ``role`` (at ``facility_id``) to a principal.

        Raises:
            UnknownRoleError: ``role`` is not a known role
            InvalidContextError: missing principal id or facility id
            PermissionDeniedError: the assigner lacks permission or the role is
                not strictly below the assigner's own
            FacilityMismatchError: the facility is not one of the assigner's
            RoleAssignmentError: the principal is unknown or the identity store failed
        """
        try:
            target_role = role if isinstance(role, RoleName) else RoleName.parse(role)
        except ValueError:
            raise UnknownRoleError(f"Unknown role: {role}", details={"role": str(role)})

        if not principal_id:
            raise InvalidContextError("Principal id is required for role assignment")

        snapshot = self._validator.snapshot
        hierarchy = snapshot.hierarchy
        if target_role not in hierarchy:
            raise UnknownRoleError(f"Role not configured: {target_role.value}")
        if not hierarchy.is_administrator(target_role) and not facility_id:
            raise InvalidContextError(
                f"A facility id is required for role '{target_role.value}'",
                details={"role": target_role.value}
            )
        facility_id = str(facility_id) if facility_id else None

        if not hierarchy.can_assign(assigner.roles, target_role):
            logger.warning(
                f"Principal {assigner.id} attempted to assign '{target_role.value}' to {principal_id}"
            )
            raise PermissionDeniedError(
                "Cannot assign a role at or above your own",
                details={"principal_id": principal_id, "role": target_role.value}
            )

        assigner_is_admin = hierarchy.principal_is_administrator(assigner)
        if not assigner_is_admin and not snapshot.facility_scope.can_access_facility(assigner, facility_id):
            raise FacilityMismatchError(
                "Roles can only be assigned within your own facilities",
                details={"principal_id": principal_id}
            )

        decision = await self._validator.check_permission(
            assigner,
            USERS_RESOURCE,
            Operation.UPDATE,
            ResourceContext(
                facility_id=facility_id,
                resource_id=principal_id,
                attributes={"targetRole": target_role.value},
            ),
        )
        if not decision.allowed:
            raise PermissionDeniedError(
                decision.public_reason,
                details={"principal_id": principal_id, "role": target_role.value}
            )

        profile = await self._identity.get_profile(principal_id)
        if profile is None:
            raise RoleAssignmentError(
                f"Principal not found: {principal_id}", details={"principal_id": principal_id}
            )
        current = Principal.from_profile(profile)

        if not assigner_is_admin:
            current_highest = hierarchy.highest(current.roles)
            if current_highest is not None and not hierarchy.can_assign(assigner.roles, current_highest):
                raise PermissionDeniedError(
                    "Cannot change the role of a principal at or above your own",
                    details={"principal_id": principal_id}
                )

        facility_ids = [facility_id] if facility_id else []
        try:
            await self._identity.update_roles(principal_id, [target_role.value], facility_ids)
        except Exception as e:
            logger.error(f"Identity store rejected role update for {principal_id}: {e}")
            raise RoleAssignmentError(
                f"Failed to update roles of {principal_id}",
                details={"principal_id": principal_id, "error": str(e)}
            )

        invalidated = await self._validator.invalidate(principal_id)
        logger.info(
            f"{assigner.id} assigned '{target_role.value}' to {principal_id} (facility: {facility_id or 'all'})"
        )

        return RoleAssignmentResult(
            principal_id=principal_id,
            role=target_role,
            facility_id=facility_id,
            previous_roles=current.roles,
            assigned_by=assigner.id,
            previous_facility_ids=current.facility_ids,
            invalidated_entries=invalidated,
        )
