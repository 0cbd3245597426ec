"""
Document security - ACL generation and document-level access checks.

ACLs are computed when a document is created and stored with it by the data
store. Access to existing documents is decided by the permission validator
with the document's own facility id as context.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ....config.constants import (
    AclOperation,
    DecisionReasons,
    DenialCode,
    FACILITY_FIELDS,
    Operation,
)
from ....core.exceptions import (
    AccessDeniedError,
    FacilityMismatchError,
    InvalidContextError,
)
from ...domain.entities.acl import AclEntry, Grantee
from ...domain.entities.collection import CollectionSecurityConfig
from ...domain.value_objects.decision import PermissionDecision
from ...domain.value_objects.principal import Principal
from ...domain.value_objects.resource import normalize_resource
from ...domain.value_objects.resource_context import ResourceContext
from .permission_validator import PermissionValidator


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SecuredDocument:
    """A draft stamped with ownership metadata and its ACL."""
    resource: str
    data: Dict[str, Any]
    permissions: Tuple[AclEntry, ...]
    facility_id: Optional[str] = None
    decision: Optional[PermissionDecision] = field(default=None, compare=False)

    @property
    def permission_strings(self) -> List[str]:
        return [str(entry) for entry in self.permissions]


class DocumentSecurityGenerator:
    """Builds ACLs for new documents and checks access to stored ones."""

    def __init__(self, validator: PermissionValidator, clock: Callable[[], datetime] = _utc_now):
        self._validator = validator
        self._clock = clock

    def _security(self, resource: str) -> Optional[CollectionSecurityConfig]:
        return self._validator.snapshot.facility_scope.security_config(resource)

    def _draft_facility(self, draft: Mapping[str, Any], security: Optional[CollectionSecurityConfig]) -> Optional[str]:
        names = [security.facility_field] if security else []
        names.extend(sorted(FACILITY_FIELDS))
        for name in names:
            if draft.get(name) is not None:
                return str(draft[name])
        return None

    def resolve_facility(
        self,
        principal: Principal,
        resource: str,
        draft: Mapping[str, Any]
    ) -> Optional[str]:
        """
        Resolve the facility a new document belongs to.

        Raises:
            InvalidContextError: no facility can be determined unambiguously
            FacilityMismatchError: the draft names a facility outside the principal's set
        """
        security = self._security(resource)
        requested = self._draft_facility(draft, security)
        if security is None or not security.facility_scoped:
            return requested

        scope = self._validator.snapshot.facility_scope
        if requested is not None:
            if not scope.can_access_facility(principal, requested):
                raise FacilityMismatchError(
                    DecisionReasons.FACILITY_RESTRICTION,
                    details={"resource": resource}
                )
            return requested

        facilities = scope.resolve_facilities(principal)
        if len(facilities) == 1:
            return next(iter(facilities))
        if not facilities:
            raise InvalidContextError(
                f"A facility id is required to create documents in {resource}",
                details={"resource": resource}
            )
        raise InvalidContextError(
            "Principal belongs to several facilities; the draft must name one",
            details={"resource": resource, "facilities": sorted(facilities)}
        )

    async def generate_document_permissions(
        self,
        principal: Principal,
        resource_type: str,
        draft: Optional[Mapping[str, Any]] = None
    ) -> List[AclEntry]:
        """
        Generate the ordered ACL for a new document.

        Raises:
            AccessDeniedError: the principal may not create documents here
            FacilityMismatchError, InvalidContextError: see ``resolve_facility``
        """
        permissions, _, _ = await self._generate(principal, resource_type, draft or {})
        return permissions

    async def _generate(
        self,
        principal: Principal,
        resource_type: str,
        draft: Mapping[str, Any]
    ) -> Tuple[List[AclEntry], Optional[str], PermissionDecision]:
        resource = normalize_resource(resource_type)
        facility_id = self.resolve_facility(principal, resource, draft)

        decision = await self._validator.check_permission(
            principal, resource, Operation.CREATE, ResourceContext(facility_id=facility_id, attributes=dict(draft))
        )
        if not decision.allowed:
            raise AccessDeniedError(
                decision.public_reason,
                details={"resource": resource, "operation": Operation.CREATE.value}
            )

        snapshot = self._validator.snapshot
        hierarchy = snapshot.hierarchy
        security = snapshot.facility_scope.security_config(resource)
        admin = hierarchy.maximal_role
        scoped = security.facility_scoped and facility_id is not None
        team = snapshot.teams.facility_team(facility_id) if scoped else None

        entries: List[AclEntry] = [
            AclEntry(AclOperation.READ, Grantee.role(admin.value)),
            AclEntry(AclOperation.WRITE, Grantee.role(admin.value)),
            AclEntry(AclOperation.DELETE, Grantee.role(admin.value)),
        ]
        entries.append(AclEntry(AclOperation.READ, Grantee.team(team) if team else Grantee.ANY_USER))

        for role in hierarchy.roles_at_or_above(security.min_write_role):
            if role == admin:
                continue
            grantee = Grantee.team(team, role.value) if team else Grantee.role(role.value)
            entries.append(AclEntry(AclOperation.WRITE, grantee))

        entries.append(AclEntry(AclOperation.READ, Grantee.user(principal.id)))
        creator_role = hierarchy.highest(principal.roles)
        if creator_role is not None and hierarchy.has_higher_or_equal_role(creator_role, security.min_write_role):
            entries.append(AclEntry(AclOperation.WRITE, Grantee.user(principal.id)))

        unique = list(dict.fromkeys(entries))
        logger.debug(f"Generated {len(unique)} ACL entries for new {resource} document by {principal.id}")
        return unique, facility_id, decision

    async def secure_draft(
        self,
        principal: Principal,
        resource_type: str,
        draft: Mapping[str, Any]
    ) -> SecuredDocument:
        """
        Stamp a draft with facility and ownership metadata and attach its ACL.

        Raises ``AccessDeniedError`` when the draft sets fields the principal
        may not write.
        """
        resource = normalize_resource(resource_type)
        self._check_writable_fields(principal, resource, draft)
        permissions, facility_id, decision = await self._generate(principal, resource, draft)

        security = self._security(resource)
        now = self._clock().isoformat()
        data = dict(draft)
        if facility_id is not None:
            data[security.facility_field] = facility_id
        data["createdBy"] = principal.id
        data["createdAt"] = now
        data["updatedBy"] = principal.id
        data["updatedAt"] = now

        return SecuredDocument(
            resource=resource,
            data=data,
            permissions=tuple(permissions),
            facility_id=facility_id,
            decision=decision,
        )

    def _check_writable_fields(self, principal: Principal, resource: str, draft: Mapping[str, Any]) -> None:
        security = self._security(resource)
        if security is None:
            return
        hierarchy = self._validator.snapshot.hierarchy
        highest = hierarchy.highest(principal.roles)
        blocked = []
        for name in draft:
            rule = security.field_rule(name)
            if rule is None or rule.min_write_role is None:
                continue
            if highest is None or not hierarchy.has_higher_or_equal_role(highest, rule.min_write_role):
                blocked.append(name)
        if blocked:
            raise AccessDeniedError(
                "access denied",
                details={"resource": resource, "fields": sorted(blocked)}
            )

    async def check_document_access(
        self,
        principal: Principal,
        resource_type: str,
        document: Mapping[str, Any],
        operation: Operation
    ) -> PermissionDecision:
        """
        Decide access to a stored document.

        The document's embedded facility id replaces any caller-supplied
        facility; a facility-scoped document without one is denied.
        """
        resource = normalize_resource(resource_type)
        security = self._security(resource)
        facility_field = security.facility_field if security else "facilityId"
        context = ResourceContext.for_document(document, facility_field)

        if security is not None and security.facility_scoped and context.facility_id is None:
            logger.warning(f"Document in {resource} has no facility id; denying {operation}")
            return PermissionDecision.deny(
                DenialCode.INVALID_CONTEXT,
                DecisionReasons.INVALID_CONTEXT,
                principal_id=principal.id,
                resource=resource,
                config_version=self._validator.snapshot.version,
            )

        return await self._validator.check_permission(principal, resource, operation, context)

    def redact_document(
        self,
        principal: Principal,
        resource_type: str,
        document: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Copy of ``document`` without fields the principal may not read."""
        resource = normalize_resource(resource_type)
        security = self._validator.snapshot.facility_scope.require_security_config(resource)
        if not security.field_rules:
            return dict(document)

        hierarchy = self._validator.snapshot.hierarchy
        highest = hierarchy.highest(principal.roles)
        redacted = {}
        for name, value in document.items():
            rule = security.field_rule(name)
            if rule is not None and rule.min_read_role is not None:
                if highest is None or not hierarchy.has_higher_or_equal_role(highest, rule.min_read_role):
                    continue
            redacted[name] = value
        return redacted
