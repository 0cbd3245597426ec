"""
Audit event value object.

One event is produced for every permission decision when auditing is enabled.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .decision import PermissionDecision


@dataclass(frozen=True)
class AuditEvent:
    """Compliance record of a permission decision."""
    principal_id: Optional[str]
    resource: Optional[str]
    operation: Optional[str]
    facility_id: Optional[str]
    allowed: bool
    code: str
    reason: str
    scope: str
    from_cache: bool = False
    resource_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_decision(cls, decision: PermissionDecision, resource_id: Optional[str] = None) -> "AuditEvent":
        return cls(
            principal_id=decision.principal_id,
            resource=decision.resource,
            operation=decision.operation.value if decision.operation else None,
            facility_id=decision.facility_id,
            allowed=decision.allowed,
            code=decision.code.value,
            reason=decision.reason,
            scope=decision.scope.value,
            from_cache=decision.from_cache,
            resource_id=resource_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principalId": self.principal_id,
            "resource": self.resource,
            "operation": self.operation,
            "facilityId": self.facility_id,
            "resourceId": self.resource_id,
            "allowed": self.allowed,
            "code": self.code,
            "reason": self.reason,
            "scope": self.scope,
            "fromCache": self.from_cache,
            "timestamp": self.timestamp.isoformat(),
        }
