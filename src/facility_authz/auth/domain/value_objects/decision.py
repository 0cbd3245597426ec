"""
Permission decision value objects.

Immutable results of permission checks. Denials are ordinary values, never
exceptions.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ....config.constants import DecisionScope, DenialCode, DecisionReasons, Operation, RoleName


# Coarse reasons handed to external callers
_PUBLIC_REASONS = {
    DenialCode.GRANTED: DecisionReasons.GRANTED,
    DenialCode.NO_MATCHING_RULE: "access denied",
    DenialCode.UNKNOWN_RESOURCE: "access denied",
    DenialCode.UNKNOWN_ROLE: "access denied",
    DenialCode.FACILITY_MISMATCH: "facility restriction",
    DenialCode.CONDITION_FAILED: "access denied",
    DenialCode.INVALID_CONTEXT: "invalid request",
    DenialCode.CONFIGURATION_ERROR: "authorization unavailable",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PermissionDecision:
    """
    Immutable permission check result.

    ``reason`` is suitable for operators and API callers; ``public_reason``
    is the coarsest form, used where tenant information must not leak.
    """
    allowed: bool
    reason: str
    scope: DecisionScope = DecisionScope.NONE
    code: DenialCode = DenialCode.NO_MATCHING_RULE
    principal_id: Optional[str] = None
    resource: Optional[str] = None
    operation: Optional[Operation] = None
    facility_id: Optional[str] = None
    role: Optional[RoleName] = None
    failed_condition: Optional[str] = None
    from_cache: bool = field(default=False, compare=False)
    config_version: int = 0
    decided_at: datetime = field(default_factory=_utc_now, compare=False)

    @property
    def denied(self) -> bool:
        return not self.allowed

    @property
    def public_reason(self) -> str:
        return _PUBLIC_REASONS.get(self.code, "access denied")

    @classmethod
    def allow(
        cls,
        scope: DecisionScope,
        reason: str = DecisionReasons.GRANTED,
        **kwargs: Any
    ) -> "PermissionDecision":
        """Create a granted decision."""
        return cls(allowed=True, reason=reason, scope=scope, code=DenialCode.GRANTED, **kwargs)

    @classmethod
    def deny(cls, code: DenialCode, reason: str, **kwargs: Any) -> "PermissionDecision":
        """Create a denied decision."""
        return cls(allowed=False, reason=reason, scope=DecisionScope.NONE, code=code, **kwargs)

    def as_cached(self) -> "PermissionDecision":
        return replace(self, from_cache=True)

    def to_cache_value(self) -> Dict[str, Any]:
        """Get cacheable representation of this decision."""
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "scope": self.scope.value,
            "code": self.code.value,
            "principal_id": self.principal_id,
            "resource": self.resource,
            "operation": self.operation.value if self.operation else None,
            "facility_id": self.facility_id,
            "role": self.role.value if self.role else None,
            "failed_condition": self.failed_condition,
            "config_version": self.config_version,
            "decided_at": self.decided_at.isoformat(),
        }

    @classmethod
    def from_cache_value(cls, data: Dict[str, Any]) -> "PermissionDecision":
        """Rebuild a decision from cached data (raises ``KeyError``/``ValueError`` on bad data)."""
        return cls(
            allowed=bool(data["allowed"]),
            reason=str(data["reason"]),
            scope=DecisionScope(data["scope"]),
            code=DenialCode(data["code"]),
            principal_id=data.get("principal_id"),
            resource=data.get("resource"),
            operation=Operation(data["operation"]) if data.get("operation") else None,
            facility_id=data.get("facility_id"),
            role=RoleName(data["role"]) if data.get("role") else None,
            failed_condition=data.get("failed_condition"),
            from_cache=True,
            config_version=int(data["config_version"]),
            decided_at=datetime.fromisoformat(data["decided_at"]) if data.get("decided_at") else _utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "scope": self.scope.value,
        }

    def __str__(self) -> str:
        status = "GRANTED" if self.allowed else "DENIED"
        cache_indicator = " (cached)" if self.from_cache else ""
        op = self.operation.value if self.operation else "?"
        return f"{status}: {op} {self.resource} for {self.principal_id}{cache_indicator}"
