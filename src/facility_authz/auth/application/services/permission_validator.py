"""
Permission validator - the core decision engine.

Decides ``check_permission(principal, resource, operation, context)`` against
the active configuration snapshot:

1. administrator-equivalent principals are allowed everywhere;
2. the (resource, operation) rule must grant one of the principal's roles;
3. facility-scoped grants require the context facility to be one of the
   principal's facilities;
4. every condition on the grant must pass.

Decisions are cached per (principal, resource, operation, facility, document
digest) and stamped with the snapshot version. Denials are returned, never
raised.
"""
import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union, TYPE_CHECKING

from ....config.constants import (
    CacheTTL,
    DecisionReasons,
    DecisionScope,
    DenialCode,
    KIND_OPERATIONS,
    Operation,
)
from ....core.exceptions import (
    CacheCorruptionError,
    ConfigurationError,
    InvalidContextError,
    UnknownRoleError,
)
from ...domain.entities.collection import CollectionSecurityConfig
from ...domain.entities.rule import PermissionGrant
from ...domain.protocols.cache_protocols import DecisionCacheKey, DecisionCacheProtocol
from ...domain.protocols.service_protocols import AuditSinkProtocol
from ...domain.value_objects.audit import AuditEvent
from ...domain.value_objects.decision import PermissionDecision
from ...domain.value_objects.principal import Principal
from ...domain.value_objects.resource import normalize_resource, split_resource
from ...domain.value_objects.resource_context import ResourceContext
from .conditions import ConditionRegistry

if TYPE_CHECKING:
    from ...infrastructure.configuration.loader import ConfigurationLoader
    from ...infrastructure.configuration.snapshot import ConfigurationSnapshot


logger = logging.getLogger(__name__)

PrincipalLike = Union[Principal, Mapping[str, Any]]
ContextLike = Union[ResourceContext, Mapping[str, Any], None]


class PermissionValidator:
    """
    Decision engine over the loader's active snapshot.

    Args:
        loader: Configuration loader holding the active snapshot
        cache: Decision cache (``None`` disables caching)
        audit_sink: Receiver of decision audit events
        cache_ttl: TTL of cached decisions in seconds
        audit_enabled: Audit every decision (resources with
            ``audit_required`` are audited regardless)
    """

    def __init__(
        self,
        loader: "ConfigurationLoader",
        cache: Optional[DecisionCacheProtocol] = None,
        audit_sink: Optional[AuditSinkProtocol] = None,
        cache_ttl: int = CacheTTL.DECISIONS_DEFAULT,
        audit_enabled: bool = True
    ):
        self._loader = loader
        self._cache = cache
        self._audit_sink = audit_sink
        self._cache_ttl = cache_ttl
        self._audit_enabled = audit_enabled
        self._stats = {
            "evaluations": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "denials": 0,
            "corrupt_entries": 0,
        }

    @property
    def conditions(self) -> ConditionRegistry:
        return self._loader.conditions

    @property
    def cache(self) -> Optional[DecisionCacheProtocol]:
        return self._cache

    @property
    def snapshot(self) -> "ConfigurationSnapshot":
        return self._loader.snapshot

    async def check_permission(
        self,
        principal: PrincipalLike,
        resource: str,
        operation: Union[Operation, str],
        context: ContextLike = None
    ) -> PermissionDecision:
        """
        Check whether a principal may perform an operation on a resource.

        Args:
            principal: Principal (or identity-store profile mapping)
            resource: Resource identifier (``collections.patients`` or ``patients``)
            operation: Operation name
            context: ResourceContext or mapping with ``facilityId`` etc.

        Returns:
            PermissionDecision; malformed input and missing configuration
            produce denials, not exceptions
        """
        principal_id = principal.id if isinstance(principal, Principal) else None

        try:
            snapshot = self._loader.snapshot
        except ConfigurationError as e:
            logger.error(f"Denying {operation} on {resource}: {e.message}")
            decision = PermissionDecision.deny(
                DenialCode.CONFIGURATION_ERROR,
                DecisionReasons.CONFIGURATION_ERROR,
                principal_id=principal_id,
                resource=resource if isinstance(resource, str) else None,
            )
            return await self._finish(decision, None, None)

        try:
            principal, resource, operation, context = self._normalize(
                principal, resource, operation, context
            )
        except InvalidContextError as e:
            code = DenialCode.UNKNOWN_ROLE if isinstance(e, UnknownRoleError) else DenialCode.INVALID_CONTEXT
            if code == DenialCode.UNKNOWN_ROLE:
                logger.warning(f"Unknown role in permission check: {e.message}")
            else:
                logger.debug(f"Invalid permission check input: {e.message}")
            decision = PermissionDecision.deny(
                code,
                DecisionReasons.INVALID_CONTEXT,
                principal_id=principal_id,
                resource=resource if isinstance(resource, str) else None,
                config_version=snapshot.version,
            )
            return await self._finish(decision, None, None)

        key = DecisionCacheKey(
            principal_id=principal.id,
            resource=resource,
            operation=operation.value,
            facility_id=context.facility_id,
            context_digest=context.digest,
        )
        cached = await self._cached_decision(key, snapshot.version)
        if cached is not None:
            return await self._finish(cached, snapshot, context)

        decision = self.evaluate(snapshot, principal, resource, operation, context)
        if self._cache is not None:
            await self._cache.set(key, decision, self._cache_ttl)
        return await self._finish(decision, snapshot, context)

    def _normalize(
        self,
        principal: PrincipalLike,
        resource: str,
        operation: Union[Operation, str],
        context: ContextLike
    ) -> Tuple[Principal, str, Operation, ResourceContext]:
        if isinstance(principal, Mapping):
            principal = Principal.from_profile(principal)
        elif not isinstance(principal, Principal):
            raise InvalidContextError("Missing or malformed principal")

        resource = normalize_resource(resource)

        if not isinstance(operation, Operation):
            try:
                operation = Operation.parse(operation)
            except ValueError:
                raise InvalidContextError(f"Unknown operation: {operation!r}")

        try:
            context = ResourceContext.from_value(context)
        except TypeError as e:
            raise InvalidContextError(str(e))

        return principal, resource, operation, context

    async def _cached_decision(self, key: DecisionCacheKey, version: int) -> Optional[PermissionDecision]:
        if self._cache is None:
            return None
        try:
            entry = await self._cache.get(key)
        except CacheCorruptionError as e:
            self._stats["corrupt_entries"] += 1
            self._stats["cache_misses"] += 1
            logger.warning(f"Discarding corrupt cached decision: {e.message}")
            await self._cache.delete(key)
            return None

        if entry is None:
            self._stats["cache_misses"] += 1
            return None
        if entry.config_version != version:
            self._stats["cache_misses"] += 1
            await self._cache.delete(key)
            return None

        self._stats["cache_hits"] += 1
        return entry.decision.as_cached()

    def evaluate(
        self,
        snapshot: "ConfigurationSnapshot",
        principal: Principal,
        resource: str,
        operation: Operation,
        context: ResourceContext
    ) -> PermissionDecision:
        """Compute a decision from the snapshot without touching the cache."""
        self._stats["evaluations"] += 1
        common = dict(
            principal_id=principal.id,
            resource=resource,
            operation=operation,
            facility_id=context.facility_id,
            config_version=snapshot.version,
        )

        security = snapshot.facility_scope.security_config(resource)
        if security is None:
            logger.warning(f"No security configuration for resource '{resource}' (configuration drift?)")
            return PermissionDecision.deny(
                DenialCode.UNKNOWN_RESOURCE, DecisionReasons.NO_MATCHING_RULE, **common
            )

        hierarchy = snapshot.hierarchy
        if hierarchy.principal_is_administrator(principal):
            return PermissionDecision.allow(
                DecisionScope.ALL_FACILITIES,
                DecisionReasons.ADMINISTRATOR,
                role=hierarchy.maximal_role,
                **common
            )

        rule = snapshot.rules.get(resource, operation)
        context = context.with_hierarchy(hierarchy, snapshot.facility_scope.resolve_facilities(principal))
        first_denial: Optional[PermissionDecision] = None

        for role in hierarchy.ordered(principal.roles):
            grant = rule.grant_for(role) if rule is not None else None
            if grant is None:
                continue
            decision = self._evaluate_grant(snapshot, principal, grant, security, context, common)
            if decision.allowed:
                return decision
            if first_denial is None:
                first_denial = decision

        if first_denial is not None:
            return first_denial
        return PermissionDecision.deny(
            DenialCode.NO_MATCHING_RULE, DecisionReasons.NO_MATCHING_RULE, **common
        )

    def _evaluate_grant(
        self,
        snapshot: "ConfigurationSnapshot",
        principal: Principal,
        grant: PermissionGrant,
        security: CollectionSecurityConfig,
        context: ResourceContext,
        common: Dict[str, Any]
    ) -> PermissionDecision:
        scope = DecisionScope.GLOBAL

        if security.facility_scoped and grant.facility_scoped:
            facilities = snapshot.facility_scope.resolve_facilities(principal)
            if not facilities:
                return PermissionDecision.deny(
                    DenialCode.INVALID_CONTEXT, DecisionReasons.INVALID_CONTEXT, role=grant.role, **common
                )
            if context.facility_id is not None and context.facility_id not in facilities:
                return PermissionDecision.deny(
                    DenialCode.FACILITY_MISMATCH,
                    DecisionReasons.FACILITY_RESTRICTION,
                    role=grant.role,
                    **common
                )
            scope = DecisionScope.FACILITY_ONLY

        for name in grant.conditions:
            if not self.conditions.evaluate(name, principal, context):
                return PermissionDecision.deny(
                    DenialCode.CONDITION_FAILED,
                    DecisionReasons.CONDITION_FAILED,
                    role=grant.role,
                    failed_condition=name,
                    **common
                )

        return PermissionDecision.allow(scope, role=grant.role, **common)

    async def _finish(
        self,
        decision: PermissionDecision,
        snapshot: Optional["ConfigurationSnapshot"],
        context: Optional[ResourceContext]
    ) -> PermissionDecision:
        if not decision.allowed:
            self._stats["denials"] += 1
        logger.debug(str(decision))

        audit = self._audit_enabled
        if not audit and snapshot is not None and decision.resource:
            security = snapshot.facility_scope.security_config(decision.resource)
            audit = security is not None and security.audit_required
        if audit and self._audit_sink is not None:
            event = AuditEvent.from_decision(decision, context.resource_id if context else None)
            try:
                await self._audit_sink.record(event)
            except Exception as e:
                logger.error(f"Audit sink failed to record decision: {e}")
        return decision

    async def check_many(
        self,
        principal: PrincipalLike,
        checks: Iterable[Union[Tuple[str, str], Tuple[str, str, ContextLike]]]
    ) -> List[PermissionDecision]:
        """Check several (resource, operation[, context]) triples for one principal."""
        decisions = []
        for check in checks:
            resource, operation, *rest = check
            context = rest[0] if rest else None
            decisions.append(await self.check_permission(principal, resource, operation, context))
        return decisions

    def effective_operations(self, principal: Principal, resource: str) -> FrozenSet[Operation]:
        """
        Operations the principal's roles grant on a resource.

        Facility and condition checks are not applied.
        """
        snapshot = self._loader.snapshot
        resource = normalize_resource(resource)
        if snapshot.facility_scope.security_config(resource) is None:
            return frozenset()
        if snapshot.hierarchy.principal_is_administrator(principal):
            kind, _ = split_resource(resource)
            return KIND_OPERATIONS[kind]

        operations = set()
        for role in snapshot.hierarchy.ordered(principal.roles):
            operations |= snapshot.roles[role].operations_for(resource)
        return frozenset(operations)

    async def invalidate(self, principal_id: str) -> int:
        """Drop every cached decision of a principal."""
        if self._cache is None:
            return 0
        return await self._cache.invalidate_principal(principal_id)

    async def clear_cache(self) -> int:
        if self._cache is None:
            return 0
        count = await self._cache.clear()
        logger.info(f"Cleared {count} cached decisions")
        return count

    async def on_configuration_reload(self, snapshot: "ConfigurationSnapshot") -> None:
        """Reload listener: cached decisions of older snapshots are dropped."""
        await self.clear_cache()

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Validator counters plus backend cache statistics."""
        result: Dict[str, Any] = {"validator": self.stats(), "ttl_seconds": self._cache_ttl}
        result["cache"] = await self._cache.stats() if self._cache is not None else {"backend": "disabled"}
        return result
