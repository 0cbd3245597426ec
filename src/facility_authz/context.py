"""
Authorization context - explicit container for every engine component.

Built once at process start, started with ``await context.start()`` and
released with ``await context.close()`` (or used as an async context manager).
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .config.constants import DenialCode, DecisionReasons, Operation, RoleName
from .config.settings import AuthzSettings, get_settings
from .core.exceptions import ConfigurationError, InvalidContextError
from .auth.application.services import (
    ConditionRegistry,
    DocumentSecurityGenerator,
    PermissionValidator,
    RoleAssignmentResult,
    RoleAssignmentService,
    SecureQueryBuilder,
)
from .auth.application.services.secure_query_builder import FilterInput
from .auth.domain.entities.acl import AclEntry
from .auth.domain.protocols import (
    AuditSinkProtocol,
    ConfigurationSourceProtocol,
    DataSourceProtocol,
    DecisionCacheProtocol,
    IdentityProviderProtocol,
)
from .auth.domain.value_objects import PermissionDecision, Principal, QueryPage, SecureQuery
from .auth.infrastructure.audit import LoggingAuditSink
from .auth.infrastructure.cache import MemoryDecisionCache, RedisDecisionCache
from .auth.infrastructure.configuration import (
    ConfigurationLoader,
    JsonDirectoryConfigurationSource,
    packaged_defaults_source,
)


logger = logging.getLogger(__name__)


def build_decision_cache(settings: AuthzSettings) -> Optional[DecisionCacheProtocol]:
    """Create the decision cache selected by settings (``None`` when disabled)."""
    if not settings.cache_enabled:
        return None
    if settings.cache_backend == "redis":
        return RedisDecisionCache.from_url(settings.redis_url, key_prefix=settings.redis_key_prefix)
    return MemoryDecisionCache(
        max_entries=settings.cache_max_entries,
        default_ttl=settings.cache_ttl_seconds,
    )


class AuthorizationContext:
    """
    Wires configuration loading, caching, decisions and the services built on
    them.

    Args:
        settings: Engine settings (environment when omitted)
        source: Configuration source (``settings.config_path`` or packaged defaults when omitted)
        identity_provider: Identity store; required for lookups by principal id
            and for role assignment
        cache: Decision cache (built from settings when omitted)
        audit_sink: Audit sink (audit logger when omitted)
        conditions: Condition registry (built-in predicates when omitted)
    """

    def __init__(
        self,
        settings: Optional[AuthzSettings] = None,
        source: Optional[ConfigurationSourceProtocol] = None,
        identity_provider: Optional[IdentityProviderProtocol] = None,
        cache: Optional[DecisionCacheProtocol] = None,
        audit_sink: Optional[AuditSinkProtocol] = None,
        conditions: Optional[ConditionRegistry] = None
    ):
        self.settings = settings or get_settings()
        if source is None:
            source = (
                JsonDirectoryConfigurationSource(self.settings.config_path)
                if self.settings.config_path else packaged_defaults_source()
            )

        self.conditions = conditions or ConditionRegistry()
        self.loader = ConfigurationLoader(source, self.conditions)
        self.cache = cache if cache is not None else build_decision_cache(self.settings)
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.identity_provider = identity_provider

        self.validator = PermissionValidator(
            self.loader,
            cache=self.cache,
            audit_sink=self.audit_sink,
            cache_ttl=self.settings.cache_ttl_seconds,
            audit_enabled=self.settings.audit_enabled,
        )
        self.documents = DocumentSecurityGenerator(self.validator)
        self.queries = SecureQueryBuilder(
            self.validator,
            default_limit=self.settings.default_page_size,
            max_limit=self.settings.max_page_size,
            facility_override_policy=self.settings.facility_override_policy,
        )
        self.role_assignments = (
            RoleAssignmentService(self.validator, identity_provider) if identity_provider else None
        )
        self.loader.add_reload_listener(self.validator.on_configuration_reload)
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> "AuthorizationContext":
        """Load configuration and start hot reload when enabled."""
        if self._started:
            return self
        await self.loader.load()
        if self.settings.hot_reload:
            self.loader.start_watching(self.settings.hot_reload_interval_seconds)
        self._started = True
        logger.info(f"Authorization context started (configuration v{self.loader.version})")
        return self

    async def close(self) -> None:
        await self.loader.close()
        if self.cache is not None:
            await self.cache.close()
        self._started = False

    async def __aenter__(self) -> "AuthorizationContext":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def reload(self) -> int:
        """Reload configuration; returns the new version."""
        snapshot = await self.loader.reload_all()
        return snapshot.version

    async def resolve_principal(self, principal_id: str) -> Principal:
        """
        Load a principal from the identity store.

        Raises:
            ConfigurationError: no identity provider is configured
            InvalidContextError: unknown principal or malformed profile
        """
        if self.identity_provider is None:
            raise ConfigurationError("No identity provider configured")
        if not principal_id:
            raise InvalidContextError("Principal id is required")
        profile = await self.identity_provider.get_profile(principal_id)
        if profile is None:
            raise InvalidContextError(f"Unknown principal: {principal_id}", details={"principal_id": principal_id})
        return Principal.from_profile(profile)

    async def check_permission(
        self,
        principal_id: str,
        resource: str,
        operation: Union[Operation, str],
        context: Union[Mapping[str, Any], None] = None
    ) -> PermissionDecision:
        """Check a permission for a principal looked up by id."""
        if self.identity_provider is None:
            raise ConfigurationError("No identity provider configured")

        profile = await self.identity_provider.get_profile(principal_id) if principal_id else None
        if profile is None:
            logger.debug(f"Unknown principal {principal_id!r} in permission check")
            return PermissionDecision.deny(
                DenialCode.INVALID_CONTEXT,
                DecisionReasons.INVALID_CONTEXT,
                principal_id=principal_id or None,
                resource=resource,
            )
        return await self.validator.check_permission(profile, resource, operation, context)

    async def generate_document_permissions(
        self,
        principal: Principal,
        resource_type: str,
        draft: Optional[Mapping[str, Any]] = None
    ) -> List[AclEntry]:
        """Ordered ACL entries for a new document."""
        return await self.documents.generate_document_permissions(principal, resource_type, draft)

    async def build_secure_query(
        self,
        principal: Principal,
        resource_type: str,
        filters: FilterInput = None,
        **paging: Any
    ) -> SecureQuery:
        return await self.queries.build_secure_query(principal, resource_type, filters, **paging)

    async def execute_secure_query(
        self,
        data_source: DataSourceProtocol,
        resource_type: str,
        query: SecureQuery
    ) -> QueryPage:
        return await self.queries.execute_secure_query(data_source, resource_type, query)

    async def assign_role(
        self,
        assigner: Union[Principal, str],
        principal_id: str,
        role: Union[RoleName, str],
        facility_id: Optional[str] = None
    ) -> RoleAssignmentResult:
        """Assign a role; ``assigner`` may be a principal or a principal id."""
        if self.role_assignments is None:
            raise ConfigurationError("Role assignment requires an identity provider")
        if not isinstance(assigner, Principal):
            assigner = await self.resolve_principal(assigner)
        return await self.role_assignments.assign_role(assigner, principal_id, role, facility_id)

    async def get_cache_stats(self) -> Dict[str, Any]:
        stats = await self.validator.get_cache_stats()
        stats["config_version"] = self.loader.version
        return stats

    async def clear_cache(self) -> int:
        return await self.validator.clear_cache()

    async def invalidate(self, principal_id: str) -> int:
        return await self.validator.invalidate(principal_id)
