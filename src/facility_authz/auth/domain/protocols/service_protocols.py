"""
Protocols for external collaborators.

The identity store, configuration source, data store and audit sink live
outside this library; only their interfaces are defined here.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..value_objects.audit import AuditEvent
from ..value_objects.query import QueryFilter


@runtime_checkable
class IdentityProviderProtocol(Protocol):
    """Identity/profile store."""

    async def get_profile(self, principal_id: str) -> Optional[Mapping[str, Any]]:
        """Return ``{id, roles[], facilityId(s), teamMemberships[]}`` or ``None``."""
        ...

    async def update_roles(
        self,
        principal_id: str,
        roles: Iterable[str],
        facility_ids: Iterable[str]
    ) -> None:
        """Persist a principal's roles and facilities."""
        ...


@runtime_checkable
class ConfigurationSourceProtocol(Protocol):
    """Source of raw role, collection and team definitions."""

    async def load(self) -> Dict[str, Dict[str, Any]]:
        """Return every configuration document keyed by name."""
        ...

    async def fingerprint(self) -> Optional[str]:
        """Return a value that changes when the source changes (``None`` if unsupported)."""
        ...

    def describe(self) -> str:
        """Human readable description for logs."""
        ...


@runtime_checkable
class DataSourceProtocol(Protocol):
    """Document/data store executing secure queries."""

    async def list_documents(
        self,
        resource: str,
        filters: Sequence[QueryFilter],
        limit: int,
        offset: int,
        order_by: Sequence[str] = ()
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of documents and the total match count."""
        ...


@runtime_checkable
class AuditSinkProtocol(Protocol):
    """Audit sink receiving permission-decision events."""

    async def record(self, event: AuditEvent) -> None:
        """Record an audit event."""
        ...
