"""
Resource context value object.

Describes what is being accessed: the target facility, an optional document id
and document attributes consumed by condition predicates.
"""
import hashlib
import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, TYPE_CHECKING

from ....config.constants import FACILITY_FIELDS

if TYPE_CHECKING:
    from ...application.services.role_hierarchy import RoleHierarchy


@dataclass(frozen=True)
class ResourceContext:
    """Immutable context of a permission check."""
    facility_id: Optional[str] = None
    resource_id: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    hierarchy: Optional["RoleHierarchy"] = field(default=None, compare=False, hash=False, repr=False)
    principal_facilities: Optional[FrozenSet[str]] = field(default=None, compare=False, hash=False, repr=False)

    def __post_init__(self):
        if self.facility_id is not None:
            object.__setattr__(self, "facility_id", str(self.facility_id))
        if self.resource_id is not None:
            object.__setattr__(self, "resource_id", str(self.resource_id))
        if self.attributes is None:
            object.__setattr__(self, "attributes", {})

    @classmethod
    def from_value(cls, value: Any) -> "ResourceContext":
        """Coerce ``None``, a mapping or a context into a ``ResourceContext``."""
        if value is None:
            return cls()
        if isinstance(value, ResourceContext):
            return value
        if isinstance(value, Mapping):
            facility_id = value.get("facilityId", value.get("facility_id"))
            resource_id = value.get("resourceId", value.get("resource_id", value.get("documentId")))
            attributes = value.get("attributes") or {}
            if not isinstance(attributes, Mapping):
                raise TypeError(f"Context attributes must be a mapping, got {type(attributes).__name__}")
            return cls(facility_id=facility_id, resource_id=resource_id, attributes=dict(attributes))
        raise TypeError(f"Unsupported resource context: {type(value).__name__}")

    @classmethod
    def for_document(cls, document: Mapping[str, Any], facility_field: str = "facilityId") -> "ResourceContext":
        """Build a context from a stored document, using its embedded facility id."""
        facility_id = document.get(facility_field)
        if facility_id is None:
            for name in FACILITY_FIELDS:
                if document.get(name) is not None:
                    facility_id = document[name]
                    break
        resource_id = document.get("$id", document.get("id"))
        return cls(facility_id=facility_id, resource_id=resource_id, attributes=dict(document))

    def with_hierarchy(
        self,
        hierarchy: "RoleHierarchy",
        principal_facilities: Optional[Iterable[str]] = None
    ) -> "ResourceContext":
        """Attach the role hierarchy and the facilities resolved for the principal."""
        if principal_facilities is not None:
            principal_facilities = frozenset(principal_facilities)
        return replace(self, hierarchy=hierarchy, principal_facilities=principal_facilities)

    def attribute(self, *names: str, default: Any = None) -> Any:
        """Return the first attribute present among ``names``."""
        for name in names:
            if name in self.attributes and self.attributes[name] is not None:
                return self.attributes[name]
        return default

    @property
    def is_document_level(self) -> bool:
        return self.resource_id is not None or bool(self.attributes)

    @property
    def digest(self) -> str:
        """Stable digest of the document-level part of the context ("" when none)."""
        if not self.is_document_level:
            return ""
        payload = json.dumps(
            {"id": self.resource_id, "attributes": self.attributes},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    def to_dict(self) -> Dict[str, Any]:
        return {"facilityId": self.facility_id, "resourceId": self.resource_id}
