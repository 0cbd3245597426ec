"""
Per-resource security configuration.

Says whether facility scoping applies to a resource, which role is the minimum
for write access on new documents, and optional field-level rules.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from ....config.constants import RoleName


@dataclass(frozen=True)
class FieldRule:
    """Minimum roles required to see or change a single document field."""
    field_name: str
    min_read_role: Optional[RoleName] = None
    min_write_role: Optional[RoleName] = None


@dataclass(frozen=True)
class CollectionSecurityConfig:
    """Security configuration of one resource."""
    resource: str
    facility_scoped: bool = True
    min_write_role: RoleName = RoleName.DOCTOR
    audit_required: bool = False
    data_classification: str = "internal"
    facility_field: str = "facilityId"
    field_rules: Mapping[str, FieldRule] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "field_rules", MappingProxyType(dict(self.field_rules)))

    def field_rule(self, field_name: str) -> Optional[FieldRule]:
        return self.field_rules.get(field_name)
