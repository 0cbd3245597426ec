"""
Pydantic models of the raw configuration documents.

They validate shape and primitive types only; cross-document rules are checked
while building the snapshot.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ....config.constants import DataAccess, TeamDefaults


class RoleDocument(BaseModel):
    """One entry of ``roles.json``."""
    model_config = ConfigDict(extra="forbid")

    level: int = Field(..., ge=0)
    description: str = ""
    data_access: DataAccess = DataAccess.FACILITY_ONLY
    special_permissions: List[str] = Field(default_factory=list)
    inherits: List[str] = Field(default_factory=list)
    permissions: Dict[str, List[str]] = Field(default_factory=dict)
    conditions: Dict[str, Dict[str, List[str]]] = Field(default_factory=dict)
    unscoped: Dict[str, List[str]] = Field(default_factory=dict)


class FieldRuleDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_read_role: Optional[str] = None
    min_write_role: Optional[str] = None


class CollectionDocument(BaseModel):
    """One entry of ``collections.json``."""
    model_config = ConfigDict(extra="forbid")

    facility_scoped: bool = True
    min_write_role: str = "doctor"
    audit_required: bool = False
    data_classification: str = "internal"
    facility_field: str = "facilityId"
    field_rules: Dict[str, FieldRuleDocument] = Field(default_factory=dict)


class TeamsDocument(BaseModel):
    """The ``teams.json`` document."""
    model_config = ConfigDict(extra="forbid")

    global_admin_team: str = TeamDefaults.GLOBAL_ADMIN_TEAM
    facility_team_pattern: str = TeamDefaults.FACILITY_TEAM_PATTERN


RolesAdapter = TypeAdapter(Dict[str, RoleDocument])
CollectionsAdapter = TypeAdapter(Dict[str, CollectionDocument])
