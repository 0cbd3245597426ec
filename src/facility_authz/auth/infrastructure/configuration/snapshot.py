"""
Configuration snapshot building.

Turns the raw ``roles``/``collections``/``teams`` documents into an immutable
snapshot: roles, role hierarchy, rule table, collection security configs and
the facility scope resolver. Building either succeeds completely or raises a
single ``ConfigurationError`` listing every issue found.
"""
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from pydantic import ValidationError

from ....config.constants import (
    ConfigNames,
    DataAccess,
    KIND_OPERATIONS,
    Operation,
    RoleName,
    WILDCARD,
)
from ....core.exceptions import ConfigurationError, InvalidContextError
from ...application.services.conditions import ConditionRegistry
from ...application.services.facility_scope import FacilityScopeResolver
from ...application.services.role_hierarchy import RoleHierarchy
from ...domain.entities.collection import CollectionSecurityConfig, FieldRule
from ...domain.entities.role import Role
from ...domain.entities.rule import PermissionGrant, PermissionRule, RuleTable
from ...domain.entities.team import TeamSettings
from ...domain.value_objects.resource import split_resource
from .models import CollectionsAdapter, RoleDocument, RolesAdapter, TeamsDocument


logger = logging.getLogger(__name__)

# (conditions, facility_scoped) per (resource, operation)
_GrantSpec = Tuple[Tuple[str, ...], bool]


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """Immutable, fully validated configuration state."""
    version: int
    raw: Mapping[str, Any]
    roles: Mapping[RoleName, Role]
    hierarchy: RoleHierarchy
    rules: RuleTable
    collections: Mapping[str, CollectionSecurityConfig]
    teams: TeamSettings
    facility_scope: FacilityScopeResolver
    fingerprint: Optional[str] = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def document(self, name: str) -> Mapping[str, Any]:
        """Read-only view of a raw configuration document."""
        if name not in self.raw:
            raise ConfigurationError(f"Unknown configuration: {name}", details={"name": name})
        return self.raw[name]


class _SnapshotBuilder:
    """Collects issues while building one snapshot."""

    def __init__(self, raw: Mapping[str, Any], conditions: ConditionRegistry):
        self.raw = raw
        self.conditions = conditions
        self.issues: List[str] = []

    def fail(self, message: str) -> None:
        self.issues.append(message)

    # Parsing helpers

    def resource(self, value: str, where: str) -> Optional[str]:
        try:
            kind, name = split_resource(value)
        except InvalidContextError as e:
            self.fail(f"{where}: {e.message}")
            return None
        return f"{kind.value}.{name}"

    def role_name(self, value: Optional[str], where: str) -> Optional[RoleName]:
        if value is None:
            return None
        try:
            return RoleName.parse(value)
        except ValueError:
            self.fail(f"{where}: unknown role '{value}'")
            return None

    def operations(self, resource: str, values: List[str], where: str) -> FrozenSet[Operation]:
        """Expand ``*`` and validate operations for the resource kind."""
        kind, _ = split_resource(resource)
        valid = KIND_OPERATIONS[kind]
        if WILDCARD in values:
            return valid

        result = set()
        for value in values:
            try:
                operation = Operation.parse(value)
            except ValueError:
                self.fail(f"{where}: unknown operation '{value}'")
                continue
            if operation not in valid:
                self.fail(f"{where}: operation '{operation.value}' is not valid for {kind.value}")
                continue
            result.add(operation)
        return frozenset(result)

    # Documents

    def parse_documents(self) -> Tuple[Dict[str, RoleDocument], Dict[str, Any], TeamsDocument]:
        role_docs: Dict[str, RoleDocument] = {}
        collection_docs: Dict[str, Any] = {}
        teams_doc = TeamsDocument()

        for name in (ConfigNames.ROLES, ConfigNames.COLLECTIONS):
            if name not in self.raw:
                self.fail(f"Missing configuration document '{name}'")

        try:
            role_docs = RolesAdapter.validate_python(self.raw.get(ConfigNames.ROLES, {}))
        except ValidationError as e:
            self._schema_issues(ConfigNames.ROLES, e)
        try:
            collection_docs = CollectionsAdapter.validate_python(self.raw.get(ConfigNames.COLLECTIONS, {}))
        except ValidationError as e:
            self._schema_issues(ConfigNames.COLLECTIONS, e)
        try:
            teams_doc = TeamsDocument.model_validate(self.raw.get(ConfigNames.TEAMS) or {})
        except ValidationError as e:
            self._schema_issues(ConfigNames.TEAMS, e)

        return role_docs, collection_docs, teams_doc

    def _schema_issues(self, name: str, error: ValidationError) -> None:
        for detail in error.errors():
            location = ".".join(str(part) for part in detail.get("loc", ()))
            self.fail(f"{name}.{location}: {detail.get('msg')}")

    def build_collections(self, docs: Dict[str, Any]) -> Dict[str, CollectionSecurityConfig]:
        collections: Dict[str, CollectionSecurityConfig] = {}
        for key, doc in docs.items():
            where = f"collections.{key}"
            resource = self.resource(key, where)
            if resource is None:
                continue
            if resource in collections:
                self.fail(f"{where}: duplicate resource '{resource}'")
                continue

            min_write_role = self.role_name(doc.min_write_role, f"{where}.min_write_role")
            field_rules = {}
            for field_name, rule in doc.field_rules.items():
                field_where = f"{where}.field_rules.{field_name}"
                field_rules[field_name] = FieldRule(
                    field_name=field_name,
                    min_read_role=self.role_name(rule.min_read_role, f"{field_where}.min_read_role"),
                    min_write_role=self.role_name(rule.min_write_role, f"{field_where}.min_write_role"),
                )

            collections[resource] = CollectionSecurityConfig(
                resource=resource,
                facility_scoped=doc.facility_scoped,
                min_write_role=min_write_role or RoleName.DOCTOR,
                audit_required=doc.audit_required,
                data_classification=doc.data_classification,
                facility_field=doc.facility_field,
                field_rules=field_rules,
            )
        return collections

    def check_role_set(self, role_docs: Dict[str, RoleDocument]) -> Dict[RoleName, RoleDocument]:
        roles: Dict[RoleName, RoleDocument] = {}
        for key, doc in role_docs.items():
            name = self.role_name(key, f"roles.{key}")
            if name is None:
                continue
            if name in roles:
                self.fail(f"roles.{key}: role '{name.value}' defined more than once")
                continue
            roles[name] = doc

        for name in RoleName:
            if name not in roles:
                self.fail(f"roles: role '{name.value}' is not defined")

        levels: Dict[int, RoleName] = {}
        for name, doc in roles.items():
            if doc.level in levels:
                self.fail(
                    f"roles.{name.value}: level {doc.level} already used by '{levels[doc.level].value}'"
                )
            levels[doc.level] = name

        if roles:
            top_level = max(doc.level for doc in roles.values())
            top = [name for name, doc in roles.items() if doc.level == top_level]
            if len(top) == 1 and roles[top[0]].data_access != DataAccess.ALL_FACILITIES:
                self.fail(f"roles.{top[0].value}: the highest role must have data_access 'all_facilities'")
        return roles

    def resolve_grants(
        self,
        roles: Dict[RoleName, RoleDocument],
        collections: Mapping[str, CollectionSecurityConfig]
    ) -> Dict[RoleName, Dict[Tuple[str, Operation], _GrantSpec]]:
        """Effective grants per role, following inheritance."""
        resolved: Dict[RoleName, Dict[Tuple[str, Operation], _GrantSpec]] = {}
        visiting: Set[RoleName] = set()

        def resolve(name: RoleName) -> Dict[Tuple[str, Operation], _GrantSpec]:
            if name in resolved:
                return resolved[name]
            if name in visiting:
                self.fail(f"roles.{name.value}: inheritance cycle detected")
                return {}

            visiting.add(name)
            doc = roles[name]
            grants: Dict[Tuple[str, Operation], _GrantSpec] = {}

            for parent_key in doc.inherits:
                parent = self.role_name(parent_key, f"roles.{name.value}.inherits")
                if parent is None:
                    continue
                if parent not in roles:
                    self.fail(f"roles.{name.value}.inherits: role '{parent.value}' is not defined")
                    continue
                if roles[parent].level >= doc.level:
                    self.fail(
                        f"roles.{name.value}.inherits: '{parent.value}' is not below '{name.value}'"
                    )
                    continue
                grants.update(resolve(parent))

            where = f"roles.{name.value}.permissions"
            for key, values in doc.permissions.items():
                resource = self.resource(key, where)
                if resource is None:
                    continue
                if resource not in collections:
                    self.fail(f"{where}: resource '{resource}' is not configured in collections")
                    continue
                for operation in self.operations(resource, values, f"{where}.{key}"):
                    grants[(resource, operation)] = ((), True)

            self._apply_overrides(name, doc, grants)

            visiting.discard(name)
            resolved[name] = grants
            return grants

        for name in roles:
            resolve(name)
        return resolved

    def _apply_overrides(
        self,
        name: RoleName,
        doc: RoleDocument,
        grants: Dict[Tuple[str, Operation], _GrantSpec]
    ) -> None:
        where = f"roles.{name.value}.conditions"
        for key, by_operation in doc.conditions.items():
            resource = self.resource(key, where)
            if resource is None:
                continue
            for op_key, condition_names in by_operation.items():
                unknown = self.conditions.unknown(condition_names)
                if unknown:
                    self.fail(f"{where}.{key}.{op_key}: unregistered condition(s) {unknown}")
                for operation in self.operations(resource, [op_key], f"{where}.{key}"):
                    if (resource, operation) not in grants:
                        self.fail(f"{where}.{key}.{op_key}: operation is not granted to '{name.value}'")
                        continue
                    _, scoped = grants[(resource, operation)]
                    grants[(resource, operation)] = (tuple(condition_names), scoped)

        where = f"roles.{name.value}.unscoped"
        for key, values in doc.unscoped.items():
            resource = self.resource(key, where)
            if resource is None:
                continue
            for operation in self.operations(resource, values, f"{where}.{key}"):
                if (resource, operation) not in grants:
                    self.fail(f"{where}.{key}: '{operation.value}' is not granted to '{name.value}'")
                    continue
                conditions, _ = grants[(resource, operation)]
                grants[(resource, operation)] = (conditions, False)

    def check_monotonic(
        self,
        roles: Dict[RoleName, RoleDocument],
        grants: Dict[RoleName, Dict[Tuple[str, Operation], _GrantSpec]]
    ) -> None:
        """Every grant held by a role must also be held by every higher role."""
        ordered = sorted(roles, key=lambda name: roles[name].level)
        for index, lower in enumerate(ordered):
            for higher in ordered[index + 1:]:
                missing = set(grants.get(lower, {})) - set(grants.get(higher, {}))
                for resource, operation in sorted(missing, key=lambda item: (item[0], item[1].value)):
                    self.fail(
                        f"roles.{higher.value}: lacks '{operation.value}' on '{resource}' "
                        f"granted to lower role '{lower.value}'"
                    )


def build_snapshot(
    raw: Mapping[str, Any],
    conditions: ConditionRegistry,
    version: int,
    fingerprint: Optional[str] = None
) -> ConfigurationSnapshot:
    """
    Build and validate a configuration snapshot.

    Raises:
        ConfigurationError: with every issue found in ``details["issues"]``
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration must be a mapping of named documents")

    builder = _SnapshotBuilder(raw, conditions)
    role_docs, collection_docs, teams_doc = builder.parse_documents()
    collections = builder.build_collections(collection_docs)
    role_set = builder.check_role_set(role_docs)
    grants = builder.resolve_grants(role_set, collections)
    builder.check_monotonic(role_set, grants)

    teams = None
    try:
        teams = TeamSettings(
            global_admin_team=teams_doc.global_admin_team,
            facility_team_pattern=teams_doc.facility_team_pattern,
        )
    except ConfigurationError as e:
        builder.fail(f"teams: {e.message}")

    if builder.issues:
        raise ConfigurationError(
            f"Invalid authorization configuration ({len(builder.issues)} issue(s))",
            details={"issues": builder.issues}
        )

    roles: Dict[RoleName, Role] = {}
    for name, doc in role_set.items():
        permissions: Dict[str, Set[Operation]] = {}
        for resource, operation in grants[name]:
            permissions.setdefault(resource, set()).add(operation)
        roles[name] = Role(
            name=name,
            level=doc.level,
            description=doc.description,
            data_access=doc.data_access,
            permissions=permissions,
            special_permissions=frozenset(_special_permissions(role_set, name)),
            inherits=tuple(RoleName.parse(parent) for parent in doc.inherits),
        )

    by_key: Dict[Tuple[str, Operation], Dict[RoleName, PermissionGrant]] = {}
    for name, role_grants in grants.items():
        for (resource, operation), (condition_names, scoped) in role_grants.items():
            by_key.setdefault((resource, operation), {})[name] = PermissionGrant(
                role=name, conditions=condition_names, facility_scoped=scoped
            )
    rules = RuleTable({
        key: PermissionRule(resource=key[0], operation=key[1], grants=role_grants)
        for key, role_grants in by_key.items()
    })

    hierarchy = RoleHierarchy(roles)
    snapshot = ConfigurationSnapshot(
        version=version,
        raw=_freeze(copy.deepcopy(dict(raw))),
        roles=MappingProxyType(roles),
        hierarchy=hierarchy,
        rules=rules,
        collections=MappingProxyType(collections),
        teams=teams,
        facility_scope=FacilityScopeResolver(collections, hierarchy, teams),
        fingerprint=fingerprint,
    )
    logger.debug(
        f"Built configuration snapshot v{version}: {len(roles)} roles, "
        f"{len(collections)} resources, {len(rules)} rules"
    )
    return snapshot


def _special_permissions(role_set: Mapping[RoleName, RoleDocument], name: RoleName) -> Set[str]:
    """Special permissions of a role including those it inherits."""
    doc = role_set[name]
    result = set(doc.special_permissions)
    for parent_key in doc.inherits:
        result |= _special_permissions(role_set, RoleName.parse(parent_key))
    return result
