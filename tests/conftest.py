"""
Pytest configuration and shared fixtures for facility-authz tests.
"""
import copy
import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from facility_authz.config.constants import RoleName
from facility_authz.config.settings import AuthzSettings
from facility_authz.auth.application.services import ConditionRegistry, PermissionValidator
from facility_authz.auth.domain.value_objects import Principal
from facility_authz.auth.infrastructure.cache import MemoryDecisionCache
from facility_authz.auth.infrastructure.configuration import (
    ConfigurationLoader,
    MappingConfigurationSource,
    packaged_defaults_path,
)
from facility_authz.context import AuthorizationContext


def _read_defaults() -> Dict[str, Any]:
    documents = {}
    for name in ("roles", "collections", "teams"):
        with (packaged_defaults_path() / f"{name}.json").open(encoding="utf-8") as fp:
            documents[name] = json.load(fp)
    return documents


DEFAULT_CONFIG = _read_defaults()


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdentityProvider:
    """In-memory identity store."""

    def __init__(self, profiles: Optional[List[Dict[str, Any]]] = None):
        self.profiles = {profile["id"]: dict(profile) for profile in profiles or []}
        self.updates = []

    async def get_profile(self, principal_id: str):
        profile = self.profiles.get(principal_id)
        return dict(profile) if profile is not None else None

    async def update_roles(self, principal_id, roles, facility_ids):
        roles, facility_ids = list(roles), list(facility_ids)
        self.updates.append((principal_id, roles, facility_ids))
        profile = self.profiles[principal_id]
        profile["roles"] = roles
        profile["facilityIds"] = facility_ids
        profile.pop("facilityId", None)


class FakeDataSource:
    """In-memory document store applying query filters."""

    def __init__(self, documents: Dict[str, List[Dict[str, Any]]], apply_filters: bool = True):
        self.documents = documents
        self.apply_filters = apply_filters
        self.calls = []

    async def list_documents(self, resource, filters, limit, offset, order_by=()):
        self.calls.append((resource, tuple(filters), limit, offset, tuple(order_by)))
        rows = list(self.documents.get(resource, []))
        if self.apply_filters:
            rows = [row for row in rows if all(f.matches(row) for f in filters)]
        return rows[offset:offset + limit], len(rows)


class RecordingAuditSink:
    """Audit sink keeping every event in memory."""

    def __init__(self):
        self.events = []

    async def record(self, event) -> None:
        self.events.append(event)


PROFILES = [
    {"id": "admin-1", "roles": ["administrator"]},
    {"id": "sup-1", "roles": ["supervisor"], "facilityId": "1"},
    {"id": "doc-2", "roles": ["doctor"], "facilityId": "2"},
    {"id": "doc-1", "roles": ["doctor"], "facilityId": "1"},
    {"id": "user-1", "roles": ["user"], "facilityId": "1"},
    {"id": "user-2", "roles": ["user"], "facilityId": "2"},
]


@pytest.fixture
def raw_config():
    """Deep copy of the packaged default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def config_source(raw_config):
    """In-memory configuration source seeded with the defaults."""
    return MappingConfigurationSource(raw_config)


@pytest_asyncio.fixture
async def loader(config_source):
    """Configuration loader with the defaults loaded."""
    loader = ConfigurationLoader(config_source, ConditionRegistry())
    await loader.load()
    yield loader
    await loader.close()


@pytest.fixture
def clock():
    """Hand-driven clock for cache expiry."""
    return FakeClock()


@pytest.fixture
def decision_cache(clock):
    """In-memory decision cache on the fake clock."""
    return MemoryDecisionCache(max_entries=1000, default_ttl=300, clock=clock)


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def validator(loader, decision_cache, audit_sink):
    """Permission validator wired to the loader and the memory cache."""
    validator = PermissionValidator(loader, cache=decision_cache, audit_sink=audit_sink, cache_ttl=300)
    loader.add_reload_listener(validator.on_configuration_reload)
    return validator


@pytest.fixture
def admin():
    return Principal(id="admin-1", roles=frozenset({RoleName.ADMINISTRATOR}))


@pytest.fixture
def supervisor():
    return Principal(id="sup-1", roles=frozenset({RoleName.SUPERVISOR}), facility_ids=frozenset({"1"}))


@pytest.fixture
def doctor():
    """Doctor working at facility 2."""
    return Principal(id="doc-2", roles=frozenset({RoleName.DOCTOR}), facility_ids=frozenset({"2"}))


@pytest.fixture
def multi_facility_doctor():
    return Principal(id="doc-12", roles=frozenset({RoleName.DOCTOR}), facility_ids=frozenset({"1", "2"}))


@pytest.fixture
def basic_user():
    return Principal(id="user-1", roles=frozenset({RoleName.USER}), facility_ids=frozenset({"1"}))


@pytest.fixture
def identity_provider():
    """Identity store holding one principal per role."""
    return FakeIdentityProvider(copy.deepcopy(PROFILES))


@pytest.fixture
def settings():
    """Explicit settings independent of the environment."""
    return AuthzSettings(
        config_path=None,
        hot_reload=False,
        cache_enabled=True,
        cache_backend="memory",
        cache_ttl_seconds=300,
        audit_enabled=False,
        default_page_size=25,
        max_page_size=100,
        facility_override_policy="reject",
    )


@pytest_asyncio.fixture
async def authz(settings, config_source, identity_provider, audit_sink):
    """Started authorization context over the default configuration."""
    context = AuthorizationContext(
        settings=settings,
        source=config_source,
        identity_provider=identity_provider,
        audit_sink=audit_sink,
    )
    await context.start()
    yield context
    await context.close()
