"""
Tests for the authorization context, settings and the FastAPI integration.
"""
import asyncio
from contextlib import asynccontextmanager

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError

from facility_authz import AuthorizationContext
from facility_authz.config.constants import DecisionScope, DenialCode
from facility_authz.config.settings import AuthzSettings
from facility_authz.context import build_decision_cache
from facility_authz.core.exceptions import ConfigurationError, FacilityMismatchError
from facility_authz.auth.infrastructure.cache import MemoryDecisionCache, RedisDecisionCache
from facility_authz.auth.interfaces import (
    AuthorizedPrincipal,
    RequirePermission,
    install_authorization,
    register_exception_handlers,
)

from conftest import FakeDataSource


class TestAuthzSettings:
    """Environment driven settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("FACILITY_AUTHZ_CACHE_BACKEND", raising=False)
        settings = AuthzSettings(_env_file=None)

        assert settings.cache_backend == "memory"
        assert settings.cache_ttl_seconds == 300
        assert settings.facility_override_policy == "reject"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("FACILITY_AUTHZ_CACHE_BACKEND", "redis")
        monkeypatch.setenv("FACILITY_AUTHZ_CACHE_TTL_SECONDS", "60")

        settings = AuthzSettings(_env_file=None)

        assert settings.cache_backend == "redis"
        assert settings.cache_ttl_seconds == 60

    def test_page_size_bounds(self):
        with pytest.raises(ValidationError):
            AuthzSettings(_env_file=None, default_page_size=50, max_page_size=10)

    def test_ttl_upper_bound(self):
        with pytest.raises(ValidationError):
            AuthzSettings(_env_file=None, cache_ttl_seconds=7200)


class TestBuildDecisionCache:
    """Cache backend selection."""

    def test_memory_backend(self, settings):
        assert isinstance(build_decision_cache(settings), MemoryDecisionCache)

    def test_disabled(self):
        assert build_decision_cache(AuthzSettings(_env_file=None, cache_enabled=False)) is None

    def test_redis_backend(self):
        settings = AuthzSettings(_env_file=None, cache_backend="redis", redis_url="redis://localhost:6390/1")
        assert isinstance(build_decision_cache(settings), RedisDecisionCache)


class TestAuthorizationContext:
    """End-to-end use of the context."""

    @pytest.mark.asyncio
    async def test_check_by_principal_id(self, authz):
        decision = await authz.check_permission("doc-2", "collections.patients", "read", {"facilityId": "2"})

        assert decision.allowed
        assert decision.scope == DecisionScope.FACILITY_ONLY

    @pytest.mark.asyncio
    async def test_unknown_principal_denied(self, authz):
        decision = await authz.check_permission("ghost", "collections.patients", "read")

        assert not decision.allowed
        assert decision.code == DenialCode.INVALID_CONTEXT

    @pytest.mark.asyncio
    async def test_queries_and_documents(self, authz, doctor):
        query = await authz.build_secure_query(doctor, "patients", {"status": "active"}, limit=10)
        source = FakeDataSource({"collections.patients": [
            {"$id": "p1", "facilityId": "1", "status": "active"},
            {"$id": "p2", "facilityId": "2", "status": "active"},
        ]})

        page = await authz.execute_secure_query(source, "patients", query)
        permissions = await authz.generate_document_permissions(doctor, "patients", {})

        assert [row["$id"] for row in page.documents] == ["p2"]
        assert query.limit == 10
        assert 'read("team:facility-2-team")' in [str(entry) for entry in permissions]

    @pytest.mark.asyncio
    async def test_reload_and_stats(self, authz):
        await authz.check_permission("doc-2", "collections.patients", "read", {"facilityId": "2"})

        assert await authz.reload() == 2
        stats = await authz.get_cache_stats()

        assert stats["config_version"] == 2
        assert stats["cache"]["size"] == 0

    @pytest.mark.asyncio
    async def test_clear_and_invalidate(self, authz):
        await authz.check_permission("doc-2", "collections.patients", "read", {"facilityId": "2"})
        await authz.check_permission("user-1", "collections.vaccines", "read")

        assert await authz.invalidate("doc-2") == 1
        assert await authz.clear_cache() == 1

    @pytest.mark.asyncio
    async def test_without_identity_provider(self, settings, config_source, admin):
        async with AuthorizationContext(settings=settings, source=config_source) as context:
            assert context.is_started
            with pytest.raises(ConfigurationError):
                await context.check_permission("doc-2", "collections.patients", "read")
            with pytest.raises(ConfigurationError):
                await context.assign_role(admin, "doc-2", "user", "2")

            decision = await context.validator.check_permission(admin, "collections.patients", "delete")
            assert decision.allowed

    @pytest.mark.asyncio
    async def test_packaged_defaults_used_without_source(self, settings, identity_provider):
        async with AuthorizationContext(settings=settings, identity_provider=identity_provider) as context:
            decision = await context.check_permission("sup-1", "collections.patients", "delete")

        assert decision.code == DenialCode.NO_MATCHING_RULE

    @pytest.mark.asyncio
    async def test_hot_reload(self, config_source, identity_provider):
        settings = AuthzSettings(_env_file=None, hot_reload=True, hot_reload_interval_seconds=0.01)
        context = AuthorizationContext(settings=settings, source=config_source, identity_provider=identity_provider)
        await context.start()
        try:
            config_source.update({"teams": {"global_admin_team": "admins"}})
            for _ in range(200):
                if context.loader.version == 2:
                    break
                await asyncio.sleep(0.01)
            assert context.loader.version == 2
        finally:
            await context.close()


def _build_app(context: AuthorizationContext) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await context.start()
        yield
        await context.close()

    app = FastAPI(lifespan=lifespan)
    install_authorization(app, context)
    register_exception_handlers(app)

    @app.get("/facilities/{facility_id}/patients")
    async def list_patients(
        facility_id: str,
        auth: AuthorizedPrincipal = Depends(RequirePermission("patients", "read"))
    ):
        return {"principal": auth.principal.id, "scope": auth.decision.scope.value}

    @app.get("/vaccines")
    async def list_vaccines(
        auth: AuthorizedPrincipal = Depends(RequirePermission("vaccines", "read", facility_param=None))
    ):
        return {"principal": auth.principal.id}

    @app.post("/facilities/{facility_id}/transfers")
    async def transfer(facility_id: str):
        raise FacilityMismatchError("Facility access restriction", details={"facility_id": facility_id})

    return app


@pytest.fixture
def client(settings, config_source, identity_provider):
    """Test client over an application guarded by the default configuration."""
    context = AuthorizationContext(settings=settings, source=config_source, identity_provider=identity_provider)
    with TestClient(_build_app(context)) as test_client:
        yield test_client


class TestRequirePermission:
    """The FastAPI dependency."""

    def test_missing_principal_header(self, client):
        response = client.get("/facilities/2/patients")
        assert response.status_code == 401

    def test_unknown_principal(self, client):
        response = client.get("/facilities/2/patients", headers={"X-Principal-Id": "ghost"})
        assert response.status_code == 401

    def test_allowed(self, client):
        response = client.get("/facilities/2/patients", headers={"X-Principal-Id": "doc-2"})

        assert response.status_code == 200
        assert response.json() == {"principal": "doc-2", "scope": "facility_only"}

    def test_other_facility_forbidden(self, client):
        response = client.get("/facilities/1/patients", headers={"X-Principal-Id": "doc-2"})

        assert response.status_code == 403
        assert response.json()["detail"] == "facility restriction"

    def test_unscoped_endpoint(self, client):
        response = client.get("/vaccines", headers={"X-Principal-Id": "user-2"})
        assert response.status_code == 200

    def test_exception_handler(self, client):
        response = client.post("/facilities/1/transfers")

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "FacilityMismatchError"
        assert error["details"] == {"facility_id": "1"}
