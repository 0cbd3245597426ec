"""
Tests for the exception hierarchy, HTTP mapping, logging configuration and the
logging audit sink.
"""
import json
import logging

import pytest

from facility_authz.config.constants import DecisionScope, DenialCode, Operation
from facility_authz.config.logging_config import (
    AUDIT_LOGGER_NAME,
    LoggingConfig,
    get_log_level_from_verbosity,
)
from facility_authz.core.exceptions import (
    AccessDeniedError,
    CacheCorruptionError,
    ConfigurationError,
    ConfigurationSourceError,
    FacilityAuthzError,
    FacilityMismatchError,
    InvalidContextError,
    RoleAssignmentError,
    UnknownResourceError,
    UnknownRoleError,
    create_error_response,
    get_http_status_code,
)
from facility_authz.auth.domain.value_objects import AuditEvent, PermissionDecision
from facility_authz.auth.infrastructure.audit import LoggingAuditSink


class TestHttpMapping:
    """Exception to HTTP status mapping."""

    @pytest.mark.parametrize("exception,status", [
        (InvalidContextError("bad"), 400),
        (UnknownRoleError("janitor"), 400),
        (AccessDeniedError("no"), 403),
        (FacilityMismatchError("no"), 403),
        (RoleAssignmentError("no"), 403),
        (UnknownResourceError("x"), 404),
        (ConfigurationError("x"), 503),
        (ConfigurationSourceError("x"), 503),
        (CacheCorruptionError("x"), 503),
        (ValueError("x"), 500),
    ])
    def test_status_codes(self, exception, status):
        assert get_http_status_code(exception) == status

    def test_error_response(self):
        error = UnknownResourceError("No such resource", details={"resource": "collections.x"})

        assert create_error_response(error) == {
            "error": {
                "code": "UnknownResourceError",
                "message": "No such resource",
                "details": {"resource": "collections.x"},
                "type": "UnknownResourceError",
            }
        }

    def test_foreign_errors_not_described(self):
        response = create_error_response(RuntimeError("db password is hunter2"))

        assert response["error"]["code"] == "InternalError"
        assert "hunter2" not in json.dumps(response)

    def test_custom_error_code(self):
        error = FacilityAuthzError("boom", error_code="AUTHZ_BOOM")
        assert error.error_code == "AUTHZ_BOOM"
        assert error.details == {}
        assert str(error) == "boom"


class TestLoggingConfig:
    """Environment driven logging configuration."""

    def test_verbosity_levels(self):
        assert get_log_level_from_verbosity("quiet") == "ERROR"
        assert get_log_level_from_verbosity("VERBOSE") == "INFO"
        assert get_log_level_from_verbosity("unknown") == "WARNING"

    def test_log_level_overrides_verbosity(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_VERBOSITY", "QUIET")

        config = LoggingConfig.build()

        assert config["root"]["level"] == "DEBUG"

    def test_audit_logger_survives_quiet_root(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("LOG_VERBOSITY", "QUIET")

        config = LoggingConfig.build()

        assert config["root"]["level"] == "ERROR"
        assert config["loggers"][AUDIT_LOGGER_NAME]["level"] == "INFO"
        assert config["loggers"]["redis"]["level"] == "ERROR"

    def test_audit_logging_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("ENABLE_AUDIT_LOGGING", "false")
        assert LoggingConfig.build()["loggers"][AUDIT_LOGGER_NAME]["level"] == "CRITICAL"

    def test_json_format(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        assert LoggingConfig.build()["formatters"]["default"]["format"].startswith('{"time"')


class TestLoggingAuditSink:
    """Audit events written to the audit logger."""

    @pytest.mark.asyncio
    async def test_denials_logged_as_warnings(self, caplog):
        decision = PermissionDecision.deny(
            DenialCode.FACILITY_MISMATCH,
            "Facility access restriction",
            principal_id="doc-2",
            resource="collections.patients",
            operation=Operation.READ,
            facility_id="1",
        )
        audit_logger = logging.getLogger("tests.audit")

        with caplog.at_level(logging.INFO, logger="tests.audit"):
            await LoggingAuditSink(audit_logger).record(AuditEvent.from_decision(decision, "p1"))

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        payload = json.loads(record.getMessage())
        assert payload["principalId"] == "doc-2"
        assert payload["resourceId"] == "p1"
        assert payload["code"] == "facility_mismatch"

    @pytest.mark.asyncio
    async def test_grants_logged_as_info(self, caplog):
        decision = PermissionDecision.allow(DecisionScope.GLOBAL, principal_id="user-1", resource="collections.vaccines")
        audit_logger = logging.getLogger("tests.audit.grants")

        with caplog.at_level(logging.INFO, logger="tests.audit.grants"):
            await LoggingAuditSink(audit_logger).record(AuditEvent.from_decision(decision))

        assert caplog.records[-1].levelno == logging.INFO
        assert json.loads(caplog.records[-1].getMessage())["allowed"] is True
