"""
Tests for document ACL generation and document-level access checks.
"""
from datetime import datetime, timezone

import pytest

from facility_authz.config.constants import DenialCode, Operation, RoleName
from facility_authz.core.exceptions import (
    AccessDeniedError,
    FacilityMismatchError,
    InvalidContextError,
    UnknownResourceError,
)
from facility_authz.auth.application.services import DocumentSecurityGenerator, PermissionValidator
from facility_authz.auth.domain.value_objects import Principal
from facility_authz.auth.infrastructure.configuration import ConfigurationLoader, MappingConfigurationSource


FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def documents(validator):
    return DocumentSecurityGenerator(validator, clock=lambda: FIXED_NOW)


class TestGenerateDocumentPermissions:
    """ACL entries for new documents."""

    @pytest.mark.asyncio
    async def test_doctor_creating_patient(self, documents, doctor):
        permissions = await documents.generate_document_permissions(doctor, "patients", {"name": "A"})

        assert [str(entry) for entry in permissions] == [
            'read("role:administrator")',
            'write("role:administrator")',
            'delete("role:administrator")',
            'read("team:facility-2-team")',
            'write("team:facility-2-team/supervisor")',
            'write("team:facility-2-team/doctor")',
            'read("user:doc-2")',
            'write("user:doc-2")',
        ]

    @pytest.mark.asyncio
    async def test_unscoped_resource_uses_role_grantees(self, documents, admin):
        permissions = await documents.generate_document_permissions(admin, "collections.vaccines", {})

        assert [str(entry) for entry in permissions] == [
            'read("role:administrator")',
            'write("role:administrator")',
            'delete("role:administrator")',
            'read("users")',
            'write("role:supervisor")',
            'read("user:admin-1")',
            'write("user:admin-1")',
        ]

    @pytest.mark.asyncio
    async def test_entries_are_unique(self, documents, admin):
        permissions = await documents.generate_document_permissions(admin, "patients", {"facilityId": "3"})

        assert len(permissions) == len(set(permissions))
        assert 'read("team:facility-3-team")' in [str(entry) for entry in permissions]

    @pytest.mark.asyncio
    async def test_draft_facility_must_be_own(self, documents, doctor):
        with pytest.raises(FacilityMismatchError):
            await documents.generate_document_permissions(doctor, "patients", {"facilityId": "1"})

    @pytest.mark.asyncio
    async def test_ambiguous_facility(self, documents, multi_facility_doctor):
        with pytest.raises(InvalidContextError):
            await documents.generate_document_permissions(multi_facility_doctor, "patients", {})

        permissions = await documents.generate_document_permissions(
            multi_facility_doctor, "patients", {"facility_id": "1"}
        )
        assert 'read("team:facility-1-team")' in [str(entry) for entry in permissions]

    @pytest.mark.asyncio
    async def test_create_permission_required(self, documents, basic_user):
        with pytest.raises(AccessDeniedError):
            await documents.generate_document_permissions(basic_user, "patients", {})

    @pytest.mark.asyncio
    async def test_user_documents_require_lower_target_role(self, documents, supervisor):
        permissions = await documents.generate_document_permissions(
            supervisor, "collections.users", {"role": "doctor"}
        )
        assert 'write("user:sup-1")' in [str(entry) for entry in permissions]

        with pytest.raises(AccessDeniedError):
            await documents.generate_document_permissions(
                supervisor, "collections.users", {"role": "supervisor"}
            )


class TestSecureDraft:
    """Stamping drafts with ownership metadata."""

    @pytest.mark.asyncio
    async def test_draft_is_stamped(self, documents, doctor):
        secured = await documents.secure_draft(doctor, "patients", {"name": "A"})

        assert secured.resource == "collections.patients"
        assert secured.facility_id == "2"
        assert secured.data == {
            "name": "A",
            "facilityId": "2",
            "createdBy": "doc-2",
            "createdAt": FIXED_NOW.isoformat(),
            "updatedBy": "doc-2",
            "updatedAt": FIXED_NOW.isoformat(),
        }
        assert secured.permission_strings[0] == 'read("role:administrator")'
        assert secured.decision.allowed

    @pytest.mark.asyncio
    async def test_restricted_fields_rejected(self, raw_config, doctor):
        raw_config["collections"]["collections.patients"]["field_rules"]["diagnosisCode"] = {
            "min_write_role": "supervisor"
        }
        loader = ConfigurationLoader(MappingConfigurationSource(raw_config))
        await loader.load()
        documents = DocumentSecurityGenerator(PermissionValidator(loader))

        with pytest.raises(AccessDeniedError) as exc_info:
            await documents.secure_draft(doctor, "patients", {"name": "A", "diagnosisCode": "J10"})

        assert exc_info.value.details["fields"] == ["diagnosisCode"]


class TestDocumentAccess:
    """Access to stored documents uses the embedded facility."""

    @pytest.mark.asyncio
    async def test_embedded_facility_decides(self, documents, doctor):
        own = await documents.check_document_access(
            doctor, "patients", {"$id": "p1", "facilityId": "2"}, Operation.UPDATE
        )
        foreign = await documents.check_document_access(
            doctor, "patients", {"$id": "p2", "facilityId": "1"}, Operation.READ
        )

        assert own.allowed
        assert foreign.code == DenialCode.FACILITY_MISMATCH

    @pytest.mark.asyncio
    async def test_scoped_document_without_facility(self, documents, doctor):
        decision = await documents.check_document_access(doctor, "patients", {"$id": "p3"}, Operation.READ)

        assert not decision.allowed
        assert decision.code == DenialCode.INVALID_CONTEXT

    @pytest.mark.asyncio
    async def test_self_only_on_profile_document(self, documents, basic_user):
        own = await documents.check_document_access(
            basic_user, "users", {"$id": "user-1", "facilityId": "1"}, Operation.READ
        )
        other = await documents.check_document_access(
            basic_user, "users", {"$id": "user-3", "facilityId": "1"}, Operation.READ
        )

        assert own.allowed
        assert not other.allowed


class TestRedaction:
    """Field-level read restrictions."""

    def test_user_loses_restricted_fields(self, documents, basic_user):
        document = {"$id": "p1", "name": "A", "nationalId": "123", "medicalNotes": "x", "facilityId": "1"}

        assert documents.redact_document(basic_user, "patients", document) == {
            "$id": "p1", "name": "A", "facilityId": "1"
        }

    def test_doctor_sees_clinical_fields(self, documents, doctor):
        document = {"name": "A", "nationalId": "123"}

        assert documents.redact_document(doctor, "patients", document) == document

    def test_supervisor_only_fields(self, documents, doctor, supervisor):
        document = {"name": "B", "phone": "555", "labels": ["vip"]}

        assert documents.redact_document(doctor, "users", document) == {"name": "B", "phone": "555"}
        assert documents.redact_document(supervisor, "users", document) == document

    def test_unknown_resource(self, documents, doctor):
        with pytest.raises(UnknownResourceError):
            documents.redact_document(doctor, "collections.unknown", {})

    def test_collection_without_field_rules(self, documents):
        principal = Principal(id="u", roles=frozenset({RoleName.USER}), facility_ids=frozenset({"1"}))
        document = {"name": "MMR"}

        assert documents.redact_document(principal, "vaccines", document) == document
