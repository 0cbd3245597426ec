"""
Tests for the role hierarchy and facility scope resolver.
"""
import pytest

from facility_authz.config.constants import DataAccess, RoleName
from facility_authz.core.exceptions import ConfigurationError, UnknownResourceError, UnknownRoleError
from facility_authz.auth.application.services import RoleHierarchy
from facility_authz.auth.domain.entities import Role
from facility_authz.auth.domain.value_objects import Principal


def _roles(**levels):
    return {
        RoleName(name): Role(name=RoleName(name), level=level, data_access=DataAccess.FACILITY_ONLY)
        for name, level in levels.items()
    }


@pytest.fixture
def hierarchy():
    return RoleHierarchy(_roles(administrator=4, supervisor=3, doctor=2, user=1))


class TestRoleHierarchy:
    """Ordering and comparison of roles."""

    def test_maximal_role_is_highest_level(self, hierarchy):
        assert hierarchy.maximal_role == RoleName.ADMINISTRATOR
        assert hierarchy.is_administrator(RoleName.ADMINISTRATOR)
        assert not hierarchy.is_administrator(RoleName.SUPERVISOR)

    def test_has_higher_or_equal_role(self, hierarchy):
        assert hierarchy.has_higher_or_equal_role(RoleName.SUPERVISOR, RoleName.DOCTOR)
        assert hierarchy.has_higher_or_equal_role(RoleName.DOCTOR, RoleName.DOCTOR)
        assert not hierarchy.has_higher_or_equal_role(RoleName.USER, RoleName.DOCTOR)

    def test_is_higher_is_strict(self, hierarchy):
        assert hierarchy.is_higher(RoleName.ADMINISTRATOR, RoleName.USER)
        assert not hierarchy.is_higher(RoleName.DOCTOR, RoleName.DOCTOR)

    def test_ordered_highest_first(self, hierarchy):
        assert hierarchy.ordered() == (
            RoleName.ADMINISTRATOR, RoleName.SUPERVISOR, RoleName.DOCTOR, RoleName.USER
        )
        assert hierarchy.ordered({RoleName.USER, RoleName.SUPERVISOR}) == (
            RoleName.SUPERVISOR, RoleName.USER
        )

    def test_highest_of_several_roles(self, hierarchy):
        assert hierarchy.highest({RoleName.USER, RoleName.DOCTOR}) == RoleName.DOCTOR
        assert hierarchy.highest(set()) is None

    def test_roles_at_or_above_and_below(self, hierarchy):
        assert hierarchy.roles_at_or_above(RoleName.DOCTOR) == (
            RoleName.ADMINISTRATOR, RoleName.SUPERVISOR, RoleName.DOCTOR
        )
        assert hierarchy.roles_below(RoleName.DOCTOR) == (RoleName.USER,)

    def test_can_assign_only_lower_roles(self, hierarchy):
        assert hierarchy.can_assign({RoleName.SUPERVISOR}, RoleName.DOCTOR)
        assert hierarchy.can_assign({RoleName.SUPERVISOR}, RoleName.USER)
        assert not hierarchy.can_assign({RoleName.SUPERVISOR}, RoleName.SUPERVISOR)
        assert not hierarchy.can_assign({RoleName.SUPERVISOR}, RoleName.ADMINISTRATOR)
        assert not hierarchy.can_assign(set(), RoleName.USER)

    def test_administrator_can_assign_every_role(self, hierarchy):
        for role in RoleName:
            assert hierarchy.can_assign({RoleName.ADMINISTRATOR}, role)

    def test_principal_is_administrator(self, hierarchy):
        admin = Principal(id="a", roles=frozenset({"administrator"}))
        doctor = Principal(id="d", roles=frozenset({"doctor"}), facility_ids=frozenset({"2"}))
        assert hierarchy.principal_is_administrator(admin)
        assert not hierarchy.principal_is_administrator(doctor)

    def test_unknown_role_lookup_raises(self):
        partial = RoleHierarchy(_roles(administrator=2, user=1))
        with pytest.raises(UnknownRoleError):
            partial.level(RoleName.DOCTOR)
        assert RoleName.DOCTOR not in partial
        assert partial.ordered({RoleName.DOCTOR, RoleName.USER}) == (RoleName.USER,)

    def test_duplicate_levels_rejected(self):
        with pytest.raises(ConfigurationError):
            RoleHierarchy(_roles(administrator=3, supervisor=3, doctor=2, user=1))

    def test_empty_hierarchy_rejected(self):
        with pytest.raises(ConfigurationError):
            RoleHierarchy({})

    def test_repr_lists_chain(self, hierarchy):
        assert repr(hierarchy) == "RoleHierarchy(administrator > supervisor > doctor > user)"
        assert len(hierarchy) == 4


class TestFacilityScopeResolver:
    """Facility membership resolution from the loaded configuration."""

    def test_facilities_include_team_memberships(self, loader):
        scope = loader.snapshot.facility_scope
        principal = Principal(
            id="p",
            roles=frozenset({"user"}),
            facility_ids=frozenset({"1"}),
            team_memberships=frozenset({"facility-7-team/doctor", "global-admin-team", "other"}),
        )
        assert scope.resolve_facilities(principal) == frozenset({"1", "7"})

    def test_can_access_facility(self, loader, doctor, admin):
        scope = loader.snapshot.facility_scope
        assert scope.can_access_facility(doctor, "2")
        assert not scope.can_access_facility(doctor, "1")
        assert not scope.can_access_facility(doctor, None)
        assert scope.can_access_facility(admin, "99")

    def test_can_access_all(self, loader, multi_facility_doctor):
        scope = loader.snapshot.facility_scope
        assert scope.can_access_all(multi_facility_doctor, ["1", "2"])
        assert not scope.can_access_all(multi_facility_doctor, ["1", "3"])

    def test_unknown_resource_counts_as_scoped(self, loader):
        scope = loader.snapshot.facility_scope
        assert scope.is_facility_scoped("collections.patients")
        assert not scope.is_facility_scoped("vaccines")
        assert scope.is_facility_scoped("collections.unknown")
        assert not scope.is_known_resource("collections.unknown")

    def test_require_security_config_raises_for_unknown(self, loader):
        with pytest.raises(UnknownResourceError):
            loader.snapshot.facility_scope.require_security_config("collections.unknown")
