"""
Tests for the secure query builder.
"""
import pytest

from facility_authz.core.exceptions import AccessDeniedError, FacilityMismatchError, InvalidContextError
from facility_authz.auth.application.services import SecureQueryBuilder
from facility_authz.auth.application.services.secure_query_builder import coerce_filters
from facility_authz.auth.domain.value_objects import QueryFilter
from facility_authz.auth.domain.value_objects.query import QueryOperator

from conftest import FakeDataSource


PATIENTS = [
    {"$id": "p1", "facilityId": "1", "status": "active"},
    {"$id": "p2", "facilityId": "2", "status": "active"},
    {"$id": "p3", "facilityId": "2", "status": "archived"},
    {"$id": "p4", "facilityId": "2", "status": "active"},
]


@pytest.fixture
def queries(validator):
    return SecureQueryBuilder(validator)


class TestBuildSecureQuery:
    """Facility filter injection."""

    @pytest.mark.asyncio
    async def test_facility_filter_comes_first(self, queries, doctor):
        query = await queries.build_secure_query(doctor, "patients", {"status": "active"})

        assert query.filters == (
            QueryFilter.equal("facilityId", "2"),
            QueryFilter.equal("status", "active"),
        )
        assert query.resource == "collections.patients"
        assert query.is_facility_scoped

    @pytest.mark.asyncio
    async def test_several_facilities_use_in(self, queries, multi_facility_doctor):
        query = await queries.build_secure_query(multi_facility_doctor, "patients")

        assert query.facility_filter == QueryFilter.is_in("facilityId", ["1", "2"])
        assert query.allowed_facilities == frozenset({"1", "2"})

    @pytest.mark.asyncio
    async def test_narrowing_to_own_facility_kept(self, queries, multi_facility_doctor):
        query = await queries.build_secure_query(multi_facility_doctor, "patients", {"facilityId": "2"})

        assert query.filters == (
            QueryFilter.is_in("facilityId", ["1", "2"]),
            QueryFilter.equal("facilityId", "2"),
        )

    @pytest.mark.asyncio
    async def test_foreign_facility_filter_rejected(self, queries, doctor):
        with pytest.raises(FacilityMismatchError):
            await queries.build_secure_query(doctor, "patients", {"facilityId": "1"})

    @pytest.mark.asyncio
    async def test_foreign_facility_filter_dropped_with_ignore_policy(self, validator, doctor):
        queries = SecureQueryBuilder(validator, facility_override_policy="ignore")

        query = await queries.build_secure_query(
            doctor, "patients", [{"field": "facility_id", "operator": "in", "value": ["1", "2"]}]
        )

        assert query.filters == (QueryFilter.equal("facilityId", "2"),)

    @pytest.mark.asyncio
    async def test_non_equality_facility_filter_rejected(self, queries, doctor):
        with pytest.raises(FacilityMismatchError):
            await queries.build_secure_query(
                doctor, "patients", [QueryFilter("facilityId", QueryOperator.NOT_EQUAL, "2")]
            )

    @pytest.mark.asyncio
    async def test_administrator_has_no_facility_filter(self, queries, admin):
        query = await queries.build_secure_query(admin, "patients", {"facilityId": "7"})

        assert query.facility_filter is None
        assert query.filters == (QueryFilter.equal("facilityId", "7"),)

    @pytest.mark.asyncio
    async def test_unscoped_resource_has_no_facility_filter(self, queries, basic_user):
        query = await queries.build_secure_query(basic_user, "vaccines")

        assert query.filters == ()

    @pytest.mark.asyncio
    async def test_read_permission_required(self, queries, basic_user):
        with pytest.raises(AccessDeniedError):
            await queries.build_secure_query(basic_user, "reports")

    @pytest.mark.asyncio
    async def test_paging(self, queries, doctor):
        default = await queries.build_secure_query(doctor, "patients")
        capped = await queries.build_secure_query(doctor, "patients", limit=500, offset=10, order_by=["name"])

        assert default.limit == 25
        assert default.offset == 0
        assert capped.limit == 100
        assert capped.offset == 10
        assert capped.order_by == ("name",)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("paging", [{"limit": 0}, {"limit": -5}, {"offset": -1}])
    async def test_invalid_paging(self, queries, doctor, paging):
        with pytest.raises(InvalidContextError):
            await queries.build_secure_query(doctor, "patients", **paging)

    @pytest.mark.asyncio
    async def test_to_dict(self, queries, doctor):
        query = await queries.build_secure_query(doctor, "patients", {"status": "active"})

        assert query.to_dict()["filters"] == [
            {"field": "facilityId", "operator": "equal", "value": "2"},
            {"field": "status", "operator": "equal", "value": "active"},
        ]


class TestCoerceFilters:
    """Normalization of caller filters."""

    def test_mapping_with_list_values(self):
        assert coerce_filters({"status": ["active", "new"]}) == [QueryFilter.is_in("status", ["active", "new"])]

    def test_malformed_filters(self):
        with pytest.raises(InvalidContextError):
            coerce_filters([{"operator": "equal"}])
        with pytest.raises(InvalidContextError):
            coerce_filters([{"field": "status", "operator": "between"}])
        with pytest.raises(InvalidContextError):
            coerce_filters([42])


class TestExecuteSecureQuery:
    """Running secure queries against a data source."""

    @pytest.mark.asyncio
    async def test_only_own_facility_rows(self, queries, doctor):
        source = FakeDataSource({"collections.patients": PATIENTS})
        query = await queries.build_secure_query(doctor, "patients", {"status": "active"})

        page = await queries.execute_secure_query(source, "patients", query)

        assert [row["$id"] for row in page.documents] == ["p2", "p4"]
        assert page.total == 2
        assert not page.has_more
        assert source.calls[0][1] == query.filters

    @pytest.mark.asyncio
    async def test_out_of_scope_rows_dropped(self, queries, doctor):
        leaky = FakeDataSource({"collections.patients": PATIENTS}, apply_filters=False)
        query = await queries.build_secure_query(doctor, "patients")

        page = await queries.execute_secure_query(leaky, "patients", query)

        assert {row["facilityId"] for row in page.documents} == {"2"}
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_paged_results(self, queries, admin):
        source = FakeDataSource({"collections.patients": PATIENTS})
        query = await queries.build_secure_query(admin, "patients", limit=2)

        page = await queries.execute_secure_query(source, "patients", query)

        assert len(page.documents) == 2
        assert page.total == 4
        assert page.has_more

    @pytest.mark.asyncio
    async def test_query_resource_must_match(self, queries, doctor):
        query = await queries.build_secure_query(doctor, "patients")

        with pytest.raises(InvalidContextError):
            await queries.execute_secure_query(FakeDataSource({}), "notifications", query)
