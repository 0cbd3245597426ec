"""
Secure query builder.

Adds the mandatory facility filter to list/query requests on facility-scoped
resources. The facility filter is kept apart from caller filters and always
comes first; callers can narrow it to a subset of their own facilities but can
never widen or replace it.
"""
import logging
from typing import Any, Iterable, List, Literal, Mapping, Optional, Sequence, Union

from ....config.constants import DecisionReasons, FACILITY_FIELDS, Operation, QueryDefaults
from ....core.exceptions import AccessDeniedError, FacilityMismatchError, InvalidContextError
from ...domain.protocols.service_protocols import DataSourceProtocol
from ...domain.value_objects.principal import Principal
from ...domain.value_objects.query import QueryFilter, QueryOperator, QueryPage, SecureQuery
from ...domain.value_objects.resource import normalize_resource
from .permission_validator import PermissionValidator


logger = logging.getLogger(__name__)

FilterInput = Union[None, Mapping[str, Any], Sequence[Union[QueryFilter, Mapping[str, Any]]]]


def coerce_filters(user_filters: FilterInput) -> List[QueryFilter]:
    """
    Normalize caller filters.

    A mapping becomes ``equal`` filters (``in`` for list values); a sequence may
    hold ``QueryFilter`` objects or ``{"field", "operator", "value"}`` dicts.
    """
    if user_filters is None:
        return []
    try:
        if isinstance(user_filters, Mapping):
            return [
                QueryFilter.is_in(name, value) if isinstance(value, (list, tuple, set, frozenset))
                else QueryFilter.equal(name, value)
                for name, value in user_filters.items()
            ]
        filters = []
        for item in user_filters:
            if isinstance(item, QueryFilter):
                filters.append(item)
            elif isinstance(item, Mapping):
                filters.append(QueryFilter(item["field"], item.get("operator", "equal"), item.get("value")))
            else:
                raise TypeError(f"Unsupported filter: {item!r}")
        return filters
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidContextError(f"Malformed query filters: {e}")


class SecureQueryBuilder:
    """
    Builds and executes facility-safe queries.

    Args:
        validator: Permission validator used for the ``read`` check
        default_limit: Page size when none is requested
        max_limit: Upper bound on page size
        facility_override_policy: ``reject`` raises on caller facility filters
            outside the principal's facilities, ``ignore`` drops them
    """

    def __init__(
        self,
        validator: PermissionValidator,
        default_limit: int = QueryDefaults.DEFAULT_LIMIT,
        max_limit: int = QueryDefaults.MAX_LIMIT,
        facility_override_policy: Literal["reject", "ignore"] = "reject"
    ):
        self._validator = validator
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._policy = facility_override_policy

    async def build_secure_query(
        self,
        principal: Principal,
        resource_type: str,
        user_filters: FilterInput = None,
        limit: Optional[int] = None,
        offset: int = 0,
        order_by: Iterable[str] = ()
    ) -> SecureQuery:
        """
        Build a query descriptor with the implicit facility filter.

        Raises:
            AccessDeniedError: the principal may not read the resource
            FacilityMismatchError: a caller filter targets a foreign facility
                (``reject`` policy)
            InvalidContextError: malformed filters or paging
        """
        resource = normalize_resource(resource_type)
        decision = await self._validator.check_permission(principal, resource, Operation.READ)
        if not decision.allowed:
            raise AccessDeniedError(
                decision.public_reason,
                details={"resource": resource, "operation": Operation.READ.value}
            )

        snapshot = self._validator.snapshot
        security = snapshot.facility_scope.security_config(resource)
        facility_fields = FACILITY_FIELDS | {security.facility_field}

        facility_filter = None
        allowed = None
        if security.facility_scoped and not snapshot.hierarchy.principal_is_administrator(principal):
            facilities = sorted(snapshot.facility_scope.resolve_facilities(principal))
            if not facilities:
                raise InvalidContextError(
                    f"Principal {principal.id} has no facility for {resource}",
                    details={"resource": resource}
                )
            allowed = frozenset(facilities)
            if len(facilities) == 1:
                facility_filter = QueryFilter.equal(security.facility_field, facilities[0])
            else:
                facility_filter = QueryFilter.is_in(security.facility_field, facilities)

        filters = []
        for query_filter in coerce_filters(user_filters):
            if allowed is not None and query_filter.field in facility_fields:
                if not self._within(query_filter, allowed):
                    if self._policy == "reject":
                        raise FacilityMismatchError(
                            DecisionReasons.FACILITY_RESTRICTION,
                            details={"resource": resource, "field": query_filter.field}
                        )
                    logger.warning(
                        f"Dropping facility filter '{query_filter}' from {principal.id} on {resource}"
                    )
                    continue
            filters.append(query_filter)

        return SecureQuery(
            resource=resource,
            principal_id=principal.id,
            facility_filter=facility_filter,
            user_filters=tuple(filters),
            allowed_facilities=allowed,
            limit=self._page_size(limit),
            offset=self._offset(offset),
            order_by=tuple(order_by),
        )

    @staticmethod
    def _within(query_filter: QueryFilter, allowed: frozenset) -> bool:
        """Caller facility filters may only narrow to the principal's own facilities."""
        if query_filter.operator not in (QueryOperator.EQUAL, QueryOperator.IN):
            return False
        values = query_filter.values
        return bool(values) and all(value is not None and str(value) in allowed for value in values)

    def _page_size(self, limit: Optional[int]) -> int:
        if limit is None:
            return self._default_limit
        if limit <= 0:
            raise InvalidContextError("limit must be positive", details={"limit": limit})
        return min(limit, self._max_limit)

    @staticmethod
    def _offset(offset: int) -> int:
        if offset < 0:
            raise InvalidContextError("offset must be >= 0", details={"offset": offset})
        return offset

    async def execute_secure_query(
        self,
        data_source: DataSourceProtocol,
        resource_type: str,
        query: SecureQuery
    ) -> QueryPage:
        """Run a secure query against a data source and return one page."""
        resource = normalize_resource(resource_type)
        if query.resource != resource:
            raise InvalidContextError(
                f"Query was built for {query.resource}, not {resource}",
                details={"resource": resource}
            )

        documents, total = await data_source.list_documents(
            resource, query.filters, query.limit, query.offset, query.order_by
        )

        if query.allowed_facilities is not None:
            field_name = query.facility_filter.field
            kept = []
            for document in documents:
                facility_id = document.get(field_name)
                if facility_id is None:
                    facility_id = next(
                        (document[name] for name in FACILITY_FIELDS if document.get(name) is not None),
                        None
                    )
                if facility_id is not None and str(facility_id) in query.allowed_facilities:
                    kept.append(document)
            dropped = len(documents) - len(kept)
            if dropped:
                logger.warning(
                    f"Data source returned {dropped} out-of-scope document(s) for {resource}; dropped"
                )
                total = max(total - dropped, len(kept))
            documents = kept

        return QueryPage(documents=list(documents), total=total, limit=query.limit, offset=query.offset)
