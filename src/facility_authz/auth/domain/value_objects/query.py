"""
Secure query value objects.

A ``SecureQuery`` keeps the implicit facility filter apart from caller filters,
so that no caller filter can replace it.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class QueryOperator(str, Enum):
    """Filter operators understood by data sources."""
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    IN = "in"
    LESS_THAN = "less_than"
    GREATER_THAN = "greater_than"
    CONTAINS = "contains"
    IS_NULL = "is_null"


@dataclass(frozen=True)
class QueryFilter:
    """Single filter predicate over a document field."""
    field: str
    operator: QueryOperator
    value: Any = None

    def __post_init__(self):
        if not self.field:
            raise ValueError("Query filter field is required")
        object.__setattr__(self, "operator", QueryOperator(self.operator))
        if self.operator == QueryOperator.IN:
            object.__setattr__(self, "value", tuple(self.value or ()))

    @classmethod
    def equal(cls, field_name: str, value: Any) -> "QueryFilter":
        return cls(field_name, QueryOperator.EQUAL, value)

    @classmethod
    def is_in(cls, field_name: str, values) -> "QueryFilter":
        return cls(field_name, QueryOperator.IN, tuple(values))

    @property
    def values(self) -> Tuple[Any, ...]:
        """Values the filter can match on (only meaningful for equal/in)."""
        if self.operator == QueryOperator.IN:
            return tuple(self.value)
        return (self.value,)

    def matches(self, document: Dict[str, Any]) -> bool:
        """Evaluate the filter against a document (used by in-memory sources)."""
        actual = document.get(self.field)
        if self.operator == QueryOperator.EQUAL:
            return actual == self.value
        if self.operator == QueryOperator.NOT_EQUAL:
            return actual != self.value
        if self.operator == QueryOperator.IN:
            return actual in self.value
        if self.operator == QueryOperator.IS_NULL:
            return actual is None
        if actual is None:
            return False
        if self.operator == QueryOperator.LESS_THAN:
            return actual < self.value
        if self.operator == QueryOperator.GREATER_THAN:
            return actual > self.value
        if self.operator == QueryOperator.CONTAINS:
            return self.value in actual
        return False

    def to_dict(self) -> Dict[str, Any]:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {"field": self.field, "operator": self.operator.value, "value": value}

    def __str__(self) -> str:
        return f"{self.field} {self.operator.value} {self.value!r}"


@dataclass(frozen=True)
class SecureQuery:
    """
    Query descriptor produced by the secure query builder.

    ``facility_filter`` is ``None`` only for unscoped resources or
    administrator-equivalent principals.
    """
    resource: str
    principal_id: str
    facility_filter: Optional[QueryFilter] = None
    user_filters: Tuple[QueryFilter, ...] = ()
    allowed_facilities: Optional[FrozenSet[str]] = None
    limit: int = 25
    offset: int = 0
    order_by: Tuple[str, ...] = ()

    @property
    def filters(self) -> Tuple[QueryFilter, ...]:
        """All filters, AND-combined, implicit facility filter first."""
        if self.facility_filter is None:
            return tuple(self.user_filters)
        return (self.facility_filter,) + tuple(self.user_filters)

    @property
    def is_facility_scoped(self) -> bool:
        return self.facility_filter is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": self.resource,
            "filters": [f.to_dict() for f in self.filters],
            "limit": self.limit,
            "offset": self.offset,
            "orderBy": list(self.order_by),
        }


@dataclass(frozen=True)
class QueryPage:
    """One page of results from a secure query."""
    documents: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    limit: int = 25
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.documents) < self.total
