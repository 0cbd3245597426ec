"""
Condition registry.

Conditions are named predicates ``(principal, context) -> bool`` attached to
permission grants. All conditions of a grant must pass. Names are validated
when configuration loads, so an unknown name can never silently pass.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional

from ....config.constants import CLINICAL_ROLES, RoleName
from ...domain.value_objects.principal import Principal
from ...domain.value_objects.resource_context import ResourceContext


logger = logging.getLogger(__name__)

ConditionPredicate = Callable[[Principal, ResourceContext], bool]


def clinical_access(principal: Principal, context: ResourceContext) -> bool:
    """Principal is clinical staff."""
    return principal.has_any_role(CLINICAL_ROLES)


def assigned_patients(principal: Principal, context: ResourceContext) -> bool:
    """The record names the principal among its assigned staff."""
    assigned = context.attribute("assigned_to", "assignedTo", "assigned_staff", "assignedStaff")
    if assigned is None:
        return False
    if isinstance(assigned, (list, tuple, set, frozenset)):
        return principal.id in {str(item) for item in assigned}
    return str(assigned) == principal.id


def self_only(principal: Principal, context: ResourceContext) -> bool:
    """The record belongs to the principal."""
    if context.resource_id is not None and context.resource_id == principal.id:
        return True
    owner = context.attribute("userId", "user_id", "ownerId", "owner_id", "createdBy")
    return owner is not None and str(owner) == principal.id


def role_hierarchy(principal: Principal, context: ResourceContext) -> bool:
    """The targeted role sits strictly below the principal's highest role."""
    if context.hierarchy is None:
        return False
    target = context.attribute("targetRole", "target_role", "role")
    if target is None:
        return False
    try:
        target_role = RoleName.parse(target)
    except ValueError:
        return False
    highest = context.hierarchy.highest(principal.roles)
    if highest is None or target_role not in context.hierarchy:
        return False
    return context.hierarchy.is_higher(highest, target_role)


def facility_match(principal: Principal, context: ResourceContext) -> bool:
    """The context facility is one of the principal's own facilities."""
    if context.facility_id is None:
        return False
    facilities = context.principal_facilities
    if facilities is None:
        facilities = principal.facility_ids
    return context.facility_id in facilities


BUILTIN_CONDITIONS: Dict[str, ConditionPredicate] = {
    "clinical_access": clinical_access,
    "assigned_patients": assigned_patients,
    "self_only": self_only,
    "role_hierarchy": role_hierarchy,
    "facility_match": facility_match,
}


class ConditionRegistry:
    """Registry of named condition predicates."""

    def __init__(self, include_builtins: bool = True):
        self._predicates: Dict[str, ConditionPredicate] = {}
        if include_builtins:
            self._predicates.update(BUILTIN_CONDITIONS)

    def register(self, name: str, predicate: Optional[ConditionPredicate] = None):
        """
        Register a predicate under ``name``.

        Usable directly or as a decorator::

            @registry.register("business_hours")
            def business_hours(principal, context): ...
        """
        if not name:
            raise ValueError("Condition name is required")

        def _register(func: ConditionPredicate) -> ConditionPredicate:
            if not callable(func):
                raise TypeError(f"Condition '{name}' must be callable")
            if name in self._predicates:
                logger.info(f"Replacing condition predicate '{name}'")
            self._predicates[name] = func
            return func

        if predicate is None:
            return _register
        return _register(predicate)

    def unregister(self, name: str) -> None:
        self._predicates.pop(name, None)

    def get(self, name: str) -> ConditionPredicate:
        return self._predicates[name]

    def unknown(self, names: Iterable[str]) -> List[str]:
        """Names without a registered predicate."""
        return sorted({name for name in names if name not in self._predicates})

    def evaluate(self, name: str, principal: Principal, context: ResourceContext) -> bool:
        """Evaluate a condition; a missing or failing predicate counts as not satisfied."""
        predicate = self._predicates.get(name)
        if predicate is None:
            logger.error(f"Condition '{name}' has no registered predicate")
            return False
        try:
            return bool(predicate(principal, context))
        except Exception as e:
            logger.error(f"Condition '{name}' failed for principal {principal.id}: {e}")
            return False

    @property
    def names(self) -> List[str]:
        return sorted(self._predicates)

    def __contains__(self, name: str) -> bool:
        return name in self._predicates

    def __len__(self) -> int:
        return len(self._predicates)
