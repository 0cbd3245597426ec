"""
Resource identifiers.

Resources are addressed as ``<kind>.<name>`` (``collections.patients``,
``functions.email-sender``); a bare name is a collection.
"""
from typing import Tuple

from ....config.constants import ResourceKind
from ....core.exceptions import InvalidContextError


def split_resource(resource: str) -> Tuple[ResourceKind, str]:
    """Split a resource identifier into its kind and name."""
    if not isinstance(resource, str) or not resource.strip():
        raise InvalidContextError("Resource identifier must be a non-empty string")

    value = resource.strip()
    kind, sep, name = value.partition(".")
    if not sep:
        return ResourceKind.COLLECTIONS, value

    try:
        resource_kind = ResourceKind(kind)
    except ValueError:
        # Dotted names outside a known kind are collection names
        return ResourceKind.COLLECTIONS, value

    if not name:
        raise InvalidContextError(f"Resource identifier has no name: {resource!r}")
    return resource_kind, name


def normalize_resource(resource: str) -> str:
    """Return the canonical ``<kind>.<name>`` form of a resource identifier."""
    kind, name = split_resource(resource)
    return f"{kind.value}.{name}"


def resource_name(resource: str) -> str:
    """Return the bare name of a resource (``patients`` for ``collections.patients``)."""
    return split_resource(resource)[1]
