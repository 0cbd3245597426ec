"""HTTP status code mapping for exceptions."""

from typing import Any, Dict, Type

from .base import FacilityAuthzError
from .domain import (
    ConfigurationError,
    InvalidContextError,
    UnknownRoleError,
    UnknownResourceError,
    AuthorizationError,
    PermissionDeniedError,
    AccessDeniedError,
    FacilityMismatchError,
    RoleAssignmentError,
    CacheError,
)


HTTP_STATUS_MAP: Dict[Type[Exception], int] = {
    # 400 Bad Request
    InvalidContextError: 400,
    UnknownRoleError: 400,

    # 403 Forbidden
    AuthorizationError: 403,
    PermissionDeniedError: 403,
    AccessDeniedError: 403,
    FacilityMismatchError: 403,
    RoleAssignmentError: 403,

    # 404 Not Found
    UnknownResourceError: 404,

    # 503 Service Unavailable
    ConfigurationError: 503,
    CacheError: 503,
}


def get_http_status_code(exception: Exception) -> int:
    """Resolve the HTTP status for an exception, walking its MRO."""
    for klass in type(exception).__mro__:
        if klass in HTTP_STATUS_MAP:
            return HTTP_STATUS_MAP[klass]
    return 500


def create_error_response(exception: Exception) -> Dict[str, Any]:
    """JSON body for an error response; foreign exceptions are not described."""
    if isinstance(exception, FacilityAuthzError):
        return {"error": exception.to_dict()}
    return {
        "error": {
            "code": "InternalError",
            "message": "Internal server error",
            "details": {},
            "type": "InternalError",
        }
    }
