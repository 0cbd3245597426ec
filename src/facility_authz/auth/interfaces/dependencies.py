"""
FastAPI integration.

``RequirePermission`` guards an endpoint with a permission check; the
authorization context is read from ``app.state.authorization``::

    app = FastAPI()
    install_authorization(app, context)
    register_exception_handlers(app)

    @app.get("/facilities/{facility_id}/patients")
    async def list_patients(auth: AuthorizedPrincipal = Depends(RequirePermission("patients", "read"))):
        ...
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union, TYPE_CHECKING

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ...config.constants import Operation
from ...core.exceptions import (
    ConfigurationError,
    FacilityAuthzError,
    InvalidContextError,
    create_error_response,
    get_http_status_code,
)
from ..domain.value_objects.decision import PermissionDecision
from ..domain.value_objects.principal import Principal

if TYPE_CHECKING:
    from ...context import AuthorizationContext


logger = logging.getLogger(__name__)

PRINCIPAL_HEADER = "X-Principal-Id"
APP_STATE_ATTRIBUTE = "authorization"


@dataclass(frozen=True)
class AuthorizedPrincipal:
    """Principal that passed a ``RequirePermission`` check."""
    principal: Principal
    decision: PermissionDecision


def install_authorization(app: FastAPI, context: "AuthorizationContext") -> None:
    """Attach an authorization context to an application."""
    setattr(app.state, APP_STATE_ATTRIBUTE, context)


def get_authorization_context(request: Request) -> "AuthorizationContext":
    """Dependency returning the application's authorization context."""
    context = getattr(request.app.state, APP_STATE_ATTRIBUTE, None)
    if context is None:
        raise ConfigurationError("Authorization context is not installed on the application")
    return context


class RequirePermission:
    """
    Dependency enforcing a permission on an endpoint.

    The principal id comes from the ``X-Principal-Id`` header. The facility is
    read from the path parameter (or query parameter) named ``facility_param``.

    Args:
        resource: Resource identifier
        operation: Required operation
        facility_param: Name of the path/query parameter holding the facility id
    """

    def __init__(
        self,
        resource: str,
        operation: Union[Operation, str],
        facility_param: Optional[str] = "facility_id"
    ):
        self.resource = resource
        self.operation = operation if isinstance(operation, Operation) else Operation.parse(operation)
        self.facility_param = facility_param

    def _facility_id(self, request: Request) -> Optional[str]:
        if not self.facility_param:
            return None
        value = request.path_params.get(self.facility_param)
        if value is None:
            value = request.query_params.get(self.facility_param)
        return value

    async def __call__(self, request: Request) -> AuthorizedPrincipal:
        principal_id = request.headers.get(PRINCIPAL_HEADER)
        if not principal_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Missing {PRINCIPAL_HEADER} header"
            )

        context = get_authorization_context(request)
        try:
            principal = await context.resolve_principal(principal_id)
        except InvalidContextError as e:
            logger.debug(f"Rejected principal {principal_id!r}: {e.message}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown principal")

        decision = await context.validator.check_permission(
            principal,
            self.resource,
            self.operation,
            {"facilityId": self._facility_id(request)},
        )
        if not decision.allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.public_reason)
        return AuthorizedPrincipal(principal=principal, decision=decision)


def register_exception_handlers(app: FastAPI) -> None:
    """Map the facility-authz exception hierarchy to JSON error responses."""

    @app.exception_handler(FacilityAuthzError)
    async def facility_authz_error_handler(request: Request, exc: FacilityAuthzError):
        status_code = get_http_status_code(exc)
        if status_code >= 500:
            logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
        else:
            logger.debug(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=create_error_response(exc))
