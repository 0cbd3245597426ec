"""HTTP-facing integration (FastAPI)."""

from .dependencies import (
    AuthorizedPrincipal,
    RequirePermission,
    get_authorization_context,
    install_authorization,
    register_exception_handlers,
)

__all__ = [
    "AuthorizedPrincipal",
    "RequirePermission",
    "get_authorization_context",
    "install_authorization",
    "register_exception_handlers",
]
