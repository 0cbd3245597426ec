"""Root of the facility-authz exception hierarchy."""

from typing import Any, Dict, Optional


class FacilityAuthzError(Exception):
    """
    Base class for every error raised by the library.

    ``error_code`` defaults to the class name; ``details`` holds structured,
    JSON-serializable context (principal id, resource, config issues ...).
    Permission denials are returned as decisions and never use this class.
    """

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or type(self).__name__
        self.details = dict(details) if details else {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
            "type": type(self).__name__,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, error_code={self.error_code!r})"
