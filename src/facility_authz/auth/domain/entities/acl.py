"""
Document ACL entries.

An ACL entry pairs an operation with a grantee string:
``role:<role>``, ``team:<team>``, ``team:<team>/<role>``, ``user:<id>`` or ``users``.
"""
from dataclasses import dataclass

from ....config.constants import AclOperation


class Grantee:
    """Builders for ACL grantee strings."""

    ANY_USER = "users"

    @staticmethod
    def role(role: str) -> str:
        return f"role:{role}"

    @staticmethod
    def team(team_id: str, role: str = None) -> str:
        return f"team:{team_id}/{role}" if role else f"team:{team_id}"

    @staticmethod
    def user(user_id: str) -> str:
        return f"user:{user_id}"


@dataclass(frozen=True)
class AclEntry:
    """One permission annotation stored with a document."""
    operation: AclOperation
    grantee: str

    def to_dict(self) -> dict:
        return {"operation": self.operation.value, "grantee": self.grantee}

    def __str__(self) -> str:
        return f'{self.operation.value}("{self.grantee}")'
