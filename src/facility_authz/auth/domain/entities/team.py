"""
Team naming settings.

Facility teams carry the role names of the flat role hierarchy as their
membership roles (``facility-2-team/doctor``).
"""
import re
from dataclasses import dataclass
from typing import Optional

from ....config.constants import TeamDefaults
from ....core.exceptions import ConfigurationError


_FACILITY_PLACEHOLDER = "{facility_id}"


@dataclass(frozen=True)
class TeamSettings:
    """Naming conventions for the global admin team and facility teams."""
    global_admin_team: str = TeamDefaults.GLOBAL_ADMIN_TEAM
    facility_team_pattern: str = TeamDefaults.FACILITY_TEAM_PATTERN

    def __post_init__(self):
        if self.facility_team_pattern.count(_FACILITY_PLACEHOLDER) != 1:
            raise ConfigurationError(
                f"facility_team_pattern must contain {_FACILITY_PLACEHOLDER} exactly once",
                details={"pattern": self.facility_team_pattern}
            )
        prefix, _, suffix = self.facility_team_pattern.partition(_FACILITY_PLACEHOLDER)
        object.__setattr__(
            self, "_team_regex", re.compile(f"^{re.escape(prefix)}(.+?){re.escape(suffix)}$")
        )

    def facility_team(self, facility_id: str) -> str:
        """Team id of a facility."""
        return self.facility_team_pattern.replace(_FACILITY_PLACEHOLDER, str(facility_id))

    def parse_facility_id(self, team_id: str) -> Optional[str]:
        """Extract the facility id from a facility team id (``team/role`` accepted)."""
        if not team_id:
            return None
        team = team_id.split("/", 1)[0]
        match = self._team_regex.match(team)
        return match.group(1) if match else None

    def is_global_admin_team(self, team_id: str) -> bool:
        return bool(team_id) and team_id.split("/", 1)[0] == self.global_admin_team
