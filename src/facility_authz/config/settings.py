"""
Runtime settings for the authorization engine.

Settings are read from ``FACILITY_AUTHZ_*`` environment variables (or a
``.env`` file) and are passed explicitly into ``AuthorizationContext``.
"""
from typing import Literal, Optional
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import CacheTTL, QueryDefaults


class AuthzSettings(BaseSettings):
    """Settings for configuration loading, decision caching and auditing."""

    model_config = SettingsConfigDict(
        env_prefix="FACILITY_AUTHZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Configuration source
    config_path: Optional[str] = Field(
        default=None,
        description="Directory holding roles.json/collections.json/teams.json; packaged defaults when unset"
    )
    hot_reload: bool = Field(default=False, description="Watch the configuration source for changes")
    hot_reload_interval_seconds: float = Field(default=5.0, gt=0)

    # Decision cache
    cache_enabled: bool = Field(default=True)
    cache_backend: Literal["memory", "redis"] = Field(default="memory")
    cache_ttl_seconds: int = Field(default=CacheTTL.DECISIONS_DEFAULT, gt=0, le=CacheTTL.DECISIONS_MAX)
    cache_max_entries: int = Field(default=10000, gt=0)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="facility_authz")

    # Auditing
    audit_enabled: bool = Field(default=True)

    # Secure queries
    default_page_size: int = Field(default=QueryDefaults.DEFAULT_LIMIT, gt=0)
    max_page_size: int = Field(default=QueryDefaults.MAX_LIMIT, gt=0)
    facility_override_policy: Literal["reject", "ignore"] = Field(default="reject")

    @field_validator("max_page_size")
    @classmethod
    def _max_not_below_default(cls, value: int, info) -> int:
        default = info.data.get("default_page_size", QueryDefaults.DEFAULT_LIMIT)
        if value < default:
            raise ValueError("max_page_size must be >= default_page_size")
        return value


@lru_cache(maxsize=1)
def get_settings() -> AuthzSettings:
    """Get settings from the environment (cached)."""
    return AuthzSettings()
