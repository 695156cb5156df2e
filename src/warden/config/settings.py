"""Application settings loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = "development"
    DEBUG: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Database (SqlRoleStore and persisted audit events)
    DATABASE_URL: str = "sqlite+aiosqlite:///./warden.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Role store
    role_store_timeout_seconds: float = Field(default=1.0, gt=0)
    """Deadline for the role store lookups of a single decision."""

    role_cache_enabled: bool = True
    role_cache_ttl_seconds: int = Field(default=300, ge=1)
    """Upper bound on how stale a cached role or grant may be."""

    # Audit
    audit_enabled: bool = True
    audit_queue_size: int = Field(default=1000, ge=1)
    audit_sink: Literal["log", "database"] = "log"
    """Where audit events go: the structured log or the audit_events table."""

    # Decisions
    store_unavailable_status: Literal[403, 503] = 503
    """HTTP status used when the role store could not be consulted."""

    # Permission catalog
    catalog_extra_modules: list[str] = Field(default_factory=list)

    @field_validator("catalog_extra_modules")
    @classmethod
    def normalize_modules(cls, value: list[str]) -> list[str]:
        """Lowercase and strip extra module names."""
        return [m.strip().lower() for m in value if m.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
