"""
Shared configuration management for the docs renderer.
"""

from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExecutionMode(str, Enum):
    """Execution mode the process runs under."""

    LOCAL = "local"
    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"

    @classmethod
    def from_env(cls, value: Optional[str]) -> "ExecutionMode":
        """Map an ``env`` setting onto a mode, defaulting to local."""
        normalized = (value or "").strip().lower()
        if normalized in ("prod", "production"):
            return cls.PRODUCTION
        if normalized in ("test", "testing"):
            return cls.TEST
        if normalized in ("dev", "development", "staging"):
            return cls.DEVELOPMENT
        return cls.LOCAL


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOCS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = "local"
    ci: bool = Field(default=False, validation_alias=AliasChoices("DOCS_CI", "CI", "ci"))
    log_level: str = "info"

    # Page cache
    redis_url: str = "redis://localhost:6379"
    page_cache_db: int = 1
    page_cache_ttl_ms: int = 24 * 60 * 60 * 1000
    release_version: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DOCS_RELEASE_VERSION", "HEROKU_RELEASE_VERSION", "release_version"),
    )
    cacheable_query_params: List[str] = ["learn"]
    drain_timeout_seconds: float = 5.0

    # Alternate renderer migration
    feature_alternate_renderer: bool = False
    alternate_renderer_url: str = "http://localhost:3000"
    alternate_routes: List[str] = ["/en/rest", "/en/sponsors", "/ja/sponsors"]

    # Site
    site_name: str = "Docs"
    languages: List[str] = ["en", "ja", "es", "pt", "cn"]

    @property
    def execution_mode(self) -> ExecutionMode:
        return ExecutionMode.from_env(self.env)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
