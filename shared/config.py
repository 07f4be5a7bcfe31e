"""
Shared configuration management for the Cloud Save Backend.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local", description="local, development or production")
    log_level: str = Field(default="info")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # Supabase platform
    supabase_url: Optional[str] = Field(default=None)
    supabase_anon_key: Optional[str] = Field(default=None)
    storage_bucket: str = Field(default="save-files")
    metadata_table: str = Field(default="save_metadata")
    supabase_timeout_seconds: float = Field(default=10.0, gt=0)

    # Save list cache
    cache_ttl_ms: int = Field(default=300000, ge=0)

    # Uploads
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, gt=0)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def supabase_base_url(self) -> str:
        return (self.supabase_url or "http://localhost:54321").rstrip("/")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str

    def __init__(self, service_name: str, **kwargs):
        super().__init__(service_name=service_name, **kwargs)


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
