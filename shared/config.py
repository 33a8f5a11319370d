"""
Shared configuration management for the feature access service.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )
    
    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    
    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/access")
    
    # Policy cache
    enable_policy_cache: bool = Field(default=True)
    policy_cache_ttl_seconds: int = Field(default=3600, ge=1)
    
    # Collaborator time budgets
    policy_timeout_seconds: float = Field(default=2.0, gt=0)
    identity_timeout_seconds: float = Field(default=2.0, gt=0)
    billing_timeout_seconds: float = Field(default=2.0, gt=0)

    # Metrics
    metrics_port: int = Field(default=9090)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""
    
    service_name: str


def get_config(service_name: str = "features") -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name)
